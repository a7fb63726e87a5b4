"""Fake capabilities for liveness monitor tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.db import DatabaseUnavailable
from src.health.stats import ProcessStats

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class ScriptedProbe:
    """Probe that succeeds or fails according to a settable outcome."""

    def __init__(self, healthy: bool = True) -> None:
        self.healthy = healthy
        self.calls = 0

    def __call__(self) -> float:
        self.calls += 1
        if not self.healthy:
            raise DatabaseUnavailable("connection refused")
        return 0.1


class RecordingCleanup:
    def __init__(self, result: int = 0) -> None:
        self.result = result
        self.cutoffs: list[datetime] = []

    def __call__(self, cutoff: datetime) -> int:
        self.cutoffs.append(cutoff)
        return self.result


def fixed_stats() -> ProcessStats:
    return ProcessStats(rss_bytes=64 * 1024 * 1024, vms_bytes=256 * 1024 * 1024, uptime_seconds=42.0)
