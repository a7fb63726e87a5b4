"""Liveness monitor — background database probing and maintenance jobs.

Three independent asyncio loops:
- probe    (default 30s): SELECT 1 round-trip, edge-triggered healthy/unhealthy flag
- cleanup  (default 1h):  purge expired refresh tokens
- stats    (default 5m):  log process memory / uptime

Blocking work (sqlite, psutil) runs in a thread pool so the event loop and the
request path are never blocked. The liveness state is an immutable snapshot
replaced in a single assignment, so readers never see a flag from one probe
paired with a timestamp from another.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from src.db import DatabaseUnavailable, utcnow

from .stats import ProcessStats, collect_process_stats

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LivenessState:
    """The monitor's current belief about database reachability."""

    is_healthy: bool
    last_health_check: datetime
    consecutive_failures: int = 0
    last_error: str | None = None
    last_latency_ms: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_healthy": self.is_healthy,
            "last_health_check": self.last_health_check.isoformat(),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "last_latency_ms": self.last_latency_ms,
        }


class LivenessMonitor:
    """Owns the liveness state and the three maintenance loops.

    Create once at startup, keep on the app, call `start()` / `stop()` from the
    lifespan. The capabilities are plain callables so the monitor never imports
    the stores it drives:

    - probe():            returns latency in ms, raises (or returns False) when unreachable
    - cleanup(cutoff):    deletes tokens expiring strictly before cutoff, returns count
    - stats():            returns ProcessStats
    - on_transition(healthy, detail):   called once per healthy/unhealthy edge
    - on_escalation(failures, detail):  called once per outage at `escalate_after` failures
    """

    def __init__(
        self,
        probe: Callable[[], Any],
        cleanup: Callable[[datetime], int],
        stats: Callable[[], ProcessStats] = collect_process_stats,
        *,
        clock: Callable[[], datetime] = utcnow,
        probe_interval: float = 30,
        cleanup_interval: float = 3600,
        stats_interval: float = 300,
        probe_log_every: int = 10,
        escalate_after: int = 10,
        on_transition: Callable[[bool, str], Any] | None = None,
        on_escalation: Callable[[int, str], Any] | None = None,
    ) -> None:
        self._probe = probe
        self._cleanup = cleanup
        self._stats = stats
        self._clock = clock
        self.probe_interval = probe_interval
        self.cleanup_interval = cleanup_interval
        self.stats_interval = stats_interval
        self.probe_log_every = probe_log_every
        self.escalate_after = escalate_after
        self.on_transition = on_transition
        self.on_escalation = on_escalation

        # Optimistic default until the first probe resolves
        self._state = LivenessState(is_healthy=True, last_health_check=clock())
        self._successes = 0
        self._executor: ThreadPoolExecutor | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    # ── Read model ───────────────────────────────────────────────────────

    @property
    def state(self) -> LivenessState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._running

    def get_health_status(self) -> dict[str, Any]:
        """Current `{is_healthy, last_health_check}` snapshot. Never touches the DB."""
        state = self._state
        return {
            "is_healthy": state.is_healthy,
            "last_health_check": state.last_health_check.isoformat(),
        }

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the probe, cleanup and stats loops. No-op if already running."""
        if self._running:
            return
        self._running = True
        self._executor = ThreadPoolExecutor(max_workers=3, thread_name_prefix="liveness")

        jobs = (
            ("probe", self.probe_interval, self.probe_once, True),
            ("cleanup", self.cleanup_interval, self.cleanup_expired_tokens, False),
            ("stats", self.stats_interval, self.report_stats, False),
        )
        for name, interval, job, immediate in jobs:
            self._tasks.append(asyncio.create_task(
                self._run_every(name, interval, job, immediate),
                name=f"liveness-{name}",
            ))

        logger.info(
            "Liveness monitor started (probe=%ss, cleanup=%ss, stats=%ss)",
            self.probe_interval, self.cleanup_interval, self.stats_interval,
        )

    async def stop(self) -> None:
        """Cancel all loops and release the thread pool."""
        was_running = self._running
        self._running = False
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        if was_running:
            logger.info("Liveness monitor stopped")

    async def _run_every(
        self,
        name: str,
        interval: float,
        job: Callable[[], Any],
        immediate: bool,
    ) -> None:
        if not immediate:
            await asyncio.sleep(interval)
        while self._running:
            try:
                result = job()
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # Jobs handle their own failures; anything here is a bug
                logger.exception("Liveness job %s raised", name)
            await asyncio.sleep(interval)

    # ── Jobs ─────────────────────────────────────────────────────────────

    async def probe_once(self) -> bool:
        """Probe the database once and update the liveness state.

        Returns the probe outcome. Never raises.
        """
        loop = asyncio.get_running_loop()
        prev = self._state
        t0 = time.perf_counter()
        try:
            result = await loop.run_in_executor(self._executor, self._probe)
            if result is False:
                raise DatabaseUnavailable("probe returned False")
        except Exception as e:
            detail = str(e) or type(e).__name__
            failures = prev.consecutive_failures + 1
            self._state = replace(
                prev,
                is_healthy=False,
                consecutive_failures=failures,
                last_error=detail,
            )
            if prev.is_healthy:
                logger.warning("Database connection lost: %s", detail)
                await self._emit(self.on_transition, False, detail)
            if self.escalate_after and failures == self.escalate_after:
                logger.error(
                    "Database unreachable for %d consecutive probes: %s", failures, detail,
                )
                await self._emit(self.on_escalation, failures, detail)
            return False

        # Prefer the probe's own round-trip figure over our wall time
        if isinstance(result, (int, float)) and not isinstance(result, bool):
            latency = round(float(result), 1)
        else:
            latency = round((time.perf_counter() - t0) * 1000, 1)
        self._state = LivenessState(
            is_healthy=True,
            last_health_check=self._clock(),
            last_latency_ms=latency,
        )
        self._successes += 1

        if not prev.is_healthy:
            logger.info(
                "Database connection restored after %d failed probes",
                prev.consecutive_failures,
            )
            await self._emit(
                self.on_transition, True,
                f"restored after {prev.consecutive_failures} failed probes",
            )
        elif self.probe_log_every and self._successes % self.probe_log_every == 0:
            logger.info("DB health check OK (%.1fms)", latency)
        else:
            logger.debug("DB health check OK (%.1fms)", latency)
        return True

    async def cleanup_expired_tokens(self) -> int:
        """Delete refresh tokens that expired before now. Never raises."""
        loop = asyncio.get_running_loop()
        cutoff = self._clock()
        try:
            count = await loop.run_in_executor(self._executor, self._cleanup, cutoff)
        except Exception as e:
            logger.error("Failed to clean up expired tokens: %s", e)
            return 0
        if count:
            logger.info("Cleaned up %d expired refresh tokens", count)
        return count

    async def report_stats(self) -> None:
        """Log one line of process resource usage. Never raises."""
        loop = asyncio.get_running_loop()
        try:
            stats = await loop.run_in_executor(self._executor, self._stats)
            logger.info(
                "System stats — uptime: %ds, memory: %dMB rss / %dMB vms, DB: %s",
                int(stats.uptime_seconds),
                stats.rss_mb,
                stats.vms_mb,
                "healthy" if self._state.is_healthy else "unhealthy",
            )
        except Exception:
            logger.exception("Failed to collect process stats")

    # ── Signals ──────────────────────────────────────────────────────────

    async def _emit(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Liveness callback error")
