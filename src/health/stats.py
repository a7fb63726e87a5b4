"""Process resource usage — memory and uptime via psutil."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass
from typing import Any

import psutil

_MB = 1024 * 1024


@dataclass(frozen=True)
class ProcessStats:
    """Point-in-time memory/uptime figures for the current process."""

    rss_bytes: int
    vms_bytes: int
    uptime_seconds: float
    pid: int = 0

    @property
    def rss_mb(self) -> int:
        return round(self.rss_bytes / _MB)

    @property
    def vms_mb(self) -> int:
        return round(self.vms_bytes / _MB)

    def to_dict(self) -> dict[str, Any]:
        return {
            "uptime": f"{int(self.uptime_seconds)}s",
            "memory": {
                "rss": f"{self.rss_mb}MB",
                "vms": f"{self.vms_mb}MB",
            },
        }


def collect_process_stats(process: psutil.Process | None = None) -> ProcessStats:
    """Read memory and uptime for `process` (defaults to this process)."""
    proc = process or psutil.Process(os.getpid())
    mem = proc.memory_info()
    uptime = max(0.0, time.time() - proc.create_time())
    return ProcessStats(
        rss_bytes=mem.rss,
        vms_bytes=mem.vms,
        uptime_seconds=uptime,
        pid=proc.pid,
    )
