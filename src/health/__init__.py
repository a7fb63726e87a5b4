"""Health subsystem — liveness monitor and process stats."""

from .monitor import LivenessMonitor, LivenessState
from .stats import ProcessStats, collect_process_stats
