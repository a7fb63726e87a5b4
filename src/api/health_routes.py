"""Health-check routes.

Endpoints:
  GET /health          — overall system health (on-demand DB probe, memory, uptime)
  GET /health/db       — on-demand database probe
  GET /health/monitor  — liveness monitor snapshot (no DB access)

Each returns 200 when healthy and 503 otherwise.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from src.config import settings
from src.db import Database
from src.health.monitor import LivenessMonitor
from src.health.stats import collect_process_stats

logger = logging.getLogger(__name__)

health_router = APIRouter(prefix="/health", tags=["health"])


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _probe(database: Database) -> tuple[float | None, str | None]:
    """Run the shared DB probe, returning (latency_ms, error)."""
    try:
        return database.ping(), None
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return None, str(e)


@health_router.get("/db")
def check_database(request: Request) -> JSONResponse:
    """Probe the database right now."""
    database: Database = request.app.state.database
    latency, error = _probe(database)

    if error is None:
        return JSONResponse(status_code=200, content={
            "success": True,
            "message": "Database is healthy",
            "data": {
                "status": "connected",
                "response_time": f"{latency}ms",
                "timestamp": _now_iso(),
            },
        })
    return JSONResponse(status_code=503, content={
        "success": False,
        "message": "Database is unhealthy",
        "data": {
            "status": "disconnected",
            "error": error,
            "timestamp": _now_iso(),
        },
    })


@health_router.get("")
def check_overall_health(request: Request) -> JSONResponse:
    """Overall health: DB probe, process memory/uptime and the monitor's view."""
    t0 = time.perf_counter()
    database: Database = request.app.state.database
    monitor: LivenessMonitor | None = getattr(request.app.state, "monitor", None)

    latency, error = _probe(database)
    healthy = error is None
    stats = collect_process_stats()

    data: dict[str, Any] = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": _now_iso(),
        "response_time": f"{round((time.perf_counter() - t0) * 1000, 1)}ms",
        "database": {
            "status": "healthy" if healthy else "unhealthy",
            "response_time": f"{latency}ms" if healthy else None,
            "error": error,
        },
        **stats.to_dict(),
        "environment": settings.environment,
    }
    if monitor is not None:
        data["monitor"] = monitor.get_health_status()

    return JSONResponse(status_code=200 if healthy else 503, content={
        "success": healthy,
        "message": "System is healthy" if healthy else "System has issues",
        "data": data,
    })


@health_router.get("/monitor")
def monitor_status(request: Request) -> JSONResponse:
    """Background liveness monitor state, read without touching the DB."""
    monitor: LivenessMonitor = request.app.state.monitor
    state = monitor.state
    return JSONResponse(status_code=200 if state.is_healthy else 503, content={
        "success": state.is_healthy,
        "data": {**state.to_dict(), "running": monitor.is_running},
    })
