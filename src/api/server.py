"""FastAPI server for the task backend."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.health_routes import health_router
from src.api.task_routes import task_router
from src.auth.tokens import RefreshTokenStore
from src.config import settings
from src.db import Database
from src.health.monitor import LivenessMonitor
from src.health.stats import collect_process_stats
from src.notifications import NotificationManager
from src.tasks.store import TaskStore

logger = logging.getLogger(__name__)


def build_monitor(
    database: Database,
    token_store: RefreshTokenStore,
    notifier: NotificationManager | None = None,
) -> LivenessMonitor:
    """Wire the liveness monitor to the database, token store and notifier."""

    def _on_transition(healthy: bool, detail: str) -> None:
        if notifier is not None and notifier.is_enabled:
            asyncio.ensure_future(notifier.notify_database_transition(healthy, detail))

    def _on_escalation(failures: int, detail: str) -> None:
        if notifier is not None and notifier.is_enabled:
            asyncio.ensure_future(notifier.notify_database_escalation(failures, detail))

    return LivenessMonitor(
        probe=database.ping,
        cleanup=token_store.delete_expired,
        stats=collect_process_stats,
        probe_interval=settings.probe_interval,
        cleanup_interval=settings.cleanup_interval,
        stats_interval=settings.stats_interval,
        probe_log_every=settings.probe_log_every,
        escalate_after=settings.escalate_after,
        on_transition=_on_transition,
        on_escalation=_on_escalation,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize shared resources on startup, stop background jobs on shutdown."""
    database = Database(settings.database_path)
    app.state.database = database

    try:
        latency = database.ping()
        logger.info("Database connected: %s (%.1fms)", database.db_path, latency)
    except Exception:
        logger.exception("Database connection failed on startup")
        raise

    app.state.task_store = TaskStore(database)
    token_store = RefreshTokenStore(database, ttl=timedelta(days=settings.refresh_token_ttl_days))
    app.state.token_store = token_store

    notifier = NotificationManager()
    app.state.notifier = notifier

    monitor = build_monitor(database, token_store, notifier)
    app.state.monitor = monitor
    await monitor.start()

    yield

    # Shutdown
    await monitor.stop()


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return JSONResponse(status_code=404, content={
            "success": False,
            "message": "Route not found",
            "path": request.url.path,
        })
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={
        "success": False,
        "message": "Validation failed",
        "errors": jsonable_encoder(exc.errors()),
    })


async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={
        "success": False,
        "message": "Internal server error",
    })


def create_app() -> FastAPI:
    app = FastAPI(
        title="Taskflow - Task Management API",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(Exception, _unhandled)

    app.include_router(health_router)
    app.include_router(task_router, prefix="/api")

    return app


app = create_app()
