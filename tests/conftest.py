"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.auth.tokens import RefreshTokenStore
from src.config import settings
from src.db import Database
from src.tasks.store import TaskStore
from tests.fakes import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(tmp_path: Path) -> Database:
    return Database(tmp_path / "test.db")


@pytest.fixture
def token_store(database: Database) -> RefreshTokenStore:
    return RefreshTokenStore(database)


@pytest.fixture
def task_store(database: Database) -> TaskStore:
    return TaskStore(database)


@pytest.fixture
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    """App client with a temp database and slow monitor cadences."""
    monkeypatch.setattr(settings, "database_path", str(tmp_path / "api.db"))
    monkeypatch.setattr(settings, "probe_interval", 3600)
    monkeypatch.setattr(settings, "cleanup_interval", 3600)
    monkeypatch.setattr(settings, "stats_interval", 3600)
    monkeypatch.setattr(settings, "slack_webhook_url", "")
    monkeypatch.setattr(settings, "telegram_bot_token", "")

    from src.api.server import create_app

    with TestClient(create_app()) as c:
        yield c
