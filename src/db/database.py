"""SQLite database handle.

Connections are opened per call (WAL mode) so the handle can be shared between
the request threadpool and the liveness monitor's executor threads.
Stores create their own tables through `executescript`.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

DB_PATH = Path(__file__).parent.parent.parent / "data" / "taskflow.db"


class DatabaseUnavailable(RuntimeError):
    """Raised when the database cannot be reached or the probe query fails."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db_timestamp(dt: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO string.

    Fixed width keeps lexicographic ordering in SQL equal to time ordering.
    Naive datetimes are taken to be UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


class Database:
    """Handle to the application's SQLite file."""

    def __init__(self, db_path: Path | str | None = None, timeout: float = 5.0) -> None:
        self.db_path = Path(db_path) if db_path else DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout

    def _open(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back on error, always close."""
        conn = self._open()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def executescript(self, script: str) -> None:
        with self.connect() as conn:
            conn.executescript(script)

    def ping(self) -> float:
        """Run a trivial round-trip query and return its latency in ms.

        Raises DatabaseUnavailable if the query fails.
        """
        t0 = time.perf_counter()
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
            try:
                row = conn.execute("SELECT 1 AS health_check").fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise DatabaseUnavailable(f"{type(e).__name__}: {e}") from e
        if not row or row[0] != 1:
            raise DatabaseUnavailable("Unexpected probe result")
        return round((time.perf_counter() - t0) * 1000, 1)
