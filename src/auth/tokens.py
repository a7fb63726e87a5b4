"""Refresh-token storage — one active refresh token per user.

Tokens are opaque strings issued elsewhere; this store only tracks who owns
them and when they expire. `delete_expired` is the maintenance hook the
liveness monitor calls on its cleanup cadence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from src.db import Database, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=30)


@dataclass
class RefreshToken:
    token: str
    user_id: str
    expires_at: str
    created_at: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "RefreshToken":
        return cls(
            token=row["token"],
            user_id=row["user_id"],
            expires_at=row["expires_at"],
            created_at=row["created_at"],
        )


class RefreshTokenStore:
    """SQLite-backed refresh-token table."""

    def __init__(self, database: Database, ttl: timedelta = DEFAULT_TTL) -> None:
        self._db = database
        self.ttl = ttl
        self._init_db()

    def _init_db(self) -> None:
        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS refresh_tokens (
                token      TEXT PRIMARY KEY,
                user_id    TEXT NOT NULL UNIQUE,
                expires_at TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_refresh_tokens_expiry
                ON refresh_tokens (expires_at);
        """)

    def save(
        self,
        user_id: str,
        token: str,
        ttl: timedelta | None = None,
        now: datetime | None = None,
    ) -> RefreshToken:
        """Store `token` as the user's refresh token, replacing any previous one.

        The user's expired tokens are purged first.
        """
        now = now or utcnow()
        record = RefreshToken(
            token=token,
            user_id=user_id,
            expires_at=to_db_timestamp(now + (ttl if ttl is not None else self.ttl)),
            created_at=to_db_timestamp(now),
        )
        with self._db.connect() as conn:
            conn.execute(
                "DELETE FROM refresh_tokens WHERE user_id = ? AND expires_at < ?",
                (user_id, to_db_timestamp(now)),
            )
            conn.execute(
                "INSERT INTO refresh_tokens (token, user_id, expires_at, created_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(user_id) DO UPDATE SET "
                "token = excluded.token, expires_at = excluded.expires_at, "
                "created_at = excluded.created_at",
                (record.token, record.user_id, record.expires_at, record.created_at),
            )
        return record

    def get(self, token: str) -> RefreshToken | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM refresh_tokens WHERE token = ?", (token,)
            ).fetchone()
        return RefreshToken.from_row(dict(row)) if row else None

    def validate(self, token: str, now: datetime | None = None) -> str | None:
        """Return the owning user id, or None if the token is unknown or expired."""
        record = self.get(token)
        if record is None:
            return None
        if record.expires_at < to_db_timestamp(now or utcnow()):
            return None
        return record.user_id

    def remove(self, token: str) -> bool:
        """Revoke a single token (logout)."""
        with self._db.connect() as conn:
            cursor = conn.execute("DELETE FROM refresh_tokens WHERE token = ?", (token,))
        return cursor.rowcount > 0

    def remove_all_for_user(self, user_id: str) -> int:
        with self._db.connect() as conn:
            cursor = conn.execute("DELETE FROM refresh_tokens WHERE user_id = ?", (user_id,))
        return cursor.rowcount

    def delete_expired(self, cutoff: datetime) -> int:
        """Delete tokens whose expiry is strictly before `cutoff`."""
        with self._db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM refresh_tokens WHERE expires_at < ?",
                (to_db_timestamp(cutoff),),
            )
        return cursor.rowcount

    def count(self) -> int:
        with self._db.connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM refresh_tokens").fetchone()
        return int(row[0])
