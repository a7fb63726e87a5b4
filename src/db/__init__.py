"""Database access — SQLite handle shared by the stores and the liveness probe."""

from .database import Database, DatabaseUnavailable, to_db_timestamp, utcnow
