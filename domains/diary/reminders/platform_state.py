"""Key-value area where the notification platform persists its own state.

Shared with unrelated app preferences (theme, onboarding flags), so
corruption recovery removes only keys in the notification namespace.
"""

import sqlite3
from pathlib import Path
from typing import Optional

from logger import logger
from .. import config


class PlatformStateStore:
    """String key/value pairs in SQLite."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.PLATFORM_STATE_DB
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        if self._connection is not None:
            return self._connection

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, timeout=10.0)
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        self._connection.commit()
        logger.debug(f"Platform state store opened: {self.db_path}")
        return self._connection

    def keys(self) -> list[str]:
        rows = self._get_connection().execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def get(self, key: str) -> Optional[str]:
        row = self._get_connection().execute(
            "SELECT value FROM kv WHERE key = ?", (key,)
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self._get_connection()
        conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value)
        )
        conn.commit()

    def remove(self, key: str) -> bool:
        """Returns True if the key existed."""
        conn = self._get_connection()
        cursor = conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None
