"""SQLite persistence for diary entries and their reminders.

The reminder engine treats this as an external collaborator: it reads and
writes through the methods below and never touches the schema itself.
"""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional

from logger import logger
from . import config
from .errors import ConfigurationError
from .models import Entry, RecurrenceRule, Reminder


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class EntryStore:
    """Entries and reminders in a local SQLite database (WAL mode)."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or config.DIARY_DB
        self._connection: Optional[sqlite3.Connection] = None

    def _get_connection(self) -> sqlite3.Connection:
        """Get or create database connection with WAL mode."""
        if self._connection is not None:
            return self._connection

        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._connection = sqlite3.connect(
            self.db_path,
            check_same_thread=False,
            timeout=10.0
        )
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA journal_mode=WAL")
        self._connection.execute("PRAGMA busy_timeout=5000")
        self._connection.execute("PRAGMA foreign_keys=ON")

        self._init_schema(self._connection)

        logger.info(f"Diary store initialized: {self.db_path}")
        return self._connection

    @staticmethod
    def _init_schema(conn: sqlite3.Connection) -> None:
        """Create tables if they don't exist."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS entries (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                event_date TEXT
            );

            CREATE TABLE IF NOT EXISTS reminders (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                entry_id TEXT NOT NULL REFERENCES entries(id) ON DELETE CASCADE,
                reminder_time TEXT NOT NULL,
                is_active INTEGER NOT NULL DEFAULT 1,
                recurrence TEXT NOT NULL DEFAULT 'none',
                sound_name TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_reminders_entry ON reminders(entry_id);
        """)
        conn.commit()

    @contextmanager
    def _transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> Entry:
        return Entry(
            id=row["id"],
            title=row["title"],
            content=row["content"],
            created_at=_from_iso(row["created_at"]),
            updated_at=_from_iso(row["updated_at"]),
            event_date=_from_iso(row["event_date"]),
        )

    @staticmethod
    def _row_to_reminder(row: sqlite3.Row) -> Reminder:
        try:
            recurrence = RecurrenceRule.parse(row["recurrence"])
        except ConfigurationError as e:
            # Keep the raw rule; expansion reports it for this reminder only
            logger.warning(f"Reminder {row['id']}: {e}")
            recurrence = row["recurrence"]

        return Reminder(
            id=row["id"],
            entry_id=row["entry_id"],
            reminder_time=_from_iso(row["reminder_time"]),
            is_active=bool(row["is_active"]),
            recurrence=recurrence,
            sound_name=row["sound_name"],
        )

    # --- Entries ---

    def get_all_entries(self) -> list[Entry]:
        """All entries, newest first."""
        rows = self._get_connection().execute(
            "SELECT * FROM entries ORDER BY created_at DESC"
        ).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def get_entry(self, entry_id: str) -> Optional[Entry]:
        row = self._get_connection().execute(
            "SELECT * FROM entries WHERE id = ?", (entry_id,)
        ).fetchone()
        return self._row_to_entry(row) if row else None

    def create_entry(self, entry: Entry) -> Entry:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO entries (id, title, content, created_at, updated_at, event_date)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (entry.id, entry.title, entry.content, _to_iso(entry.created_at),
                 _to_iso(entry.updated_at), _to_iso(entry.event_date))
            )
        return entry

    def update_entry(self, entry: Entry) -> Entry:
        entry.updated_at = datetime.now()
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                UPDATE entries SET title = ?, content = ?, updated_at = ?, event_date = ?
                WHERE id = ?
                """,
                (entry.title, entry.content, _to_iso(entry.updated_at),
                 _to_iso(entry.event_date), entry.id)
            )
            if cursor.rowcount == 0:
                raise KeyError(f"Entry {entry.id} not found")
        return entry

    def delete_entry(self, entry_id: str) -> bool:
        """Delete an entry and (by cascade) its reminders.

        Returns:
            True if a row was deleted
        """
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM entries WHERE id = ?", (entry_id,))
            return cursor.rowcount > 0

    # --- Reminders ---

    def create_reminder(self, reminder: Reminder) -> Reminder:
        """Persist a reminder and return a copy carrying its id.

        A reminder that already has an id (one being re-saved after its old
        row was removed) keeps it; otherwise SQLite assigns the next id.
        """
        recurrence = getattr(reminder.recurrence, "value", reminder.recurrence) or "none"
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO reminders (id, entry_id, reminder_time, is_active, recurrence, sound_name)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (reminder.id, reminder.entry_id, _to_iso(reminder.reminder_time),
                 int(reminder.is_active), recurrence, reminder.sound_name)
            )
            new_id = cursor.lastrowid
        created = reminder.unsaved_copy()
        created.id = new_id
        return created

    def get_reminder(self, reminder_id: int) -> Optional[Reminder]:
        row = self._get_connection().execute(
            "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
        ).fetchone()
        return self._row_to_reminder(row) if row else None

    def get_reminders_for_entry(self, entry_id: str) -> list[Reminder]:
        rows = self._get_connection().execute(
            "SELECT * FROM reminders WHERE entry_id = ? ORDER BY reminder_time",
            (entry_id,)
        ).fetchall()
        return [self._row_to_reminder(r) for r in rows]

    def set_reminder_active(self, reminder_id: int, is_active: bool) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE reminders SET is_active = ? WHERE id = ?",
                (int(is_active), reminder_id)
            )
            return cursor.rowcount > 0

    def delete_reminders_for_entry(self, entry_id: str) -> int:
        """Returns the number of reminders deleted."""
        with self._transaction() as conn:
            cursor = conn.execute("DELETE FROM reminders WHERE entry_id = ?", (entry_id,))
            return cursor.rowcount

    # --- Stats ---

    def get_statistics(self) -> dict[str, int]:
        conn = self._get_connection()

        def count(sql: str) -> int:
            return conn.execute(sql).fetchone()[0]

        return {
            "total_entries": count("SELECT COUNT(*) FROM entries"),
            "entries_with_event_date": count(
                "SELECT COUNT(*) FROM entries WHERE event_date IS NOT NULL"
            ),
            "total_reminders": count("SELECT COUNT(*) FROM reminders"),
            "active_reminders": count("SELECT COUNT(*) FROM reminders WHERE is_active = 1"),
            "recurring_reminders": count(
                "SELECT COUNT(*) FROM reminders WHERE recurrence != 'none'"
            ),
        }

    def close(self) -> None:
        """Close database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
