"""Diary entries, reminders and synchronization reports."""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .errors import ConfigurationError


class RecurrenceRule(str, Enum):
    """How a reminder's anchor time repeats."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value) -> "RecurrenceRule":
        """Parse a stored or user-supplied rule.

        None, empty string and "none" all mean no recurrence.

        Raises:
            ConfigurationError: If the rule is not recognised
        """
        if isinstance(value, cls):
            return value
        if value is None or value == "":
            return cls.NONE
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown recurrence rule: {value!r}") from None


@dataclass
class Entry:
    """A diary entry or task."""
    title: str
    content: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    event_date: Optional[datetime] = None


@dataclass
class Reminder:
    """A reminder attached to an entry.

    reminder_time is wall-clock time with no timezone; the gateway places it
    in the configured zone when scheduling.
    """
    entry_id: str
    reminder_time: datetime
    id: Optional[int] = None  # Assigned by the store
    is_active: bool = True
    recurrence: RecurrenceRule = RecurrenceRule.NONE
    sound_name: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence not in (RecurrenceRule.NONE, None, "")

    def unsaved_copy(self, entry_id: Optional[str] = None) -> "Reminder":
        """Copy without the store id, optionally rebound to another entry."""
        return replace(self, id=None, entry_id=entry_id or self.entry_id)


@dataclass
class SyncReport:
    """Outcome of one synchronization pass."""
    attempted: int = 0
    scheduled: int = 0
    skipped_past: int = 0
    failed: int = 0
    cancelled: int = 0
    cancel_failed: int = 0
    errors: list = field(default_factory=list)

    def merge(self, other: "SyncReport") -> "SyncReport":
        """Add another report's counts into this one."""
        self.attempted += other.attempted
        self.scheduled += other.scheduled
        self.skipped_past += other.skipped_past
        self.failed += other.failed
        self.cancelled += other.cancelled
        self.cancel_failed += other.cancel_failed
        self.errors.extend(other.errors)
        return self

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "scheduled": self.scheduled,
            "skipped_past": self.skipped_past,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "cancel_failed": self.cancel_failed,
            "errors": [str(e) for e in self.errors],
        }
