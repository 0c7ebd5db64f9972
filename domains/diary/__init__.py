"""Diary domain - entries, reminders and the reminder delivery engine."""

from .models import Entry, Reminder, RecurrenceRule, SyncReport
from .store import EntryStore
from .engine import ReminderEngine, build_engine

__all__ = [
    "Entry",
    "Reminder",
    "RecurrenceRule",
    "SyncReport",
    "EntryStore",
    "ReminderEngine",
    "build_engine",
]
