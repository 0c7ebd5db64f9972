"""Reminder engine error taxonomy and the gateway result type.

Expansion and identifier errors stay local to one occurrence or reminder.
Platform errors are wrapped in a GatewayResult at the gateway boundary so
best-effort callers (cancel, enumerate) can ignore them and schedule callers
can count them.
"""

from dataclasses import dataclass
from typing import Any, Optional


class ReminderError(Exception):
    """Base class for reminder engine errors."""


class ConfigurationError(ReminderError):
    """Unknown or unsupported recurrence rule."""


class InvalidIdentifierError(ReminderError):
    """A job id was requested for a reminder id that is not usable."""


class PastTimeError(ReminderError):
    """Scheduling was requested for a time that is not in the future."""


class PlatformError(ReminderError):
    """Transient notification platform failure. Callers may retry."""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class PlatformCorruptionError(PlatformError):
    """Platform persisted state was corrupted.

    Recovery has already run by the time this is seen; the caller must retry
    the operation itself.
    """


class NotificationPermissionError(ReminderError):
    """The user has not granted notification permission."""


@dataclass
class GatewayResult:
    """Success/failure of one gateway operation."""
    ok: bool
    error: Optional[ReminderError] = None
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "GatewayResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ReminderError, value: Any = None) -> "GatewayResult":
        return cls(ok=False, error=error, value=value)

    def __bool__(self) -> bool:
        return self.ok
