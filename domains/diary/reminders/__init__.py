"""Reminder scheduling and delivery.

Recurring reminders are expanded into a bounded set of exact-time jobs on a
local notification platform (APScheduler), kept in step with entry edits.
"""

from .recurrence import expand, next_occurrence
from .identifiers import job_id, job_ids_for, reminder_id_for
from .platform import APSchedulerPlatform, NotificationPlatform, PendingNotification
from .platform_state import PlatformStateStore
from .gateway import DeliveryGateway
from .synchronizer import ReminderSynchronizer
from .executor import execute_notification

__all__ = [
    "expand",
    "next_occurrence",
    "job_id",
    "job_ids_for",
    "reminder_id_for",
    "APSchedulerPlatform",
    "NotificationPlatform",
    "PendingNotification",
    "PlatformStateStore",
    "DeliveryGateway",
    "ReminderSynchronizer",
    "execute_notification",
]
