"""Diary domain configuration - reminder scheduling policy and storage paths."""

import os

from config import DATA_DIR

# Storage
DIARY_DB = os.environ.get("DIARY_DB", str(DATA_DIR / "diary.db"))
PLATFORM_STATE_DB = os.environ.get("DIARY_PLATFORM_STATE_DB", str(DATA_DIR / "platform_state.db"))

# Timezone for wall-clock reminder times (IANA name, falls back to UTC)
DIARY_TIMEZONE = os.environ.get("DIARY_TIMEZONE", "UTC")

# Recurrence expansion
RECURRENCE_HORIZON = int(os.environ.get("DIARY_RECURRENCE_HORIZON", 30))
MAX_EXPANSION_ATTEMPTS = int(os.environ.get("DIARY_MAX_EXPANSION_ATTEMPTS", 100))

# Job id = reminder_id + occurrence_index * JOB_ID_STRIDE
# Reminder ids must stay below the stride or ranges overlap.
JOB_ID_STRIDE = 100000

# Delivery channel
NOTIFICATION_CHANNEL_ID = "mindscribe_reminders"
NOTIFICATION_CHANNEL_NAME = "Reminders"
NOTIFICATION_CHANNEL_DESCRIPTION = "Notifications for diary entries and events"

# Notification content
BODY_PREVIEW_LENGTH = 100
PAYLOAD_MAX_LENGTH = 1024
EMPTY_BODY_TEXT = "Reminder for your entry"
TITLE_PREFIX = "📝"
TEST_NOTIFICATION_ID = 999999

# Platform calls
PLATFORM_CALL_TIMEOUT = float(os.environ.get("DIARY_PLATFORM_TIMEOUT", 10.0))
RECOVERY_SETTLE_SECONDS = 0.3
RESET_SETTLE_SECONDS = 0.5

# Permissions granted by the local platform when requested
NOTIFICATIONS_ALLOWED = os.environ.get("DIARY_NOTIFICATIONS_ALLOWED", "true").lower() != "false"
EXACT_ALARMS_ALLOWED = os.environ.get("DIARY_EXACT_ALARMS_ALLOWED", "true").lower() != "false"

# Persisted platform state namespace and the tokens recovery purges
PLATFORM_STATE_NAMESPACE = "mindscribe.notifications"
CORRUPTED_STATE_KEY_TOKENS = (
    "scheduled_notification",
    "pending_notification",
    "notification",
)

# Error text that marks corrupted platform state when no typed code is available
CORRUPTION_SIGNATURES = (
    "missing type parameter",
    "type parameter",
    "corrupted_state",
    "unpickl",
)
