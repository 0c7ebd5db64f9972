"""Deliver a notification when its scheduled job fires."""

from typing import Awaitable, Callable, Optional

from logger import logger
from utils.log_sanitizer import sanitize_for_log


async def execute_notification(
    notification,
    deliver: Optional[Callable[..., Awaitable]] = None
) -> bool:
    """Fire a notification - hand it to the application shell for display.

    Called by the scheduler when a job's fire time arrives, and directly for
    immediate notifications.

    Args:
        notification: The PendingNotification being delivered
        deliver: Async callable that shows it to the user; without one the
            notification is only logged

    Returns:
        True if delivered (or logged) without error
    """
    logger.info(
        f"Firing notification {notification.id}: "
        f"'{sanitize_for_log(notification.title)}' (channel {notification.channel})"
    )

    if deliver is None:
        return True

    try:
        await deliver(notification)
        return True
    except Exception as e:
        logger.error(f"Failed to deliver notification {notification.id}: {e}")
        return False
