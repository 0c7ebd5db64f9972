"""Local notification platform backed by APScheduler.

The gateway talks to a NotificationPlatform only. APSchedulerPlatform is the
in-process implementation: each job is a DateTrigger job in a dedicated job
store, and the list of pending notifications is also persisted, as one JSON
document, in the platform state store so jobs survive a restart. Every
schedule/cancel rewrites that document; if it cannot be decoded the platform
raises PlatformStateCorrupted and stays broken until the key is purged.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from logger import logger
from .. import config
from ..errors import NotificationPermissionError
from .executor import execute_notification
from .platform_state import PlatformStateStore

CORRUPTED_STATE_CODE = "corrupted_state"
SCHEDULED_KEY = f"{config.PLATFORM_STATE_NAMESPACE}.scheduled_notifications"
JOBSTORE_ALIAS = "notifications"


class PlatformStateCorrupted(Exception):
    """Persisted platform schedule state could not be decoded."""
    code = CORRUPTED_STATE_CODE


@dataclass
class PendingNotification:
    """A notification the platform has been asked to deliver."""
    id: int
    title: str
    body: str
    fire_time: datetime
    channel: str
    payload: Optional[str] = None
    sound: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "fire_time": self.fire_time.isoformat(),
            "channel": self.channel,
            "payload": self.payload,
            "sound": self.sound,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingNotification":
        return cls(
            id=int(data["id"]),
            title=data["title"],
            body=data["body"],
            fire_time=datetime.fromisoformat(data["fire_time"]),
            channel=data["channel"],
            payload=data.get("payload"),
            sound=data.get("sound"),
        )


class NotificationPlatform(ABC):
    """Operations the delivery gateway needs from a notification platform."""

    @abstractmethod
    async def initialize(self) -> bool:
        """Connect to the platform and restore persisted jobs."""

    @abstractmethod
    async def create_channel(self, channel_id: str, name: str, description: str) -> None:
        pass

    @abstractmethod
    async def schedule_exact_at(
        self,
        notification_id: int,
        title: str,
        body: str,
        when: datetime,
        channel: str,
        payload: Optional[str] = None,
        sound: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    async def show(self, notification_id: int, title: str, body: str,
                   channel: str, payload: Optional[str] = None) -> None:
        pass

    @abstractmethod
    async def cancel(self, notification_id: int) -> None:
        pass

    @abstractmethod
    async def cancel_all(self) -> None:
        pass

    @abstractmethod
    async def list_pending(self) -> list[PendingNotification]:
        pass

    @abstractmethod
    async def query_permission(self) -> bool:
        pass

    @abstractmethod
    async def request_permission(self) -> bool:
        pass

    @abstractmethod
    async def query_exact_alarm_allowed(self) -> bool:
        pass

    @abstractmethod
    async def request_exact_alarm(self) -> bool:
        pass


class APSchedulerPlatform(NotificationPlatform):
    """Notification platform running inside the app's asyncio loop."""

    def __init__(
        self,
        scheduler: AsyncIOScheduler,
        state: PlatformStateStore,
        deliver: Optional[Callable[..., Awaitable]] = None,
        allow_notifications: Optional[bool] = None,
        allow_exact_alarms: Optional[bool] = None,
        autostart: bool = True,
    ):
        """Initialize the platform.

        Args:
            scheduler: Scheduler that runs the delivery jobs
            state: Persisted platform state area
            deliver: Async callable that displays a fired notification
            allow_notifications: Whether a permission request is granted
                (default from config)
            allow_exact_alarms: Whether exact-timing is granted (default from config)
            autostart: Start the scheduler during initialize()
        """
        self.scheduler = scheduler
        self.state = state
        self.deliver = deliver
        self.allow_notifications = (
            config.NOTIFICATIONS_ALLOWED if allow_notifications is None else allow_notifications
        )
        self.allow_exact_alarms = (
            config.EXACT_ALARMS_ALLOWED if allow_exact_alarms is None else allow_exact_alarms
        )
        self.autostart = autostart

        self.channels: dict[str, dict] = {}
        self._notifications_granted = False
        self._exact_alarms_granted = False

        try:
            self.scheduler.add_jobstore(MemoryJobStore(), alias=JOBSTORE_ALIAS)
        except ValueError:
            # Job store already registered by an earlier platform instance
            pass

    # --- Persisted schedule ---

    def _load_descriptors(self) -> list[PendingNotification]:
        raw = self.state.get(SCHEDULED_KEY)
        if raw is None:
            return []
        try:
            items = json.loads(raw)
            if not isinstance(items, list):
                raise TypeError(f"expected list, got {type(items).__name__}")
            return [PendingNotification.from_dict(item) for item in items]
        except (ValueError, TypeError, KeyError) as e:
            raise PlatformStateCorrupted(
                f"Missing type parameter while reading persisted schedule: {e}"
            ) from e

    def _save_descriptors(self, notifications: list[PendingNotification]) -> None:
        if not notifications:
            self.state.remove(SCHEDULED_KEY)
            return
        self.state.set(SCHEDULED_KEY, json.dumps([n.to_dict() for n in notifications]))

    def _add_job(self, notification: PendingNotification) -> None:
        # A stopped scheduler queues duplicates instead of replacing them
        try:
            self.scheduler.remove_job(str(notification.id), jobstore=JOBSTORE_ALIAS)
        except JobLookupError:
            pass
        self.scheduler.add_job(
            self._fire,
            trigger=DateTrigger(run_date=notification.fire_time),
            args=[notification.to_dict()],
            id=str(notification.id),
            name=f"notification:{notification.title[:30]}",
            jobstore=JOBSTORE_ALIAS,
            replace_existing=True,
            misfire_grace_time=None,
        )

    async def _fire(self, descriptor: dict) -> None:
        notification = PendingNotification.from_dict(descriptor)
        try:
            remaining = [n for n in self._load_descriptors() if n.id != notification.id]
            self._save_descriptors(remaining)
        except PlatformStateCorrupted as e:
            logger.warning(f"Could not drop fired notification {notification.id} from state: {e}")
        await execute_notification(notification, self.deliver)

    # --- NotificationPlatform ---

    async def initialize(self) -> bool:
        """Restore persisted future jobs and start the scheduler.

        Raises:
            PlatformStateCorrupted: If the persisted schedule is unreadable
        """
        now = datetime.now(timezone.utc)
        restored = []
        skipped = 0

        for notification in self._load_descriptors():
            if notification.fire_time <= now:
                skipped += 1
                continue
            self._add_job(notification)
            restored.append(notification)

        self._save_descriptors(restored)
        logger.info(f"Restored {len(restored)} pending notifications (dropped {skipped} past)")

        if self.autostart and not self.scheduler.running:
            self.scheduler.start()
            logger.info("Notification scheduler started")

        return True

    async def create_channel(self, channel_id: str, name: str, description: str) -> None:
        self.channels[channel_id] = {"name": name, "description": description}

    async def schedule_exact_at(
        self,
        notification_id: int,
        title: str,
        body: str,
        when: datetime,
        channel: str,
        payload: Optional[str] = None,
        sound: Optional[str] = None,
    ) -> None:
        """Schedule a notification at an exact, timezone-aware time.

        Raises:
            NotificationPermissionError: If permission has not been granted
            PlatformStateCorrupted: If the persisted schedule is unreadable
        """
        if not self._notifications_granted:
            raise NotificationPermissionError("Notification permission not granted")

        pending = self._load_descriptors()
        notification = PendingNotification(
            id=notification_id,
            title=title,
            body=body,
            fire_time=when,
            channel=channel,
            payload=payload,
            sound=sound,
        )
        self._add_job(notification)

        pending = [n for n in pending if n.id != notification_id]
        pending.append(notification)
        self._save_descriptors(pending)

    async def show(self, notification_id: int, title: str, body: str,
                   channel: str, payload: Optional[str] = None) -> None:
        if not self._notifications_granted:
            raise NotificationPermissionError("Notification permission not granted")

        notification = PendingNotification(
            id=notification_id,
            title=title,
            body=body,
            fire_time=datetime.now(timezone.utc),
            channel=channel,
            payload=payload,
        )
        await execute_notification(notification, self.deliver)

    async def cancel(self, notification_id: int) -> None:
        """Remove a job, then drop it from the persisted schedule.

        The live job is removed even when the persisted schedule is unreadable.

        Raises:
            PlatformStateCorrupted: If the persisted schedule is unreadable
        """
        try:
            self.scheduler.remove_job(str(notification_id), jobstore=JOBSTORE_ALIAS)
        except JobLookupError:
            pass

        pending = self._load_descriptors()
        remaining = [n for n in pending if n.id != notification_id]
        if len(remaining) != len(pending):
            self._save_descriptors(remaining)

    async def cancel_all(self) -> None:
        self.scheduler.remove_all_jobs(jobstore=JOBSTORE_ALIAS)
        self.state.remove(SCHEDULED_KEY)

    async def list_pending(self) -> list[PendingNotification]:
        return sorted(self._load_descriptors(), key=lambda n: n.fire_time)

    async def query_permission(self) -> bool:
        return self._notifications_granted

    async def request_permission(self) -> bool:
        self._notifications_granted = self.allow_notifications
        return self._notifications_granted

    async def query_exact_alarm_allowed(self) -> bool:
        return self._exact_alarms_granted

    async def request_exact_alarm(self) -> bool:
        self._exact_alarms_granted = self.allow_exact_alarms
        return self._exact_alarms_granted

    async def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            # Let the scheduler's loop callbacks drain
            await asyncio.sleep(0)
