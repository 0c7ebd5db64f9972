"""Delivery gateway - the only component that talks to the notification platform.

Every operation returns a GatewayResult instead of raising, so callers on
destructive paths (entry delete) can ignore failures and callers on the
schedule path can count them.

initialize() and reset_system() run in an exclusive phase: they wait for
in-flight schedule/cancel calls and hold new ones back until they finish.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from logger import logger
from utils.log_sanitizer import sanitize_for_log
from .. import config
from ..errors import (
    GatewayResult,
    InvalidIdentifierError,
    NotificationPermissionError,
    PastTimeError,
    PlatformCorruptionError,
    PlatformError,
    ReminderError,
)
from .platform import CORRUPTED_STATE_CODE, NotificationPlatform
from .platform_state import PlatformStateStore


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """Resolve an IANA zone name, falling back to UTC."""
    if not name:
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.warning(f"Unknown timezone {name!r}, falling back to UTC: {e}")
        return timezone.utc


def is_corruption_error(error: BaseException) -> bool:
    """Check whether a platform error means its persisted state is corrupted.

    Prefers the typed code set by the platform binding. Matching on the
    error text is a last resort for bindings that only raise generic errors.
    """
    if getattr(error, "code", None) == CORRUPTED_STATE_CODE:
        return True
    text = str(error).lower()
    return any(signature in text for signature in config.CORRUPTION_SIGNATURES)


def is_schedule_state_key(key: str) -> bool:
    """Whether a persisted key belongs to the notification subsystem."""
    if key.startswith(config.PLATFORM_STATE_NAMESPACE):
        return True
    return any(token in key for token in config.CORRUPTED_STATE_KEY_TOKENS)


def normalize_job_id(job_id: int) -> int:
    """Clamp a job id to a positive value (abs, then +1 if zero)."""
    if job_id > 0:
        return job_id
    normalized = abs(job_id)
    return normalized if normalized > 0 else normalized + 1


class _PhaseGate:
    """Shared/exclusive gate for gateway operations on one event loop."""

    def __init__(self):
        self._cond = asyncio.Condition()
        self._active = 0
        self._exclusive = False

    @asynccontextmanager
    async def shared(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._exclusive)
            self._active += 1
        try:
            yield
        finally:
            async with self._cond:
                self._active -= 1
                self._cond.notify_all()

    @asynccontextmanager
    async def exclusive(self):
        async with self._cond:
            await self._cond.wait_for(lambda: not self._exclusive and self._active == 0)
            self._exclusive = True
        try:
            yield
        finally:
            async with self._cond:
                self._exclusive = False
                self._cond.notify_all()


class DeliveryGateway:
    """Owns the connection to the notification platform."""

    def __init__(
        self,
        platform: NotificationPlatform,
        state: PlatformStateStore,
        timezone_name: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
        call_timeout: Optional[float] = None,
        settle_delay: Optional[float] = None,
    ):
        """Initialize the gateway.

        Args:
            platform: Notification platform binding
            state: The platform's persisted key-value area (purged on recovery)
            timezone_name: IANA zone for wall-clock fire times (default from config)
            clock: Returns the current aware time; defaults to the system clock
            call_timeout: Seconds to wait for any single platform call
            settle_delay: Seconds to let the platform settle during reset
        """
        self.platform = platform
        self.state = state
        self.timezone_name = config.DIARY_TIMEZONE if timezone_name is None else timezone_name
        self.zone: tzinfo = resolve_timezone(self.timezone_name)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.call_timeout = config.PLATFORM_CALL_TIMEOUT if call_timeout is None else call_timeout
        self.settle_delay = config.RESET_SETTLE_SECONDS if settle_delay is None else settle_delay

        self.permissions = {"notifications": False, "exact_alarms": False}
        self.initialized = False
        self._gate = _PhaseGate()

    # --- Time ---

    def now(self) -> datetime:
        """Current time in the active zone."""
        return self._clock().astimezone(self.zone)

    def wall_now(self) -> datetime:
        """Current wall-clock time with the zone stripped, for naive reminder times."""
        return self.now().replace(tzinfo=None)

    def localize(self, fire_time: datetime) -> datetime:
        """Place a fire time in the active zone, falling back to UTC."""
        try:
            if fire_time.tzinfo is None:
                return fire_time.replace(tzinfo=self.zone)
            return fire_time.astimezone(self.zone)
        except (ValueError, OverflowError) as e:
            logger.warning(f"Timezone conversion failed for {fire_time}, using UTC: {e}")
            if fire_time.tzinfo is None:
                return fire_time.replace(tzinfo=timezone.utc)
            return fire_time.astimezone(timezone.utc)

    def to_wall_clock(self, value: datetime) -> datetime:
        """Naive wall-clock time in the active zone; naive input is returned as is."""
        if value.tzinfo is None:
            return value
        return self.localize(value).replace(tzinfo=None)

    async def _call(self, coro):
        """Await a platform call with the configured timeout."""
        return await asyncio.wait_for(coro, timeout=self.call_timeout)

    # --- Lifecycle ---

    async def initialize(self) -> GatewayResult:
        """Set up the platform. Best-effort: a failing step is logged and skipped."""
        async with self._gate.exclusive():
            return await self._initialize()

    async def _initialize(self) -> GatewayResult:
        logger.info("Initializing notification gateway...")
        failed_steps = []

        # Step 1: timezone
        self.zone = resolve_timezone(self.timezone_name)
        logger.info(f"Notification timezone: {self.zone}")

        # Step 2: platform connection, restoring persisted jobs
        try:
            await self._call(self.platform.initialize())
        except Exception as e:
            failed_steps.append("platform")
            logger.error(f"Notification platform failed to initialize: {e}")
            if is_corruption_error(e):
                logger.warning("Persisted notification state is corrupted, clearing it")
                await self._recover_from_corruption()
                try:
                    await self._call(self.platform.initialize())
                    failed_steps.remove("platform")
                except Exception as retry_error:
                    logger.error(f"Notification platform still failing after recovery: {retry_error}")

        # Step 3: delivery channel
        try:
            await self._call(self.platform.create_channel(
                config.NOTIFICATION_CHANNEL_ID,
                config.NOTIFICATION_CHANNEL_NAME,
                config.NOTIFICATION_CHANNEL_DESCRIPTION,
            ))
            logger.info(f"Notification channel registered: {config.NOTIFICATION_CHANNEL_ID}")
        except Exception as e:
            failed_steps.append("channel")
            logger.error(f"Error creating notification channel: {e}")

        # Step 4: notification permission
        try:
            self.permissions["notifications"] = bool(
                await self._call(self.platform.request_permission())
            )
            logger.info(f"Notification permission granted: {self.permissions['notifications']}")
        except Exception as e:
            failed_steps.append("permission")
            self.permissions["notifications"] = False
            logger.error(f"Error requesting notification permission: {e}")

        # Step 5: exact-timing permission
        try:
            allowed = await self._call(self.platform.query_exact_alarm_allowed())
            if not allowed:
                allowed = await self._call(self.platform.request_exact_alarm())
            self.permissions["exact_alarms"] = bool(allowed)
            logger.info(f"Exact alarm permission: {self.permissions['exact_alarms']}")
        except Exception as e:
            failed_steps.append("exact_alarms")
            self.permissions["exact_alarms"] = False
            logger.error(f"Error checking exact alarm permission: {e}")

        self.initialized = True
        if failed_steps:
            logger.warning(f"Notification gateway ready with failed steps: {failed_steps}")
        else:
            logger.info("Notification gateway ready")
        return GatewayResult.success(value={"failed_steps": failed_steps})

    async def reset_system(self) -> GatewayResult:
        """Last-resort recovery: cancel all, purge state, settle, re-initialize.

        Only a failure of the final initialize() is reported.
        """
        async with self._gate.exclusive():
            logger.info("Performing complete notification system reset...")
            await self._cancel_all()
            await self._recover_from_corruption()
            await asyncio.sleep(self.settle_delay)
            try:
                result = await self._initialize()
            except Exception as e:
                logger.error(f"Error during notification system reset: {e}")
                return GatewayResult.failure(PlatformError(f"Re-initialization failed: {e}", e))
            logger.info("Notification system reset completed")
            return result

    # --- Scheduling ---

    async def schedule_one(
        self,
        job_id: int,
        title: str,
        body: str,
        fire_time: datetime,
        payload: Optional[str] = None,
        sound: Optional[str] = None,
    ) -> GatewayResult:
        """Schedule one notification at an exact time.

        Args:
            job_id: Platform id (non-positive ids are clamped to positive)
            title: Notification title
            body: Notification body
            fire_time: When to fire; naive times are wall clock in the active zone
            payload: Opaque string handed back on delivery
            sound: Custom sound name, None or "default" for the platform default

        Returns:
            GatewayResult with the job id as value on success; on failure the
            error is PastTimeError, NotificationPermissionError, PlatformError
            or PlatformCorruptionError
        """
        if isinstance(job_id, bool) or not isinstance(job_id, int):
            return GatewayResult.failure(InvalidIdentifierError(f"Job id must be an int, got {job_id!r}"))

        notification_id = normalize_job_id(job_id)
        if notification_id != job_id:
            logger.warning(f"Adjusted notification id from {job_id} to {notification_id} (must be positive)")

        when = self.localize(fire_time)
        now = self.now()
        if when <= now:
            logger.debug(f"Not scheduling notification {notification_id}: {when} is not after {now}")
            return GatewayResult.failure(PastTimeError(f"Fire time {when.isoformat()} is not in the future"))

        safe_payload = payload[:config.PAYLOAD_MAX_LENGTH] if payload else None
        safe_sound = sound if sound and sound != "default" else None

        async with self._gate.shared():
            try:
                await self._call(self.platform.schedule_exact_at(
                    notification_id,
                    title,
                    body,
                    when,
                    config.NOTIFICATION_CHANNEL_ID,
                    payload=safe_payload,
                    sound=safe_sound,
                ))
            except NotificationPermissionError as e:
                logger.warning(f"Cannot schedule notification {notification_id}: {e}")
                return GatewayResult.failure(e)
            except asyncio.TimeoutError as e:
                logger.error(f"Timed out scheduling notification {notification_id}")
                return GatewayResult.failure(PlatformError("Platform call timed out", e))
            except Exception as e:
                logger.error(f"Error scheduling notification {notification_id}: {e}")
                if is_corruption_error(e):
                    logger.warning("Detected corrupted notification data, attempting recovery")
                    await self._recover_from_corruption()
                    return GatewayResult.failure(
                        PlatformCorruptionError(f"Corrupted platform state: {e}", e)
                    )
                return GatewayResult.failure(PlatformError(str(e), e))

        logger.info(
            f"Scheduled notification {notification_id} '{sanitize_for_log(title)}' for {when.isoformat()}"
        )
        return GatewayResult.success(value=notification_id)

    async def show_immediate(self, job_id: int, title: str, body: str,
                             payload: Optional[str] = None) -> GatewayResult:
        """Deliver a notification now."""
        async with self._gate.shared():
            try:
                await self._call(self.platform.show(
                    normalize_job_id(job_id), title, body,
                    config.NOTIFICATION_CHANNEL_ID, payload=payload,
                ))
            except NotificationPermissionError as e:
                return GatewayResult.failure(e)
            except Exception as e:
                logger.error(f"Error showing immediate notification: {e}")
                return GatewayResult.failure(PlatformError(str(e), e))
        return GatewayResult.success(value=job_id)

    async def send_test_notification(self) -> GatewayResult:
        return await self.show_immediate(
            config.TEST_NOTIFICATION_ID,
            "🎉 Test Notification",
            "If you see this, notifications are working!",
        )

    # --- Cancellation ---

    async def cancel_one(self, job_id: int) -> GatewayResult:
        """Cancel one job. Never raises; failures are logged and returned."""
        if job_id <= 0:
            return GatewayResult.success()

        async with self._gate.shared():
            try:
                await self._call(self.platform.cancel(job_id))
            except Exception as e:
                logger.warning(f"Error cancelling notification {job_id}: {e}")
                if is_corruption_error(e):
                    logger.warning("Detected corrupted notification data, attempting recovery")
                    await self._recover_from_corruption()
                return GatewayResult.failure(self._wrap(e))

        logger.debug(f"Notification {job_id} cancelled")
        return GatewayResult.success(value=job_id)

    async def cancel_all(self) -> GatewayResult:
        async with self._gate.shared():
            return await self._cancel_all()

    async def _cancel_all(self) -> GatewayResult:
        try:
            await self._call(self.platform.cancel_all())
        except Exception as e:
            logger.warning(f"Error cancelling all notifications: {e}")
            return GatewayResult.failure(self._wrap(e))
        logger.info("All notifications cancelled")
        return GatewayResult.success()

    async def enumerate_pending(self) -> GatewayResult:
        """Ids of pending jobs. Returns an empty list on any error."""
        async with self._gate.shared():
            try:
                pending = await self._call(self.platform.list_pending())
            except Exception as e:
                logger.error(f"Error getting pending notifications: {e}")
                if is_corruption_error(e):
                    logger.warning("Detected corrupted notification data, attempting recovery")
                    await self._recover_from_corruption()
                return GatewayResult.failure(self._wrap(e), value=[])

        return GatewayResult.success(value=[p.id for p in pending])

    # --- Recovery ---

    async def recover_from_corruption(self) -> GatewayResult:
        """Purge the platform's persisted schedule keys, then cancel everything.

        Safe to call repeatedly.
        """
        async with self._gate.shared():
            return await self._recover_from_corruption()

    async def _recover_from_corruption(self) -> GatewayResult:
        removed = 0
        try:
            keys = [k for k in self.state.keys() if is_schedule_state_key(k)]
        except Exception as e:
            logger.warning(f"Could not read platform state keys: {e}")
            keys = []

        for key in keys:
            try:
                if self.state.remove(key):
                    removed += 1
            except Exception as e:
                logger.warning(f"Failed to remove platform state key {key}: {e}")

        if removed:
            logger.info(f"Cleared {removed} notification-related platform state keys")

        await asyncio.sleep(config.RECOVERY_SETTLE_SECONDS)
        result = await self._cancel_all()
        return GatewayResult(ok=result.ok, error=result.error, value=removed)

    # --- Permissions ---

    async def are_notifications_enabled(self) -> bool:
        try:
            return bool(await self._call(self.platform.query_permission()))
        except Exception as e:
            logger.error(f"Error checking notification permission: {e}")
            return False

    async def can_schedule_exact_alarms(self) -> bool:
        try:
            return bool(await self._call(self.platform.query_exact_alarm_allowed()))
        except Exception as e:
            logger.error(f"Error checking exact alarm permission: {e}")
            return False

    async def request_exact_alarm_permission(self) -> GatewayResult:
        try:
            allowed = bool(await self._call(self.platform.request_exact_alarm()))
        except Exception as e:
            logger.error(f"Error requesting exact alarm permission: {e}")
            return GatewayResult.failure(self._wrap(e))
        self.permissions["exact_alarms"] = allowed
        return GatewayResult.success(value=allowed)

    @staticmethod
    def _wrap(error: BaseException) -> ReminderError:
        if isinstance(error, ReminderError):
            return error
        if is_corruption_error(error):
            return PlatformCorruptionError(str(error), error)
        if isinstance(error, asyncio.TimeoutError):
            return PlatformError("Platform call timed out", error)
        return PlatformError(str(error), error)
