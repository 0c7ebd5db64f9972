"""Construct and tear down the reminder engine.

The application shell builds one engine at startup, passes
`engine.synchronizer` to whatever handles entry saves and deletes, and calls
shutdown() on exit. Nothing here is a module-level singleton.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logger import logger
from . import config
from .errors import GatewayResult
from .reminders.gateway import DeliveryGateway, resolve_timezone
from .reminders.platform import APSchedulerPlatform
from .reminders.platform_state import PlatformStateStore
from .reminders.synchronizer import ReminderSynchronizer
from .store import EntryStore


@dataclass
class ReminderEngine:
    """Everything the reminder subsystem owns."""
    store: EntryStore
    state: PlatformStateStore
    scheduler: AsyncIOScheduler
    platform: APSchedulerPlatform
    gateway: DeliveryGateway
    synchronizer: ReminderSynchronizer

    async def start(self) -> GatewayResult:
        """Initialize the gateway. Never fails app startup."""
        result = await self.gateway.initialize()
        logger.info(f"Reminder engine started: {self.store.get_statistics()}")
        return result

    async def shutdown(self) -> None:
        await self.platform.shutdown()
        self.store.close()
        self.state.close()
        logger.info("Reminder engine stopped")


def build_engine(
    db_path: Optional[str] = None,
    state_path: Optional[str] = None,
    timezone_name: Optional[str] = None,
    deliver: Optional[Callable[..., Awaitable]] = None,
    clock: Optional[Callable[[], datetime]] = None,
    autostart: bool = True,
) -> ReminderEngine:
    """Wire store, platform, gateway and synchronizer together.

    Args:
        db_path: Diary database (default from config)
        state_path: Platform state database (default from config)
        timezone_name: IANA zone for reminder times (default from config)
        deliver: Async callable that displays a fired notification
        clock: Current-time source for the gateway (tests)
        autostart: Start the scheduler during start()
    """
    timezone_name = config.DIARY_TIMEZONE if timezone_name is None else timezone_name

    store = EntryStore(db_path)
    state = PlatformStateStore(state_path)
    scheduler = AsyncIOScheduler(timezone=resolve_timezone(timezone_name))
    platform = APSchedulerPlatform(scheduler, state, deliver=deliver, autostart=autostart)
    gateway = DeliveryGateway(platform, state, timezone_name=timezone_name, clock=clock)
    synchronizer = ReminderSynchronizer(store, gateway)

    return ReminderEngine(
        store=store,
        state=state,
        scheduler=scheduler,
        platform=platform,
        gateway=gateway,
        synchronizer=synchronizer,
    )
