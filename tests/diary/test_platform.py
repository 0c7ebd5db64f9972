"""Tests for the APScheduler notification platform and its persisted state."""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from domains.diary.errors import NotificationPermissionError
from domains.diary.reminders.platform import (
    JOBSTORE_ALIAS,
    SCHEDULED_KEY,
    APSchedulerPlatform,
    PendingNotification,
    PlatformStateCorrupted,
)


def _future(hours: int = 1) -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=hours)


@pytest.fixture
def scheduler():
    sched = AsyncIOScheduler(timezone=timezone.utc)
    yield sched
    if sched.running:
        sched.shutdown(wait=False)


@pytest.fixture
def platform(scheduler, platform_state):
    return APSchedulerPlatform(scheduler, platform_state, allow_notifications=True,
                               allow_exact_alarms=True, autostart=False)


def _job_ids(scheduler) -> set:
    return {job.id for job in scheduler.get_jobs(jobstore=JOBSTORE_ALIAS)}


# --- PlatformStateStore ---

def test_state_store_round_trip(platform_state):
    platform_state.set("theme_mode", "dark")
    platform_state.set("theme_mode", "light")

    assert platform_state.get("theme_mode") == "light"
    assert platform_state.get("missing") is None
    assert platform_state.keys() == ["theme_mode"]
    assert platform_state.remove("theme_mode") is True
    assert platform_state.remove("theme_mode") is False


# --- Scheduling ---

@pytest.mark.asyncio
async def test_schedule_requires_permission(platform):
    with pytest.raises(NotificationPermissionError):
        await platform.schedule_exact_at(1, "t", "b", _future(), "mindscribe_reminders")


@pytest.mark.asyncio
async def test_schedule_persists_descriptor_and_job(platform, scheduler, platform_state):
    await platform.request_permission()
    when = _future(2)

    await platform.schedule_exact_at(5, "📝 Buy milk", "Semi-skimmed", when,
                                     "mindscribe_reminders", payload="entry-1", sound="chime")

    assert _job_ids(scheduler) == {"5"}
    stored = json.loads(platform_state.get(SCHEDULED_KEY))
    assert stored[0]["id"] == 5
    assert stored[0]["payload"] == "entry-1"
    assert stored[0]["sound"] == "chime"

    pending = await platform.list_pending()
    assert [p.id for p in pending] == [5]
    assert pending[0].fire_time == when


@pytest.mark.asyncio
async def test_rescheduling_same_id_replaces(platform, scheduler):
    await platform.request_permission()
    await platform.schedule_exact_at(5, "first", "b", _future(1), "c")
    await platform.schedule_exact_at(5, "second", "b", _future(3), "c")

    assert _job_ids(scheduler) == {"5"}
    pending = await platform.list_pending()
    assert [p.title for p in pending] == ["second"]


@pytest.mark.asyncio
async def test_cancel_removes_job_and_descriptor(platform, scheduler, platform_state):
    await platform.request_permission()
    await platform.schedule_exact_at(1, "a", "b", _future(1), "c")
    await platform.schedule_exact_at(2, "a", "b", _future(2), "c")

    await platform.cancel(1)
    await platform.cancel(99)  # unknown id is fine

    assert _job_ids(scheduler) == {"2"}
    assert [p.id for p in await platform.list_pending()] == [2]

    await platform.cancel(2)
    assert platform_state.get(SCHEDULED_KEY) is None


@pytest.mark.asyncio
async def test_cancel_all_clears_everything(platform, scheduler, platform_state):
    await platform.request_permission()
    for i in range(1, 4):
        await platform.schedule_exact_at(i, "a", "b", _future(i), "c")

    await platform.cancel_all()

    assert _job_ids(scheduler) == set()
    assert platform_state.get(SCHEDULED_KEY) is None
    assert await platform.list_pending() == []


@pytest.mark.asyncio
async def test_cancel_all_leaves_other_jobs(platform, scheduler):
    scheduler.add_job(lambda: None, "interval", minutes=5, id="housekeeping")
    await platform.cancel_all()
    assert scheduler.get_job("housekeeping") is not None


# --- Corrupted state ---

@pytest.mark.asyncio
@pytest.mark.parametrize("raw", ["{not json", '{"id": 1}', '[{"id": 1}]', '["x"]',
                                 '[{"id": 1, "title": "t", "body": "b", "fire_time": "soon", "channel": "c"}]'])
async def test_corrupted_state_raises_typed_error(platform, platform_state, raw):
    await platform.request_permission()
    platform_state.set(SCHEDULED_KEY, raw)

    with pytest.raises(PlatformStateCorrupted) as exc_info:
        await platform.schedule_exact_at(1, "t", "b", _future(), "c")
    assert exc_info.value.code == "corrupted_state"

    with pytest.raises(PlatformStateCorrupted):
        await platform.list_pending()
    with pytest.raises(PlatformStateCorrupted):
        await platform.cancel(1)


@pytest.mark.asyncio
async def test_cancel_all_works_on_corrupted_state(platform, platform_state):
    platform_state.set(SCHEDULED_KEY, "{not json")
    await platform.cancel_all()
    assert await platform.list_pending() == []


# --- Initialize / restore ---

@pytest.mark.asyncio
async def test_initialize_restores_future_and_drops_past(platform, scheduler, platform_state):
    future = PendingNotification(1, "future", "b", _future(5), "c")
    past = PendingNotification(2, "past", "b", _future(-5), "c")
    platform_state.set(SCHEDULED_KEY, json.dumps([future.to_dict(), past.to_dict()]))

    assert await platform.initialize() is True

    assert _job_ids(scheduler) == {"1"}
    assert [p.id for p in await platform.list_pending()] == [1]
    assert not scheduler.running


@pytest.mark.asyncio
async def test_initialize_raises_on_corrupted_state(platform, platform_state):
    platform_state.set(SCHEDULED_KEY, "][")
    with pytest.raises(PlatformStateCorrupted):
        await platform.initialize()


@pytest.mark.asyncio
async def test_permissions_follow_configuration(scheduler, platform_state):
    platform = APSchedulerPlatform(scheduler, platform_state, allow_notifications=False,
                                   allow_exact_alarms=False, autostart=False)

    assert await platform.query_permission() is False
    assert await platform.request_permission() is False
    assert await platform.request_exact_alarm() is False
    assert await platform.query_exact_alarm_allowed() is False


# --- Delivery ---

@pytest.mark.asyncio
async def test_fire_delivers_and_forgets(scheduler, platform_state):
    deliver = AsyncMock()
    platform = APSchedulerPlatform(scheduler, platform_state, deliver=deliver,
                                   allow_notifications=True, autostart=False)
    await platform.request_permission()
    await platform.schedule_exact_at(8, "t", "b", _future(), "c", payload="entry-8")
    descriptor = json.loads(platform_state.get(SCHEDULED_KEY))[0]

    await platform._fire(descriptor)

    deliver.assert_awaited_once()
    delivered = deliver.await_args.args[0]
    assert delivered.id == 8
    assert delivered.payload == "entry-8"
    assert platform_state.get(SCHEDULED_KEY) is None


@pytest.mark.asyncio
async def test_delivery_failure_is_contained(scheduler, platform_state):
    deliver = AsyncMock(side_effect=RuntimeError("display gone"))
    platform = APSchedulerPlatform(scheduler, platform_state, deliver=deliver,
                                   allow_notifications=True, autostart=False)
    await platform.request_permission()

    await platform.show(3, "t", "b", "c")

    deliver.assert_awaited_once()


@pytest.mark.asyncio
async def test_running_scheduler_fires_job(scheduler, platform_state):
    fired = asyncio.Event()

    async def deliver(notification):
        fired.set()

    platform = APSchedulerPlatform(scheduler, platform_state, deliver=deliver,
                                   allow_notifications=True, autostart=True)
    await platform.initialize()
    await platform.request_permission()
    assert scheduler.running

    await platform.schedule_exact_at(
        4, "t", "b", datetime.now(timezone.utc) + timedelta(milliseconds=300), "c"
    )
    await asyncio.wait_for(fired.wait(), timeout=5)

    assert await platform.list_pending() == []
    await platform.shutdown()
    assert not scheduler.running


@pytest.mark.asyncio
async def test_cancel_removes_live_job_when_state_corrupted(platform, scheduler, platform_state):
    """A corrupted schedule must not leave the live job behind."""
    await platform.request_permission()
    await platform.schedule_exact_at(6, "t", "b", _future(), "c")
    platform_state.set(SCHEDULED_KEY, "garbage")

    with pytest.raises(PlatformStateCorrupted):
        await platform.cancel(6)

    assert _job_ids(scheduler) == set()
