"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from datetime import datetime, timezone

import pytest

# Keep logs and default databases out of the working tree
os.environ.setdefault("MINDSCRIBE_DATA_DIR", tempfile.mkdtemp(prefix="mindscribe_test_"))

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from domains.diary import config  # noqa: E402
from domains.diary.errors import NotificationPermissionError  # noqa: E402
from domains.diary.reminders.platform import NotificationPlatform, PendingNotification  # noqa: E402
from domains.diary.reminders.platform_state import PlatformStateStore  # noqa: E402
from domains.diary.reminders.gateway import DeliveryGateway  # noqa: E402
from domains.diary.store import EntryStore  # noqa: E402

# Fixed "now" for gateway and synchronizer tests (UTC, so wall clock == UTC)
NOW = datetime(2026, 1, 15, 8, 0, tzinfo=timezone.utc)
WALL_NOW = NOW.replace(tzinfo=None)


class FakePlatform(NotificationPlatform):
    """In-memory notification platform that records every call.

    Set `fail[op]` to an exception to make that operation raise.
    """

    def __init__(self):
        self.pending: dict[int, PendingNotification] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, BaseException] = {}
        self.granted = True
        self.exact_allowed = True
        self.channels = {}
        self.shown = []

    def _check(self, op: str, *args):
        self.calls.append((op, *args))
        if op in self.fail:
            raise self.fail[op]

    def count(self, op: str) -> int:
        return sum(1 for c in self.calls if c[0] == op)

    def ids(self, op: str) -> list:
        return [c[1] for c in self.calls if c[0] == op]

    async def initialize(self) -> bool:
        self._check("initialize")
        return True

    async def create_channel(self, channel_id, name, description):
        self._check("create_channel", channel_id)
        self.channels[channel_id] = name

    async def schedule_exact_at(self, notification_id, title, body, when, channel,
                                payload=None, sound=None):
        self._check("schedule", notification_id)
        if not self.granted:
            raise NotificationPermissionError("Notification permission not granted")
        self.pending[notification_id] = PendingNotification(
            id=notification_id, title=title, body=body, fire_time=when,
            channel=channel, payload=payload, sound=sound,
        )

    async def show(self, notification_id, title, body, channel, payload=None):
        self._check("show", notification_id)
        self.shown.append((notification_id, title))

    async def cancel(self, notification_id):
        self._check("cancel", notification_id)
        self.pending.pop(notification_id, None)

    async def cancel_all(self):
        self._check("cancel_all")
        self.pending.clear()

    async def list_pending(self):
        self._check("list_pending")
        return list(self.pending.values())

    async def query_permission(self):
        self._check("query_permission")
        return self.granted

    async def request_permission(self):
        self._check("request_permission")
        return self.granted

    async def query_exact_alarm_allowed(self):
        self._check("query_exact")
        return self.exact_allowed

    async def request_exact_alarm(self):
        self._check("request_exact")
        return self.exact_allowed


@pytest.fixture(autouse=True)
def fast_recovery(monkeypatch):
    """No settle delays during tests."""
    monkeypatch.setattr(config, "RECOVERY_SETTLE_SECONDS", 0)
    monkeypatch.setattr(config, "RESET_SETTLE_SECONDS", 0)


@pytest.fixture
def platform_state(tmp_path):
    state = PlatformStateStore(str(tmp_path / "platform_state.db"))
    yield state
    state.close()


@pytest.fixture
def entry_store(tmp_path):
    store = EntryStore(str(tmp_path / "diary.db"))
    yield store
    store.close()


@pytest.fixture
def fake_platform():
    return FakePlatform()


@pytest.fixture
def gateway(fake_platform, platform_state):
    return DeliveryGateway(
        fake_platform,
        platform_state,
        timezone_name="UTC",
        clock=lambda: NOW,
        call_timeout=1.0,
        settle_delay=0,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def wall_now():
    return WALL_NOW
