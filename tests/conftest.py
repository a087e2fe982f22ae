"""
Shared pytest fixtures and Calendar API payload helpers.
"""

import logging
from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest

from busy_mirror.db import StateDatabase
from busy_mirror.lock import SyncLock
from busy_mirror.mirror import MirrorStore
from busy_mirror.models import SyncConfig
from busy_mirror.models import SyncStats
from busy_mirror.sync.engine import Reconciler
from tests.fake_client import FakeMirrorClient
from tests.fake_client import FakeRemoteCalendar

SOURCE_CAL_ID = "private@example.com"

# Fixed "now" so windows and "tomorrow" are deterministic.
NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
TOMORROW = NOW.date() + timedelta(days=1)


def fixed_now() -> datetime:
    return NOW


def at(hour: int, minute: int = 0, day=TOMORROW) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def make_timed_event(
    event_id: str, start: datetime, end: datetime, time_zone: str | None = None
) -> dict:
    """Return a minimal confirmed, timed Events resource."""
    start_field = {"dateTime": start.isoformat().replace("+00:00", "Z")}
    end_field = {"dateTime": end.isoformat().replace("+00:00", "Z")}
    if time_zone:
        start_field["timeZone"] = time_zone
        end_field["timeZone"] = time_zone
    return {
        "id": event_id,
        "status": "confirmed",
        "summary": "Dentist",
        "description": "Private notes",
        "start": start_field,
        "end": end_field,
    }


def make_recurring_event(
    event_id: str,
    start: datetime,
    end: datetime,
    rules: tuple = ("RRULE:FREQ=WEEKLY;COUNT=5",),
    time_zone: str | None = None,
) -> dict:
    item = make_timed_event(event_id, start, end, time_zone)
    item["recurrence"] = list(rules)
    return item


def make_all_day_event(event_id: str, day=TOMORROW) -> dict:
    return {
        "id": event_id,
        "status": "confirmed",
        "summary": "Holiday",
        "start": {"date": day.isoformat()},
        "end": {"date": (day + timedelta(days=1)).isoformat()},
    }


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "test_state.db"


@pytest.fixture
def state_db(db_path):
    with StateDatabase(db_path) as db:
        yield db


@pytest.fixture
def lock_path(tmp_path):
    return tmp_path / "sync.lock"


@pytest.fixture
def sync_config(db_path, lock_path):
    return SyncConfig(
        source_calendar_id=SOURCE_CAL_ID,
        state_db_path=db_path,
        lock_file=lock_path,
        lock_timeout=0.5,
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()


@pytest.fixture
def remote():
    return FakeRemoteCalendar()


@pytest.fixture
def mirror_client():
    return FakeMirrorClient()


@pytest.fixture
def mirror_store(mirror_client, sync_stats):
    return MirrorStore(mirror_client, sync_stats, now=fixed_now)


@pytest.fixture
def reconciler(remote, mirror_store, state_db, sync_stats):
    return Reconciler(remote, mirror_store, state_db, sync_stats, page_size=2, now=fixed_now)


@pytest.fixture
def sync_lock(lock_path):
    lock = SyncLock(lock_path, poll_interval=0.02)
    yield lock
    lock.release()
