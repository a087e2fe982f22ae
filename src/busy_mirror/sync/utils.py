"""
Stateless helpers for turning Google Events resources into SourceChange values.
"""

import datetime

from busy_mirror.models import AllDay
from busy_mirror.models import Cancelled
from busy_mirror.models import CalendarSyncError
from busy_mirror.models import Recurring
from busy_mirror.models import SourceChange
from busy_mirror.models import Timed


def parse_datetime(value: str) -> datetime.datetime:
    """Parse an RFC 3339 timestamp as returned by the Calendar API."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.datetime.fromisoformat(value)


def is_event_cancelled(item: dict) -> bool:
    return item.get("status") == "cancelled"


def is_all_day(item: dict) -> bool:
    return "date" in (item.get("start") or {})


def classify_event(item: dict) -> SourceChange:
    """
    Decide the shape of one remote event.

    Cancellation is checked first because cancelled items in a delta
    page carry little more than ``id`` and ``status``.  All-day wins
    over recurrence: a recurring all-day event is still all-day.
    """
    event_id = item.get("id")
    if not event_id:
        raise CalendarSyncError(f"Event without id in change stream: {item!r}")
    if is_event_cancelled(item):
        return SourceChange(event_id, Cancelled())

    start = item.get("start") or {}
    end = item.get("end") or {}

    if is_all_day(item):
        end_date = end.get("date")
        return SourceChange(
            event_id,
            AllDay(
                datetime.date.fromisoformat(start["date"]),
                datetime.date.fromisoformat(end_date) if end_date else None,
            ),
        )

    if "dateTime" not in start or "dateTime" not in end:
        raise CalendarSyncError(f"Event {event_id} has no usable start/end")

    start_dt = parse_datetime(start["dateTime"])
    end_dt = parse_datetime(end["dateTime"])
    time_zone = start.get("timeZone")

    rules = tuple(item.get("recurrence") or ())
    if rules:
        return SourceChange(event_id, Recurring(start_dt, end_dt, rules, time_zone))
    return SourceChange(event_id, Timed(start_dt, end_dt, time_zone))
