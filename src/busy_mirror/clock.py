"""
Date boundaries relative to "now".
"""

from collections.abc import Callable
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from busy_mirror.models import WINDOW_DAYS

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def search_window(now: datetime, days: int = WINDOW_DAYS) -> tuple[datetime, datetime]:
    """Return (now - days, now + days), the range searched for mirrored events."""
    return now - timedelta(days=days), now + timedelta(days=days)


def full_sync_time_min(now: datetime, days: int = WINDOW_DAYS) -> datetime:
    """Lower bound for a full resync; there is no upper bound."""
    return now - timedelta(days=days)
