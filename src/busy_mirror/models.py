"""
Pure data models; no EDS, Google or sqlite imports.
"""

import datetime
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path

DEFAULT_STATE_DB = Path.home() / ".local/share/busy-mirror-state.db"
DEFAULT_CONFIG = Path.home() / ".config/busy-mirror.conf"
DEFAULT_LOCK_FILE = Path.home() / ".local/share/busy-mirror.lock"
DEFAULT_CLIENT_SECRETS = Path.home() / ".config/busy-mirror/client_secret.json"
DEFAULT_TOKEN_FILE = Path.home() / ".config/busy-mirror/token.json"

DEFAULT_LOCK_TIMEOUT = 60.0
DEFAULT_PAGE_SIZE = 100
WINDOW_DAYS = 30

BUSY_SUMMARY = "busy"
MANAGED_CATEGORY = "BUSY-MIRROR-MANAGED"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class LockTimeout(CalendarSyncError):
    """Another sync cycle held the lock for longer than the timeout."""


class SyncTokenInvalidated(CalendarSyncError):
    """The remote service no longer accepts the stored sync token."""


class RemoteFetchError(CalendarSyncError):
    """Listing events from the remote calendar failed."""


class MirrorMutationError(CalendarSyncError):
    """Creating or deleting an event in the mirror calendar failed."""


@dataclass
class SyncConfig:
    """Configuration for calendar sync operation."""

    source_calendar_id: str | None
    state_db_path: Path
    mirror_calendar_id: str | None = None  # None = EDS default calendar
    client_secrets_file: Path = DEFAULT_CLIENT_SECRETS
    token_file: Path = DEFAULT_TOKEN_FILE
    lock_file: Path = DEFAULT_LOCK_FILE
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    page_size: int = DEFAULT_PAGE_SIZE
    full_sync: bool = False
    dry_run: bool = False
    verbose: bool = False


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    added: int = 0
    deleted: int = 0
    skipped: int = 0
    pages: int = 0
    full_sync: bool = False


# ---------------------------------------------------------------------------
# Source event shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class AllDay:
    start: datetime.date
    end: datetime.date | None = None


@dataclass(frozen=True)
class Timed:
    start: datetime.datetime
    end: datetime.datetime
    time_zone: str | None = None


@dataclass(frozen=True)
class Recurring:
    start: datetime.datetime
    end: datetime.datetime
    rules: tuple[str, ...] = ()
    time_zone: str | None = None


EventShape = Cancelled | AllDay | Timed | Recurring


@dataclass(frozen=True)
class SourceChange:
    """One item of the remote change stream, classified once."""

    event_id: str
    shape: EventShape


@dataclass(frozen=True)
class MirrorRecord:
    """A search hit in the mirror calendar.

    ``rid`` is the RECURRENCE-ID of a detached instance, if any.
    """

    uid: str
    description: str = ""
    rid: str | None = None
    recurring: bool = False
    categories: tuple[str, ...] = field(default_factory=tuple)
