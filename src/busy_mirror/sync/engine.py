"""
Incremental reconciliation of the remote change stream against the mirror.
"""

import logging
from typing import TYPE_CHECKING

from busy_mirror.clock import Clock
from busy_mirror.clock import full_sync_time_min
from busy_mirror.clock import utc_now
from busy_mirror.db import StateDatabase
from busy_mirror.mirror import MirrorStore
from busy_mirror.models import DEFAULT_PAGE_SIZE
from busy_mirror.models import AllDay
from busy_mirror.models import Cancelled
from busy_mirror.models import CalendarSyncError
from busy_mirror.models import Recurring
from busy_mirror.models import RemoteFetchError
from busy_mirror.models import SourceChange
from busy_mirror.models import SyncStats
from busy_mirror.models import SyncTokenInvalidated
from busy_mirror.models import Timed
from busy_mirror.sync.utils import classify_event

if TYPE_CHECKING:
    from busy_mirror.google_client import GoogleCalendarClient

# A full resync sends no token, so it cannot be invalidated again.
MAX_FULL_RESYNCS = 1


class Reconciler:
    """Pages through remote changes and applies the mirror/remove policy."""

    def __init__(
        self,
        remote: "GoogleCalendarClient",
        mirror: MirrorStore,
        state_db: StateDatabase,
        stats: SyncStats,
        page_size: int = DEFAULT_PAGE_SIZE,
        dry_run: bool = False,
        now: Clock = utc_now,
    ):
        self.remote = remote
        self.mirror = mirror
        self.state_db = state_db
        self.stats = stats
        self.page_size = page_size
        self.dry_run = dry_run
        self.now = now
        self.logger = logging.getLogger(__name__)

    def reconcile(self, calendar_id: str, force_full_sync: bool = False) -> SyncStats:
        """Run one cycle; on token invalidation clear it and fall back to a full resync."""
        full_sync = force_full_sync
        resyncs = 0
        while True:
            try:
                self._run_cycle(calendar_id, full_sync)
                return self.stats
            except SyncTokenInvalidated as e:
                if full_sync or resyncs >= MAX_FULL_RESYNCS:
                    raise RemoteFetchError(
                        f"Token invalidated during full resync of {calendar_id}"
                    ) from e
                self.logger.warning(
                    f"Sync token for {calendar_id} is no longer valid; running a full resync"
                )
                if not self.dry_run:
                    self.state_db.clear_sync_token(calendar_id)
                    self.state_db.commit()
                full_sync = True
                resyncs += 1

    def _run_cycle(self, calendar_id: str, full_sync: bool):
        sync_token = None if full_sync else self.state_db.get_sync_token(calendar_id)
        time_min = None
        if sync_token:
            self.logger.info(f"Fetching changes for {calendar_id} since last sync...")
        else:
            time_min = full_sync_time_min(self.now())
            self.logger.info(
                f"Full sync of {calendar_id} from {time_min.date().isoformat()}..."
            )
        self.stats.full_sync = sync_token is None

        page_token = None
        next_sync_token = None
        while True:
            page = self.remote.list_events(
                calendar_id,
                sync_token=sync_token,
                time_min=time_min,
                page_token=page_token,
                max_results=self.page_size,
            )
            self.stats.pages += 1
            items = page.get("items", [])
            self.logger.debug(f"Page {self.stats.pages}: {len(items)} change(s)")

            for item in items:
                self.apply_event(item)

            page_token = page.get("nextPageToken")
            if not page_token:
                next_sync_token = page.get("nextSyncToken")
                break

        if next_sync_token is None:
            self.logger.warning(f"No sync token returned for {calendar_id}; keeping the old one")
            return
        if self.dry_run:
            self.logger.info("[DRY RUN] Would store new sync token")
            return
        self.state_db.set_sync_token(calendar_id, next_sync_token)
        self.state_db.commit()

    def apply_event(self, item: dict):
        """Classify one remote item and mirror or remove it."""
        try:
            change = classify_event(item)
        except (CalendarSyncError, KeyError, ValueError) as e:
            self.logger.warning(f"Skipping malformed event {item.get('id')!r}: {e}")
            self.stats.skipped += 1
            return
        self.apply_change(change)

    def apply_change(self, change: SourceChange):
        shape = change.shape
        marker = change.event_id

        if isinstance(shape, Cancelled):
            self.logger.debug(f"Cancelled: {marker}")
            self.mirror.remove_by_marker(marker)
        elif isinstance(shape, AllDay):
            # All-day events are not mirrored.
            self.logger.info(f"Skipping all-day event {marker} on {shape.start.isoformat()}")
            self.stats.skipped += 1
        elif isinstance(shape, Recurring):
            self.logger.debug(f"Recurring: {marker} {list(shape.rules)}")
            self.mirror.remove_by_marker(marker)
            self.mirror.create_series(marker, shape)
        elif isinstance(shape, Timed):
            self.logger.debug(f"Timed: {marker} {shape.start.isoformat()}")
            self.mirror.remove_by_marker(marker)
            self.mirror.create_single(marker, shape)
        else:
            raise CalendarSyncError(f"Unhandled event shape {shape!r} for {marker}")
