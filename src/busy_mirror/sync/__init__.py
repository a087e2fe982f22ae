"""
CalendarSynchronizer: lock, resolve the calendar, run the Reconciler.
"""

import logging

from busy_mirror.clock import Clock
from busy_mirror.clock import utc_now
from busy_mirror.db import DEFAULT_SOURCE_PROPERTY
from busy_mirror.db import StateDatabase
from busy_mirror.lock import SyncLock
from busy_mirror.mirror import MirrorStore
from busy_mirror.models import CalendarSyncError
from busy_mirror.models import LockTimeout
from busy_mirror.models import SyncConfig
from busy_mirror.models import SyncStats
from busy_mirror.sync.engine import Reconciler


class CalendarSynchronizer:
    """Main synchronization entry point.

    ``remote`` and ``mirror_client`` default to the Google and EDS
    clients built from ``config``; tests pass in-memory fakes.
    """

    def __init__(
        self,
        config: SyncConfig,
        remote=None,
        mirror_client=None,
        lock: SyncLock | None = None,
        now: Clock = utc_now,
    ):
        self.config = config
        self.remote = remote
        self.mirror_client = mirror_client
        self.lock = lock or SyncLock(config.lock_file)
        self.now = now
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()

    def _connect_remote(self):
        if self.remote is None:
            from busy_mirror.google_client import GoogleCalendarClient

            self.logger.info("Connecting to Google Calendar...")
            self.remote = GoogleCalendarClient.from_files(
                self.config.client_secrets_file, self.config.token_file
            )
        return self.remote

    def _connect_mirror(self):
        if self.mirror_client is None:
            import gi

            gi.require_version("EDataServer", "1.2")
            from gi.repository import EDataServer

            from busy_mirror.eds_client import EDSCalendarClient

            self.logger.info("Connecting to Evolution Data Server...")
            registry = EDataServer.SourceRegistry.new_sync(None)
            client = EDSCalendarClient(registry, self.config.mirror_calendar_id)
            client.connect()
            self.mirror_client = client
        return self.mirror_client

    def _mirror_store(self) -> MirrorStore:
        return MirrorStore(
            self._connect_mirror(), self.stats, dry_run=self.config.dry_run, now=self.now
        )

    def resolve_calendar_id(self, state_db: StateDatabase, calendar_id: str | None) -> str:
        """Explicit id, then the config file, then the stored default."""
        resolved = (
            calendar_id
            or self.config.source_calendar_id
            or state_db.get_property(DEFAULT_SOURCE_PROPERTY)
        )
        if not resolved:
            raise CalendarSyncError(
                "No source calendar: pass --calendar, set source_calendar_id "
                "in the config file, or run set-default"
            )
        return resolved

    def run(self, calendar_id: str | None = None, full_sync: bool | None = None) -> SyncStats:
        """Execute one synchronization cycle under the single-writer lock.

        Raises LockTimeout without touching anything if another cycle
        holds the lock past ``config.lock_timeout``.
        """
        if full_sync is None:
            full_sync = self.config.full_sync

        try:
            with self.lock.held(self.config.lock_timeout):
                self._reconcile(calendar_id, full_sync)
        except LockTimeout as e:
            self.logger.warning(f"Sync skipped: {e}")
            raise
        return self.stats

    def _reconcile(self, calendar_id: str | None, full_sync: bool):
        with StateDatabase(self.config.state_db_path) as state_db:
            source_id = self.resolve_calendar_id(state_db, calendar_id)
            reconciler = Reconciler(
                self._connect_remote(),
                self._mirror_store(),
                state_db,
                self.stats,
                page_size=self.config.page_size,
                dry_run=self.config.dry_run,
                now=self.now,
            )
            try:
                reconciler.reconcile(source_id, force_full_sync=full_sync)
            except CalendarSyncError as e:
                self.logger.error(f"Sync failed: {e}")
                raise

    def cleanup(self, marker: str) -> int:
        """Remove the mirrors of one source event."""
        with self.lock.held(self.config.lock_timeout):
            return self._mirror_store().remove_by_marker(marker)

    def clear(self) -> int:
        """Remove every mirror and forget all tokens so the next run is a full resync."""
        with self.lock.held(self.config.lock_timeout):
            removed = self._mirror_store().clear_all()
            if not self.config.dry_run:
                with StateDatabase(self.config.state_db_path) as state_db:
                    state_db.clear_all_tokens()
                    state_db.commit()
            return removed


def sync_events(
    config: SyncConfig, calendar_id: str | None = None, full_sync: bool = False, **clients
) -> SyncStats:
    """Entry point for schedulers: one reconciliation cycle for ``calendar_id``.

    An empty ``calendar_id`` falls back to the configured or stored default.
    A lock timeout is logged by ``run`` and ends the cycle with empty stats;
    other failures propagate.  ``clients`` (``remote``, ``mirror_client``,
    ``lock``, ``now``) are forwarded to CalendarSynchronizer.
    """
    synchronizer = CalendarSynchronizer(config, **clients)
    try:
        return synchronizer.run(calendar_id or None, full_sync)
    except LockTimeout:
        return synchronizer.stats
