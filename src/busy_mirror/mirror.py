"""
The public calendar seen as a store keyed by correlation marker.

A mirrored event carries its source event id, verbatim, as DESCRIPTION.
Mirrors are never edited in place: an update is remove_by_marker()
followed by create_single() or create_series().
"""

import logging
from typing import TYPE_CHECKING

from busy_mirror.clock import Clock
from busy_mirror.clock import search_window
from busy_mirror.clock import utc_now
from busy_mirror.models import BUSY_SUMMARY
from busy_mirror.models import MANAGED_CATEGORY
from busy_mirror.models import MirrorRecord
from busy_mirror.models import Recurring
from busy_mirror.models import SyncStats
from busy_mirror.models import Timed

if TYPE_CHECKING:
    from busy_mirror.eds_client import EDSCalendarClient


def is_correlated(record: MirrorRecord, marker: str) -> bool:
    # EDS "contains?" is a substring match: evt-1 would also hit evt-12.
    return record.description.strip() == marker


def is_managed(record: MirrorRecord) -> bool:
    return MANAGED_CATEGORY in record.categories


class MirrorStore:
    def __init__(
        self,
        client: "EDSCalendarClient",
        stats: SyncStats,
        dry_run: bool = False,
        now: Clock = utc_now,
    ):
        self.client = client
        self.stats = stats
        self.dry_run = dry_run
        self.now = now
        self.logger = logging.getLogger(__name__)

    def remove_by_marker(self, marker: str) -> int:
        """
        Delete every mirror correlated to ``marker`` within now±30 days.

        A recurring hit deletes its whole series, once per series.  Deleting
        a series invalidates the current result list, so the search is
        repeated until a pass deletes no new series.  Single events are
        deleted as they are found.  Returns the number of deletions.
        """
        window_start, window_end = search_window(self.now())
        deleted_series: set[str] = set()
        removed = 0

        while True:
            restart = False
            for record in self.client.search_events(window_start, window_end, marker):
                if not is_correlated(record, marker):
                    continue

                if self.client.is_recurring_event(record):
                    series_id = self.client.get_event_series(record)
                    if series_id in deleted_series:
                        continue
                    deleted_series.add(series_id)
                    removed += 1
                    if self.dry_run:
                        self.logger.info(f"[DRY RUN] Would DELETE series {series_id} ({marker})")
                        continue
                    self.client.delete_event_series(record)
                    self.logger.debug(f"Deleted mirrored series {series_id} ({marker})")
                    restart = True
                    break

                removed += 1
                if self.dry_run:
                    self.logger.info(f"[DRY RUN] Would DELETE event {record.uid} ({marker})")
                    continue
                self.client.delete_event(record)
                self.logger.debug(f"Deleted mirrored event {record.uid} ({marker})")

            if not restart:
                break

        self.stats.deleted += removed
        return removed

    def create_single(self, marker: str, shape: Timed) -> str | None:
        if self.dry_run:
            self.logger.info(
                f"[DRY RUN] Would CREATE busy {shape.start.isoformat()} - "
                f"{shape.end.isoformat()} ({marker})"
            )
            self.stats.added += 1
            return None

        uid = self.client.create_event(
            BUSY_SUMMARY, shape.start, shape.end, description=marker
        )
        self.stats.added += 1
        self.logger.debug(f"Created mirror {uid} for {marker}")
        return uid

    def create_series(self, marker: str, shape: Recurring) -> str | None:
        if self.dry_run:
            self.logger.info(
                f"[DRY RUN] Would CREATE busy series from {shape.start.isoformat()} "
                f"{list(shape.rules)} ({marker})"
            )
            self.stats.added += 1
            return None

        uid = self.client.create_event(
            BUSY_SUMMARY,
            shape.start,
            shape.end,
            description=marker,
            rules=shape.rules,
            time_zone=shape.time_zone,
        )
        self.stats.added += 1
        self.logger.debug(f"Created mirror series {uid} for {marker}")
        return uid

    def clear_all(self) -> int:
        """Delete every managed mirror event, whatever its date or marker."""
        deleted_series: set[str] = set()
        removed = 0
        for record in self.client.search_managed():
            if not is_managed(record):
                self.logger.debug(f"Leaving unmanaged event {record.uid}")
                continue
            if self.client.is_recurring_event(record):
                series_id = self.client.get_event_series(record)
                if series_id in deleted_series:
                    continue
                deleted_series.add(series_id)
                if self.dry_run:
                    self.logger.info(f"[DRY RUN] Would DELETE series {series_id}")
                else:
                    self.client.delete_event_series(record)
            elif self.dry_run:
                self.logger.info(f"[DRY RUN] Would DELETE event {record.uid}")
            else:
                self.client.delete_event(record)
            removed += 1

        self.stats.deleted += removed
        self.logger.info(f"Removed {removed} mirrored event(s)")
        return removed
