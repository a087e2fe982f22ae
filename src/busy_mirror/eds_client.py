"""
Evolution Data Server wrapper for the public (mirror) calendar.
"""

import datetime
import logging
import uuid
from typing import Optional, Tuple

import gi
gi.require_version('EDataServer', '1.2')
gi.require_version('ECal', '2.0')
gi.require_version('ICalGLib', '3.0')
from gi.repository import EDataServer, ECal, ICalGLib, GLib

from .ical import build_busy_vevent
from .ical import managed_query
from .ical import marker_query
from .models import CalendarSyncError
from .models import MirrorMutationError
from .models import MirrorRecord

logger = logging.getLogger(__name__)


def get_default_calendar_id(registry: EDataServer.SourceRegistry) -> str:
    """Return the UID of the user's default EDS calendar."""
    source = registry.ref_default_calendar()
    if not source:
        raise CalendarSyncError("EDS has no default calendar configured")
    return source.get_uid()


def get_calendar_display_info(calendar_uid: str) -> Tuple[str, str, str]:
    """
    Get human-readable information about a calendar.

    Returns:
        Tuple of (display_name, account_name, uid)
    """
    try:
        registry = EDataServer.SourceRegistry.new_sync(None)
        source = registry.ref_source(calendar_uid)

        if not source:
            return ("Unknown Calendar", "", calendar_uid)

        display_name = source.get_display_name() or "Unnamed Calendar"

        account_name = ""
        parent_uid = source.get_parent()
        if parent_uid:
            parent_source = registry.ref_source(parent_uid)
            if parent_source:
                account_name = parent_source.get_display_name() or ""

        return (display_name, account_name, calendar_uid)
    except GLib.Error as e:
        return (f"Error: {e.message}", "", calendar_uid)


def _vevent_of(comp: ICalGLib.Component) -> Optional[ICalGLib.Component]:
    if comp.isa() == ICalGLib.ComponentKind.VCALENDAR_COMPONENT:
        return comp.get_first_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)
    return comp


def record_from_component(obj) -> Optional[MirrorRecord]:
    """Convert an EDS object (string or Component) into a MirrorRecord."""
    comp = ICalGLib.Component.new_from_string(obj) if isinstance(obj, str) else obj
    vevent = _vevent_of(comp)
    if vevent is None:
        return None

    rid = None
    rid_prop = vevent.get_first_property(ICalGLib.PropertyKind.RECURRENCEID_PROPERTY)
    if rid_prop:
        rid = rid_prop.get_value_as_string()
    has_rrule = vevent.get_first_property(ICalGLib.PropertyKind.RRULE_PROPERTY) is not None

    categories = []
    prop = vevent.get_first_property(ICalGLib.PropertyKind.CATEGORIES_PROPERTY)
    while prop:
        value = prop.get_categories()
        if value:
            categories.extend(c.strip() for c in value.split(","))
        prop = vevent.get_next_property(ICalGLib.PropertyKind.CATEGORIES_PROPERTY)

    return MirrorRecord(
        uid=vevent.get_uid() or "",
        description=vevent.get_description() or "",
        rid=rid,
        recurring=has_rrule or rid is not None,
        categories=tuple(categories),
    )


class EDSCalendarClient:
    """Wrapper for Evolution Data Server calendar operations."""

    def __init__(self, registry: EDataServer.SourceRegistry, calendar_uid: str | None = None):
        self.registry = registry
        self.calendar_uid = calendar_uid or get_default_calendar_id(registry)
        self.client: Optional[ECal.Client] = None

    def connect(self, timeout: int = 10):
        """Connect to the specified calendar in EDS."""
        source = self.registry.ref_source(self.calendar_uid)
        if not source:
            raise CalendarSyncError(
                f"Calendar with UID '{self.calendar_uid}' not found in EDS"
            )

        try:
            self.client = ECal.Client.connect_sync(
                source,
                ECal.ClientSourceType.EVENTS,
                timeout,
                None
            )
        except GLib.Error as e:
            raise CalendarSyncError(
                f"Failed to connect to calendar {self.calendar_uid}: {e.message}"
            ) from e

    def _require_client(self) -> ECal.Client:
        if not self.client:
            raise CalendarSyncError("Client not connected")
        return self.client

    def _query(self, sexp: str) -> list[MirrorRecord]:
        client = self._require_client()
        try:
            _, objects = client.get_object_list_sync(sexp, None)
        except GLib.Error as e:
            raise CalendarSyncError(f"Failed to search events: {e.message}") from e
        records = []
        for obj in objects or []:
            record = record_from_component(obj)
            if record is not None:
                records.append(record)
        return records

    def search_events(
        self, window_start: datetime.datetime, window_end: datetime.datetime, text: str
    ) -> list[MirrorRecord]:
        """Events overlapping the window whose DESCRIPTION contains ``text``."""
        return self._query(marker_query(window_start, window_end, text))

    def search_managed(self) -> list[MirrorRecord]:
        """Every event this tool created, regardless of date."""
        return self._query(managed_query())

    def _register_timezone(self, tzid: str | None) -> str | None:
        """Make ``tzid`` known to the backend; return None if libical lacks it."""
        if not tzid:
            return None
        zone = ICalGLib.Timezone.get_builtin_timezone(tzid)
        if zone is None:
            logger.debug("No builtin timezone %s, falling back to UTC", tzid)
            return None
        try:
            self._require_client().add_timezone_sync(zone, None)
        except GLib.Error as e:
            logger.debug("add_timezone_sync(%s) failed, falling back to UTC: %s", tzid, e.message)
            return None
        return tzid

    def create_event(
        self,
        summary: str,
        start: datetime.datetime,
        end: datetime.datetime,
        description: str = "",
        rules: tuple[str, ...] = (),
        time_zone: str | None = None,
    ) -> str:
        """Create an event and return the UID the backend assigned."""
        client = self._require_client()
        uid = str(uuid.uuid4())
        tzid = self._register_timezone(time_zone) if rules else None
        ical = build_busy_vevent(uid, summary, start, end, description, rules, tzid)
        component = ICalGLib.Component.new_from_string(ical)

        try:
            success, out_uid = client.create_object_sync(
                component,
                ECal.OperationFlags.NONE,
                None
            )
        except GLib.Error as e:
            raise MirrorMutationError(f"Failed to create event: {e.message}") from e
        if not success:
            raise MirrorMutationError("Failed to create event")
        return out_uid or uid

    def _remove(self, uid: str, rid: str | None, mod: ECal.ObjModType):
        client = self._require_client()
        try:
            success = client.remove_object_sync(
                uid,
                rid,
                mod,
                ECal.OperationFlags.NONE,
                None  # cancellable
            )
        except GLib.Error as e:
            raise MirrorMutationError(f"Failed to remove event {uid}: {e.message}") from e
        if not success:
            raise MirrorMutationError(f"Failed to remove event {uid}")

    def delete_event(self, record: MirrorRecord):
        """Remove a single, non-recurring event."""
        self._remove(record.uid, None, ECal.ObjModType.THIS)

    def delete_event_series(self, record: MirrorRecord):
        """Remove every occurrence of the series ``record`` belongs to."""
        self._remove(record.uid, None, ECal.ObjModType.ALL)

    @staticmethod
    def is_recurring_event(record: MirrorRecord) -> bool:
        return record.recurring

    @staticmethod
    def get_event_series(record: MirrorRecord) -> str:
        """Series identifier; detached instances share their master's UID."""
        return record.uid
