"""
iCal text and EDS query builders for busy placeholders.

Kept free of gi imports so the formatting can be tested without an
Evolution Data Server installation.
"""

import datetime
from datetime import timezone
from zoneinfo import ZoneInfo

from busy_mirror.models import MANAGED_CATEGORY


def escape_text(value: str) -> str:
    """Escape a TEXT value per RFC 5545 §3.3.11."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def format_utc(dt: datetime.datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _time_property(name: str, dt: datetime.datetime, tzid: str | None) -> str:
    if tzid:
        local = dt.astimezone(ZoneInfo(tzid))
        return f"{name};TZID={tzid}:{local.strftime('%Y%m%dT%H%M%S')}"
    return f"{name}:{format_utc(dt)}"


def build_busy_vevent(
    uid: str,
    summary: str,
    start: datetime.datetime,
    end: datetime.datetime,
    description: str,
    rules: tuple[str, ...] = (),
    tzid: str | None = None,
    stamp: datetime.datetime | None = None,
) -> str:
    """
    Return a VEVENT string for a busy placeholder.

    ``rules`` are RRULE/EXRULE/RDATE/EXDATE content lines copied as-is.
    ``tzid`` anchors DTSTART/DTEND to a named zone so a series keeps its
    wall-clock time across DST changes; without it times are in UTC.
    """
    stamp = stamp or datetime.datetime.now(timezone.utc)
    lines = [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{format_utc(stamp)}",
        _time_property("DTSTART", start, tzid),
        _time_property("DTEND", end, tzid),
        f"SUMMARY:{escape_text(summary)}",
        f"DESCRIPTION:{escape_text(description)}",
        f"CATEGORIES:{MANAGED_CATEGORY}",
        "TRANSP:OPAQUE",
        "CLASS:PUBLIC",
    ]
    lines.extend(rule.strip() for rule in rules if rule.strip())
    lines.append("END:VEVENT")
    return "\r\n".join(lines) + "\r\n"


def _sexp_string(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def marker_query(window_start: datetime.datetime, window_end: datetime.datetime, text: str) -> str:
    """EDS s-expression: events in the window whose DESCRIPTION contains ``text``."""
    return (
        "(and "
        f"(occur-in-time-range? (make-time {_sexp_string(format_utc(window_start))}) "
        f"(make-time {_sexp_string(format_utc(window_end))})) "
        f"(contains? \"description\" {_sexp_string(text)}))"
    )


def managed_query() -> str:
    """EDS s-expression: every event carrying our category."""
    return f"(has-categories? {_sexp_string(MANAGED_CATEGORY)})"
