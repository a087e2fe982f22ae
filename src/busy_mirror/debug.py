"""
Calendar listing tools for the CLI.

Importable functions:
  list_eds_calendars(registry, console)   render a Rich table of EDS calendars
  list_google_calendars(calendars, console)   render calendarList entries
"""

import gi
gi.require_version('EDataServer', '1.2')
gi.require_version('ECal', '2.0')
from gi.repository import EDataServer, ECal, GLib

from rich.console import Console
from rich.table import Table
from rich.text import Text


def list_eds_calendars(registry, console: Console) -> None:
    """Render all configured EDS calendars as a Rich table, marking the default."""
    sources = registry.list_sources(EDataServer.SOURCE_EXTENSION_CALENDAR)
    default = registry.ref_default_calendar()
    default_uid = default.get_uid() if default else None

    table = Table(show_header=True, header_style="bold cyan", title="Mirror (EDS) calendars")
    table.add_column("Display Name", style="bold")
    table.add_column("Account")
    table.add_column("Mode")
    table.add_column("UID", style="dim")

    for source in sources:
        name = source.get_display_name() or "(unnamed)"
        uid = source.get_uid() or ""
        if uid == default_uid:
            name += " (default)"
        parent = source.get_parent()
        account = ""
        if parent:
            parent_source = registry.ref_source(parent)
            if parent_source:
                account = parent_source.get_display_name() or ""
        try:
            client = ECal.Client.connect_sync(source, ECal.ClientSourceType.EVENTS, 5, None)
            mode = "Read-write" if not client.is_readonly() else "Read-only"
            mode_style = "green" if not client.is_readonly() else "yellow"
        except GLib.Error:
            mode = "Unknown"
            mode_style = "red"

        table.add_row(name, account, Text(mode, style=mode_style), uid)

    console.print(table)


def list_google_calendars(calendars: list[dict], console: Console) -> None:
    table = Table(show_header=True, header_style="bold cyan", title="Source (Google) calendars")
    table.add_column("Summary", style="bold")
    table.add_column("Access")
    table.add_column("ID", style="dim")
    for entry in calendars:
        summary = entry.get("summaryOverride") or entry.get("summary") or "(unnamed)"
        if entry.get("primary"):
            summary += " (primary)"
        table.add_row(summary, entry.get("accessRole", ""), entry.get("id", ""))
    console.print(table)
