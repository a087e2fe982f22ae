"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import sqlite3

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from busy_mirror.models import SyncConfig

logger = logging.getLogger(__name__)

_OFFLINE_KEYWORDS = frozenset(
    {
        "offline",
        "network",
        "transport",
        "unreachable",
        "not connected",
        "no route",
        "authentication failed",
        "connection refused",
        "temporary failure",
    }
)


def run_preflight_checks(cfg: SyncConfig, console: Console, need_remote: bool = True) -> bool:
    """Return True if sync may proceed; print issues and return False otherwise."""
    import gi

    gi.require_version("ECal", "2.0")
    gi.require_version("EDataServer", "1.2")
    from gi.repository import ECal
    from gi.repository import EDataServer
    from gi.repository import GLib

    issues: list[tuple[str, str, str]] = []  # (label, detail, hint)

    # 1. EDS registry reachable
    try:
        registry = EDataServer.SourceRegistry.new_sync(None)
    except GLib.Error as e:
        logger.error("EDS registry unreachable: %s", e.message)
        issues.append(("EDS registry", e.message, "Is evolution-data-server running?"))
        _print_issues(issues, console)
        return False

    # 2. Mirror calendar resolves + connectable
    if cfg.mirror_calendar_id:
        source = registry.ref_source(cfg.mirror_calendar_id)
        missing_hint = "Run: busy-mirror calendars"
        missing_detail = f"UID not found: {cfg.mirror_calendar_id}"
    else:
        source = registry.ref_default_calendar()
        missing_hint = "Set mirror_calendar_id in the config file"
        missing_detail = "No default calendar configured in EDS"

    if source is None:
        logger.error("Mirror calendar not found: %s", cfg.mirror_calendar_id or "(default)")
        issues.append(("Mirror calendar", missing_detail, missing_hint))
    else:
        try:
            client = ECal.Client.connect_sync(source, ECal.ClientSourceType.EVENTS, 5, None)
            if client.is_readonly():
                issues.append(
                    (
                        "Mirror calendar",
                        f"{source.get_display_name()} is read-only",
                        "Pick a writable calendar as mirror_calendar_id",
                    )
                )
        except GLib.Error as e:
            msg = e.message or str(e)
            logger.error("Cannot connect to mirror calendar (%s): %s", source.get_uid(), msg)
            if any(kw in msg.lower() for kw in _OFFLINE_KEYWORDS):
                hint = "Calendar appears offline, check GNOME Online Accounts"
            else:
                hint = msg
            issues.append(("Mirror calendar", f"Connection failed: {msg}", hint))

    # 3. Google credentials present
    if need_remote and not cfg.token_file.exists() and not cfg.client_secrets_file.exists():
        logger.error("No Google credentials at %s or %s", cfg.token_file, cfg.client_secrets_file)
        issues.append(
            (
                "Google credentials",
                f"Neither {cfg.token_file} nor {cfg.client_secrets_file} exists",
                "Download an OAuth client secret from Google Cloud Console",
            )
        )

    # 4. State DB parent dir writable + DB readable if it exists
    db_path = cfg.state_db_path
    try:
        db_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create state DB directory %s: %s", db_path.parent, e)
        issues.append(
            ("State database", f"{db_path}: {e}", f"Check permissions on {db_path.parent}")
        )
    else:
        if db_path.exists():
            try:
                conn = sqlite3.connect(db_path)
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE needs a journal file next to the DB.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
                conn.close()
            except sqlite3.Error as e:
                logger.error("State DB not readable/writable (%s): %s", db_path, e)
                issues.append(
                    (
                        "State database",
                        f"{db_path}: {e}",
                        f"Check permissions on {db_path.parent} "
                        f"(journal files must be creatable alongside the DB)",
                    )
                )

    if issues:
        _print_issues(issues, console)
        return False

    return True


def _print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
