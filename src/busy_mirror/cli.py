"""
Command-line interface for busy-mirror.
"""

import logging
from configparser import ConfigParser
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from busy_mirror.db import DEFAULT_SOURCE_PROPERTY
from busy_mirror.db import StateDatabase
from busy_mirror.db import query_tokens
from busy_mirror.lock import SyncLock
from busy_mirror.models import DEFAULT_CLIENT_SECRETS
from busy_mirror.models import DEFAULT_CONFIG
from busy_mirror.models import DEFAULT_LOCK_FILE
from busy_mirror.models import DEFAULT_LOCK_TIMEOUT
from busy_mirror.models import DEFAULT_PAGE_SIZE
from busy_mirror.models import DEFAULT_STATE_DB
from busy_mirror.models import DEFAULT_TOKEN_FILE
from busy_mirror.models import CalendarSyncError
from busy_mirror.models import LockTimeout
from busy_mirror.models import SyncConfig
from busy_mirror.sync import CalendarSynchronizer

# EX_TEMPFAIL: another run holds the lock; the scheduler may simply try later.
EXIT_LOCKED = 75

CONFIG_SECTION = "busy-mirror"

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Mirror busy time from a private Google calendar into a public EDS calendar.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    state_db: Path = field(default_factory=lambda: DEFAULT_STATE_DB)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    state_db: Annotated[
        Path,
        typer.Option("--state-db", help=f"State DB path (default: {DEFAULT_STATE_DB})"),
    ] = DEFAULT_STATE_DB,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.state_db = state_db
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )
    # googleapiclient logs every discovery/HTTP detail at INFO/DEBUG
    logging.getLogger("googleapiclient").setLevel(logging.WARNING)


def _load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    parser.read(config_path)
    if CONFIG_SECTION not in parser:
        return {}
    return dict(parser[CONFIG_SECTION])


def _path(value: str | None, default: Path) -> Path:
    return Path(value).expanduser() if value else default


def _build_config(
    calendar: str | None = None,
    full: bool = False,
    dry_run: bool = False,
) -> SyncConfig:
    config_file = _load_config_file(state.config_path)
    try:
        lock_timeout = float(config_file.get("lock_timeout", DEFAULT_LOCK_TIMEOUT))
        page_size = int(config_file.get("page_size", DEFAULT_PAGE_SIZE))
    except ValueError as e:
        console.print(f"[bold red]Error:[/] Invalid value in {state.config_path}: {e}")
        raise typer.Exit(1) from None

    return SyncConfig(
        source_calendar_id=calendar or config_file.get("source_calendar_id"),
        state_db_path=state.state_db,
        mirror_calendar_id=config_file.get("mirror_calendar_id"),
        client_secrets_file=_path(config_file.get("client_secrets_file"), DEFAULT_CLIENT_SECRETS),
        token_file=_path(config_file.get("token_file"), DEFAULT_TOKEN_FILE),
        lock_file=_path(config_file.get("lock_file"), DEFAULT_LOCK_FILE),
        lock_timeout=lock_timeout,
        page_size=page_size,
        full_sync=full,
        dry_run=dry_run,
        verbose=state.verbose,
    )


def _preflight(cfg: SyncConfig, need_remote: bool = True) -> None:
    from busy_mirror.preflight import run_preflight_checks

    if not run_preflight_checks(cfg, console, need_remote=need_remote):
        raise typer.Exit(1)


def _guarded(action):
    """Run ``action`` mapping sync errors to exit codes."""
    try:
        return action()
    except LockTimeout as e:
        console.print(f"[yellow]Skipped:[/] {e}")
        raise typer.Exit(EXIT_LOCKED) from None
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None
    except Exception as e:
        console.print_exception()
        console.print(f"[bold red]Unexpected error:[/] {e}")
        raise typer.Exit(1) from e


_CAL_OPT = Annotated[
    str | None,
    typer.Option("--calendar", "-C", help="Source Google calendar ID (overrides config)"),
]
_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


# ---------------------------------------------------------------------------
# Subcommand: sync
# ---------------------------------------------------------------------------


@app.command()
def sync(
    calendar: _CAL_OPT = None,
    full: Annotated[
        bool, typer.Option("--full", help="Ignore the stored sync token and resync from scratch")
    ] = False,
    dry_run: _DRY_RUN = False,
    no_preflight: Annotated[
        bool, typer.Option("--no-preflight", help="Skip EDS/credential checks")
    ] = False,
) -> None:
    """Run one incremental sync cycle (meant to be called from a timer)."""
    cfg = _build_config(calendar, full=full, dry_run=dry_run)
    if not no_preflight:
        _preflight(cfg)

    stats = _guarded(lambda: CalendarSynchronizer(cfg).run())

    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Mode", "full resync" if stats.full_sync else "incremental")
    results.add_row("Pages", str(stats.pages))
    results.add_row("Created", str(stats.added))
    results.add_row("Deleted", str(stats.deleted))
    results.add_row("Skipped", str(stats.skipped))
    title = "[bold]Results[/bold]" + (" [magenta](dry run)[/magenta]" if dry_run else "")
    console.print(Panel(results, title=title, expand=False))


# ---------------------------------------------------------------------------
# Subcommands: cleanup / clear
# ---------------------------------------------------------------------------


@app.command()
def cleanup(
    marker: Annotated[str, typer.Argument(help="Source event ID whose mirrors to delete")],
    dry_run: _DRY_RUN = False,
) -> None:
    """Delete the mirrors of one source event (within ±30 days)."""
    cfg = _build_config(dry_run=dry_run)
    _preflight(cfg, need_remote=False)
    removed = _guarded(lambda: CalendarSynchronizer(cfg).cleanup(marker))
    prefix = "Would delete" if dry_run else "Deleted"
    console.print(f"{prefix} [bold]{removed}[/bold] mirrored event(s) for [cyan]{marker}[/]")


@app.command()
def clear(dry_run: _DRY_RUN = False, yes: _YES = False) -> None:
    """Delete every mirrored event and forget sync tokens."""
    cfg = _build_config(dry_run=dry_run)
    _preflight(cfg, need_remote=False)
    if not yes and not dry_run:
        typer.confirm("Remove ALL mirrored busy events?", abort=True)
    removed = _guarded(lambda: CalendarSynchronizer(cfg).clear())
    prefix = "Would delete" if dry_run else "Deleted"
    console.print(f"{prefix} [bold]{removed}[/bold] mirrored event(s)")


# ---------------------------------------------------------------------------
# Subcommands: reset / set-default / status
# ---------------------------------------------------------------------------


def _locked_state_write(cfg: SyncConfig, action):
    """Run ``action(state_db)`` and commit, holding the sync lock like a sync cycle."""

    def _write():
        with SyncLock(cfg.lock_file).held(cfg.lock_timeout):
            with StateDatabase(cfg.state_db_path) as state_db:
                result = action(state_db)
                state_db.commit()
                return result

    return _guarded(_write)


@app.command()
def reset(calendar: _CAL_OPT = None) -> None:
    """Forget the stored sync token so the next run is a full resync."""
    cfg = _build_config(calendar)

    def _clear_token(state_db: StateDatabase) -> str | None:
        source_id = cfg.source_calendar_id or state_db.get_property(DEFAULT_SOURCE_PROPERTY)
        if source_id:
            state_db.clear_sync_token(source_id)
        return source_id

    source_id = _locked_state_write(cfg, _clear_token)
    if not source_id:
        console.print("[bold red]Error:[/] No source calendar configured.")
        raise typer.Exit(1)
    console.print(f"Cleared sync token for [cyan]{source_id}[/]")


@app.command("set-default")
def set_default(
    calendar_id: Annotated[
        str | None, typer.Argument(help="Source calendar ID (omit with --unset)")
    ] = None,
    unset: Annotated[bool, typer.Option("--unset", help="Remove the stored default")] = False,
) -> None:
    """Store the source calendar used when none is given or configured."""
    if not unset and not calendar_id:
        console.print("[bold red]Error:[/] Give a calendar ID or --unset.")
        raise typer.Exit(1)

    cfg = _build_config()
    if unset:
        _locked_state_write(cfg, lambda db: db.delete_property(DEFAULT_SOURCE_PROPERTY))
        console.print("Default source calendar removed")
        return
    _locked_state_write(cfg, lambda db: db.set_property(DEFAULT_SOURCE_PROPERTY, calendar_id))
    console.print(f"Default source calendar set to [cyan]{calendar_id}[/]")


@app.command()
def status() -> None:
    """Show configuration and stored sync tokens."""
    from datetime import datetime

    cfg = _build_config()
    config_exists = state.config_path.exists()
    db_exists = state.state_db.exists()

    default_id = None
    if db_exists:
        with StateDatabase(state.state_db) as state_db:
            default_id = state_db.get_property(DEFAULT_SOURCE_PROPERTY)

    info = Text()
    info.append("  Config:    ", style="bold")
    info.append(str(state.config_path) + " ")
    info.append("✓" if config_exists else "(not found)", style="green" if config_exists else "red")
    info.append("\n  State DB:  ", style="bold")
    info.append(str(state.state_db) + " ")
    info.append("✓" if db_exists else "(not found)", style="green" if db_exists else "yellow")
    info.append("\n  Source:    ", style="bold")
    info.append(cfg.source_calendar_id or default_id or "(not set)")
    if not cfg.source_calendar_id and default_id:
        info.append(" (stored default)", style="dim")
    info.append("\n  Mirror:    ", style="bold")
    info.append(cfg.mirror_calendar_id or "EDS default calendar")
    info.append("\n  Lock:      ", style="bold")
    info.append(f"{cfg.lock_file} (timeout {cfg.lock_timeout:g}s)")

    console.print(Panel(info, title="[bold]busy-mirror status[/bold]"))

    rows = query_tokens(state.state_db)
    if not rows:
        console.print("[yellow]No sync tokens stored; the next sync will be a full resync.[/]")
        return

    table = Table(show_header=True, header_style="bold cyan", box=None, padding=(0, 2))
    table.add_column("Calendar")
    table.add_column("Token")
    table.add_column("Last sync")
    for row in rows:
        token = row["token"]
        short = token[:16] + "…" if len(token) > 16 else token
        ts = row["updated_at"] or 0
        last_sync = datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S") if ts else "—"
        table.add_row(row["calendar_id"], short, last_sync)
    console.print(Panel(table, title="[bold]Sync tokens[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommands: calendars / create-test-event
# ---------------------------------------------------------------------------


@app.command()
def calendars(
    google: Annotated[
        bool, typer.Option("--google", help="Also list Google calendars (needs credentials)")
    ] = False,
) -> None:
    """List EDS calendars (mirror candidates) and optionally Google calendars."""
    import gi

    gi.require_version("EDataServer", "1.2")
    from gi.repository import EDataServer

    from busy_mirror.debug import list_eds_calendars
    from busy_mirror.debug import list_google_calendars

    registry = EDataServer.SourceRegistry.new_sync(None)
    list_eds_calendars(registry, console)

    if google:
        from busy_mirror.google_client import GoogleCalendarClient

        cfg = _build_config()
        client = _guarded(
            lambda: GoogleCalendarClient.from_files(cfg.client_secrets_file, cfg.token_file)
        )
        list_google_calendars(_guarded(client.list_calendars), console)


@app.command("create-test-event")
def create_test_event(
    calendar: _CAL_OPT = None,
    hour: Annotated[int, typer.Option("--hour", help="Local start hour tomorrow")] = 14,
    minutes: Annotated[int, typer.Option("--minutes", help="Duration in minutes")] = 60,
) -> None:
    """Insert a private test event tomorrow into the source calendar."""
    from datetime import datetime
    from datetime import timedelta

    from busy_mirror.google_client import GoogleCalendarClient

    cfg = _build_config(calendar)
    source_id = cfg.source_calendar_id
    if not source_id:
        with StateDatabase(state.state_db) as state_db:
            source_id = state_db.get_property(DEFAULT_SOURCE_PROPERTY)
    if not source_id:
        console.print("[bold red]Error:[/] No source calendar configured.")
        raise typer.Exit(1)

    tomorrow = (datetime.now().astimezone() + timedelta(days=1)).replace(
        hour=hour, minute=0, second=0, microsecond=0
    )
    body = {
        "summary": "busy-mirror test event",
        "description": "Created by busy-mirror create-test-event",
        "start": {"dateTime": tomorrow.isoformat()},
        "end": {"dateTime": (tomorrow + timedelta(minutes=minutes)).isoformat()},
    }

    def _insert():
        client = GoogleCalendarClient.from_files(cfg.client_secrets_file, cfg.token_file)
        return client.insert_event(body, source_id)

    created = _guarded(_insert)
    console.print(
        f"Created [cyan]{created.get('id')}[/] at {tomorrow:%Y-%m-%d %H:%M} in {source_id}"
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
