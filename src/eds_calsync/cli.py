"""
Command-line interface for EDS CalSync.
"""

import logging
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

from eds_calsync.config import load_config
from eds_calsync.config import load_config_file
from eds_calsync.config import mail_password
from eds_calsync.models import DEFAULT_CONFIG
from eds_calsync.models import DEFAULT_SNAPSHOT
from eds_calsync.models import BranchResult
from eds_calsync.models import BranchStatus
from eds_calsync.models import CalendarSyncError
from eds_calsync.models import ConfigurationError
from eds_calsync.models import SyncConfig
from eds_calsync.models import SyncWindow

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Share free/busy time between two calendars by email, via EDS.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
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


def _build_config(
    calendar: str | None = None,
    target: str | None = None,
    days: int | None = None,
    send_only: bool = False,
    receive_only: bool = False,
    dry_run: bool = False,
    yes: bool = False,
) -> SyncConfig:
    if send_only and receive_only:
        raise typer.BadParameter("--send-only and --receive-only are mutually exclusive")

    try:
        return load_config(
            state.config_path,
            calendar_uid=calendar,
            target_address=target,
            sync_range_days=days,
            enable_send=False if receive_only else None,
            enable_receive=False if send_only else None,
            dry_run=dry_run or None,
            verbose=state.verbose or None,
            yes=yes or None,
        )
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        console.print(f"[dim]Config file: {state.config_path}[/dim]")
        raise typer.Exit(1) from None


def _open_registry():
    import gi

    gi.require_version("EDataServer", "1.2")
    from gi.repository import EDataServer

    return EDataServer.SourceRegistry.new_sync(None)


def _connect_store(cfg: SyncConfig):
    from eds_calsync.eds_client import EDSCalendarStore

    store = EDSCalendarStore(_open_registry(), cfg.calendar_uid)
    store.connect()
    return store


def _open_mailbox(cfg: SyncConfig):
    from eds_calsync.mail import ImapSmtpMailbox

    return ImapSmtpMailbox(cfg, mail_password(cfg))


def _calendar_display(calendar_uid: str) -> str:
    from eds_calsync.eds_client import get_calendar_display_info

    name, account, _ = get_calendar_display_info(calendar_uid)
    return name + (f" ({account})" if account else "")


def _status_text(result: BranchResult) -> Text:
    style = {
        BranchStatus.DISABLED: "dim",
        BranchStatus.SENT: "green",
        BranchStatus.APPLIED: "green",
        BranchStatus.FAILED: "bold red",
    }.get(result.status, "yellow")
    text = Text(result.status.value, style=style)
    if result.detail:
        text.append(f"  {result.detail}", style="dim")
    return text


def _run_sync(cfg: SyncConfig) -> None:
    """Core sync runner: display panel, confirm, run, show results."""
    from eds_calsync.ical import ICalCodec
    from eds_calsync.preflight import run_preflight_checks
    from eds_calsync.provision import Provisioner
    from eds_calsync.sync import CalendarSynchronizer

    if not run_preflight_checks(cfg, console):
        raise typer.Exit(1)

    window = SyncWindow.from_today(cfg.sync_range_days)

    # -- Info panel ----------------------------------------------------------
    if cfg.enable_send and cfg.enable_receive:
        direction = "[cyan]↔ Send and receive[/]"
    elif cfg.enable_send:
        direction = "[cyan]→ Send only[/]"
    else:
        direction = "[cyan]← Receive only[/]"

    info = Text()
    info.append("  Calendar:  ", style="bold")
    info.append(f"{_calendar_display(cfg.calendar_uid)}\n")
    info.append(f"             {cfg.calendar_uid}\n", style="dim")
    info.append("  Target:    ", style="bold")
    info.append(f"{cfg.target_address or '—'}\n")
    info.append("  Window:    ", style="bold")
    info.append(f"{window.start} → {window.end} ({cfg.sync_range_days} days)\n")
    info.append("  Direction: ", style="bold")
    info.append_text(Text.from_markup(direction))
    if cfg.dry_run:
        info.append("\n  Mode:      ")
        info.append("DRY RUN", style="bold magenta")

    console.print(Panel(info, title="[bold]EDS CalSync[/bold]"))

    # -- Confirmation --------------------------------------------------------
    if not cfg.yes and not cfg.dry_run:
        typer.confirm("Proceed?", abort=True)

    # -- Run -----------------------------------------------------------------
    try:
        store = _connect_store(cfg)
        mailbox = _open_mailbox(cfg)
        if cfg.enable_receive and not Provisioner(cfg, mailbox).is_setup_complete():
            console.print(
                f"[bold red]Setup incomplete:[/] sync folder [cyan]{cfg.sync_folder}[/] "
                "is missing. Run [cyan]eds-calsync setup[/] first."
            )
            raise typer.Exit(1)
        report = CalendarSynchronizer(cfg, store, mailbox, ICalCodec()).run()
    except CalendarSyncError as e:
        console.print(f"[bold red]Sync failed:[/] {e}")
        raise typer.Exit(1) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    # -- Results table -------------------------------------------------------
    stats = report.stats
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column()
    results.add_row("Send", _status_text(report.send))
    results.add_row("Receive", _status_text(report.receive))
    results.add_row("Sent", str(stats.sent))
    results.add_row("Added", str(stats.added))
    results.add_row("Deleted", str(stats.deleted))
    error_val = Text(str(stats.errors))
    if report.ok:
        error_val.append(" ✓", style="green")
    else:
        error_val.stylize("bold red")
    results.add_row("Errors", error_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))

    if not report.ok:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommands: sync / clear
# ---------------------------------------------------------------------------

_CAL_OPT = Annotated[
    str | None,
    typer.Option("--calendar", help="Local calendar EDS UID (overrides config)"),
]
_TARGET_OPT = Annotated[
    str | None,
    typer.Option("--target", "-t", help="Address that receives sync messages (overrides config)"),
]
_DAYS_OPT = Annotated[
    int | None,
    typer.Option("--days", "-d", min=1, help="Sync window length in days (overrides config)"),
]
_SEND_ONLY = Annotated[bool, typer.Option("--send-only", help="Only share local busy time")]
_RECV_ONLY = Annotated[bool, typer.Option("--receive-only", help="Only apply received busy time")]
_DRY_RUN = Annotated[bool, typer.Option("--dry-run", "-n", help="Preview changes without applying")]
_YES = Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")]


@app.command()
def sync(
    calendar: _CAL_OPT = None,
    target: _TARGET_OPT = None,
    days: _DAYS_OPT = None,
    send_only: _SEND_ONLY = False,
    receive_only: _RECV_ONLY = False,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Send local busy time and apply busy time received from the other side."""
    _run_sync(
        _build_config(
            calendar,
            target,
            days,
            send_only=send_only,
            receive_only=receive_only,
            dry_run=dry_run,
            yes=yes,
        )
    )


@app.command()
def setup() -> None:
    """Create the sync folder in the mailbox (safe to run repeatedly)."""
    from eds_calsync.provision import Provisioner

    cfg = _build_config()
    try:
        created = Provisioner(cfg, _open_mailbox(cfg)).install()
    except CalendarSyncError as e:
        console.print(f"[bold red]Setup failed:[/] {e}")
        raise typer.Exit(1) from None

    if created:
        console.print(f"[green]Created sync folder[/] [cyan]{cfg.sync_folder}[/]")
    else:
        console.print(f"Sync folder [cyan]{cfg.sync_folder}[/] already exists ✓")


@app.command()
def clear(
    calendar: _CAL_OPT = None,
    days: _DAYS_OPT = None,
    dry_run: _DRY_RUN = False,
    yes: _YES = False,
) -> None:
    """Remove synced busy blocks from the local calendar.

    Only events carrying the sync tag are touched.
    """
    from eds_calsync.ical import ICalCodec
    from eds_calsync.sync import CalendarSynchronizer

    cfg = _build_config(calendar, days=days, dry_run=dry_run, yes=yes)

    console.print(
        Panel(
            Text.from_markup(
                f"  Calendar:  {_calendar_display(cfg.calendar_uid)}\n"
                "  Operation: [bold red]CLEAR (remove synced events, no resync)[/]"
                + ("\n  Mode:      [bold magenta]DRY RUN[/]" if cfg.dry_run else "")
            ),
            title="[bold]EDS CalSync[/bold]",
        )
    )
    if not cfg.yes and not cfg.dry_run:
        typer.confirm("Proceed?", abort=True)

    try:
        store = _connect_store(cfg)
        stats = CalendarSynchronizer(cfg, store, mailbox=None, codec=ICalCodec()).clear()
    except CalendarSyncError as e:
        console.print(f"[bold red]Clear failed:[/] {e}")
        raise typer.Exit(1) from None

    console.print(f"Deleted [bold]{stats.deleted}[/bold] synced event(s)")
    if stats.errors:
        console.print(f"[bold red]{stats.errors} error(s)[/]")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and the busy time sent last."""
    from datetime import datetime

    from eds_calsync.debug import render_occurrences
    from eds_calsync.ical import ICalCodec
    from eds_calsync.snapshot import SnapshotStore

    config_exists = state.config_path.exists()
    try:
        file_values = load_config_file(state.config_path)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        raise typer.Exit(1) from None

    snapshot_path = (
        Path(file_values["snapshot_path"]).expanduser()
        if file_values.get("snapshot_path")
        else DEFAULT_SNAPSHOT
    )
    snapshot = SnapshotStore(snapshot_path, ICalCodec())
    snapshot_exists = snapshot.exists()

    cfg_info = Text()
    cfg_info.append("  Config:    ", style="bold")
    cfg_info.append(str(state.config_path) + " ")
    cfg_info.append(
        "✓" if config_exists else "(not found)", style="green" if config_exists else "red"
    )
    cfg_info.append("\n  Snapshot:  ", style="bold")
    cfg_info.append(str(snapshot_path) + " ")
    cfg_info.append(
        "✓" if snapshot_exists else "(not found)", style="green" if snapshot_exists else "yellow"
    )
    if snapshot_exists:
        sent_at = datetime.fromtimestamp(snapshot_path.stat().st_mtime)
        cfg_info.append("\n  Last sent: ", style="bold")
        cfg_info.append(sent_at.strftime("%Y-%m-%d %H:%M:%S"))

    for key, label in (
        ("calendar_uid", "Calendar"),
        ("target_address", "Target"),
        ("sync_range_days", "Days"),
        ("sync_folder", "Folder"),
    ):
        if file_values.get(key):
            cfg_info.append(f"\n  {label + ':':<11}", style="bold")
            cfg_info.append(file_values[key])

    console.print(Panel(cfg_info, title="[bold]EDS CalSync — Status[/bold]"))

    if not snapshot_exists:
        console.print(
            "[yellow]Nothing sent yet — run[/] [cyan]eds-calsync sync[/] [yellow]to send.[/]"
        )
        return

    sent = snapshot.load()
    render_occurrences(sent, console, title="Last sent")


# ---------------------------------------------------------------------------
# Subcommand: calendars
# ---------------------------------------------------------------------------


@app.command()
def calendars() -> None:
    """List all configured EDS calendars."""
    from eds_calsync.debug import list_calendars as _list_calendars

    _list_calendars(_open_registry(), console)


# ---------------------------------------------------------------------------
# Subcommand: inspect
# ---------------------------------------------------------------------------


@app.command()
def inspect(
    calendar: _CAL_OPT = None,
    days: _DAYS_OPT = None,
    synced_only: Annotated[
        bool, typer.Option("--synced-only", help="Show only events created by sync")
    ] = False,
    outbound: Annotated[
        bool, typer.Option("--outbound", help="Show what the next send would share")
    ] = False,
) -> None:
    """Show the occurrences in the current sync window."""
    from eds_calsync.debug import render_occurrences
    from eds_calsync.sanitizer import EventSanitizer

    try:
        file_values = load_config_file(state.config_path)
    except ConfigurationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        raise typer.Exit(1) from None
    calendar_uid = calendar or file_values.get("calendar_uid")
    if not calendar_uid:
        console.print("[bold red]Error:[/] No calendar given ([cyan]--calendar[/] or config).")
        raise typer.Exit(1)
    try:
        range_days = days or int(file_values.get("sync_range_days") or 30)
    except ValueError:
        console.print("[bold red]Error:[/] sync_range_days must be an integer.")
        raise typer.Exit(1) from None

    from eds_calsync.eds_client import EDSCalendarStore

    window = SyncWindow.from_today(range_days)
    console.print(
        f"[bold]Calendar:[/] {_calendar_display(calendar_uid)} [dim]({calendar_uid})[/dim]"
    )

    try:
        store = EDSCalendarStore(_open_registry(), calendar_uid)
        store.connect()
        occurrences = store.query_occurrences(window, tagged_only=synced_only)
    except CalendarSyncError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None

    if outbound:
        occurrences = EventSanitizer.filter(occurrences)
    render_occurrences(occurrences, console, title=f"{window.start} → {window.end}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
