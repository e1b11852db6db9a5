"""
Rich rendering helpers for the calendars / inspect / status commands.

Importable functions:
  list_calendars(registry, console)  — render a Rich table of all calendars
  render_occurrences(occurrences, console, title)  — render occurrences as a table
"""

from rich.console import Console
from rich.table import Table
from rich.text import Text

from eds_calsync.models import BusyState
from eds_calsync.models import Occurrence

_BUSY_STYLES = {
    BusyState.FREE: "green",
    BusyState.BUSY: "red",
    BusyState.TENTATIVE: "yellow",
    BusyState.OUT_OF_OFFICE: "magenta",
    BusyState.UNKNOWN: "dim",
}


def list_calendars(registry, console: Console) -> None:
    """Render all configured EDS calendars as a Rich table."""
    import gi

    gi.require_version("EDataServer", "1.2")
    gi.require_version("ECal", "2.0")
    from gi.repository import ECal
    from gi.repository import EDataServer
    from gi.repository import GLib

    sources = registry.list_sources(EDataServer.SOURCE_EXTENSION_CALENDAR)

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Display Name", style="bold")
    table.add_column("Account")
    table.add_column("Mode")
    table.add_column("UID", style="dim")

    for source in sources:
        name = source.get_display_name() or "(unnamed)"
        uid = source.get_uid() or ""
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


def render_occurrences(occurrences: list[Occurrence], console: Console, title: str) -> None:
    table = Table(show_header=True, header_style="bold cyan", title=title)
    table.add_column("Start")
    table.add_column("End")
    table.add_column("Status")
    table.add_column("Origin")
    table.add_column("Summary", overflow="fold")

    def _key(occ: Occurrence):
        return occ.start.timestamp() if occ.start else 0.0

    for occ in sorted(occurrences, key=_key):
        start = occ.start.strftime("%Y-%m-%d %H:%M") if occ.start else "?"
        end = occ.end.strftime("%Y-%m-%d %H:%M") if occ.end else "?"
        if occ.is_all_day:
            start, end = start[:10], "(all day)"
        origin = Text("synced", style="cyan") if occ.is_tagged else Text("user")
        table.add_row(
            start,
            end,
            Text(occ.busy_state.value, style=_BUSY_STYLES[occ.busy_state]),
            origin,
            occ.summary,
        )

    console.print(table)
    console.print(f"[bold]{len(occurrences)} occurrence(s)[/bold]")
