"""
Preflight checks run before sync to catch common misconfigurations early.
"""

import logging
import os

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from eds_calsync.models import SyncConfig

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


def run_preflight_checks(cfg: SyncConfig, console: Console) -> bool:
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
        logger.error("EDS registry unreachable: %s", e)
        issues.append(("EDS registry", str(e), "Is evolution-data-server running?"))
        _print_issues(issues, console)
        return False

    # 2. Calendar UID exists + connectable
    source = registry.ref_source(cfg.calendar_uid)
    if source is None:
        logger.error("Calendar UID not found in EDS: %s", cfg.calendar_uid)
        issues.append(
            ("Calendar", f"UID not found: {cfg.calendar_uid}", "Run: eds-calsync calendars")
        )
    else:
        try:
            ECal.Client.connect_sync(source, ECal.ClientSourceType.EVENTS, 5, None)
        except GLib.Error as e:
            msg = e.message or str(e)
            logger.error("Cannot connect to calendar (%s): %s", cfg.calendar_uid, msg)
            if any(kw in msg.lower() for kw in _OFFLINE_KEYWORDS):
                hint = "Calendar appears offline — check GNOME Online Accounts"
            else:
                hint = msg
            issues.append(("Calendar", f"Connection failed: {msg}", hint))

    # 3. Mail password available
    if not os.environ.get(cfg.password_env):
        issues.append(
            (
                "Mail password",
                f"${cfg.password_env} is not set",
                f"export {cfg.password_env}=... (or set password_env in the config file)",
            )
        )

    # 4. Snapshot directory writable
    snapshot_dir = cfg.snapshot_path.parent
    try:
        snapshot_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create snapshot directory %s: %s", snapshot_dir, e)
        issues.append(("Snapshot", f"{snapshot_dir}: {e}", f"Check permissions on {snapshot_dir}"))
    else:
        if not os.access(snapshot_dir, os.W_OK):
            issues.append(
                ("Snapshot", f"{snapshot_dir} is read-only", f"Check permissions on {snapshot_dir}")
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
