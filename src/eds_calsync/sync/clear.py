"""
Clear operation — remove every mirror this tool created in the window.
"""

from eds_calsync.models import CalendarSyncError
from eds_calsync.models import SyncConfig
from eds_calsync.models import SyncStats
from eds_calsync.models import SyncWindow


def perform_clear(config: SyncConfig, stats: SyncStats, logger, window: SyncWindow, store):
    """Delete only tagged occurrences, leaving user events untouched."""
    logger.warning("CLEAR MODE: Removing synced events from the local calendar...")

    mirrors = store.query_occurrences(window, tagged_only=True)
    if not mirrors:
        logger.info("No synced events found - calendar is clean")
        return

    if config.dry_run:
        logger.info(f"[DRY RUN] Would delete {len(mirrors)} synced event(s)")
        for occ in mirrors:
            logger.debug(f"[DRY RUN] Would delete: {occ.describe()} ({occ.uid})")
        stats.deleted += len(mirrors)
        return

    for occ in mirrors:
        try:
            store.delete(occ)
        except CalendarSyncError as e:
            logger.error(f"Failed to remove {occ.uid}: {e}")
            stats.errors += 1
            continue
        stats.deleted += 1

    logger.info(f"Clear complete: removed {stats.deleted} synced event(s) (other events preserved)")
