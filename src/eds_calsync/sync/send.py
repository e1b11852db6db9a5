"""
Send branch: local calendar → filter → change detection → sync message.
"""

from datetime import datetime
from datetime import timezone

from eds_calsync.models import BranchResult
from eds_calsync.models import BranchStatus
from eds_calsync.models import SyncConfig
from eds_calsync.models import SyncStats
from eds_calsync.models import SyncWindow
from eds_calsync.models import TransportError
from eds_calsync.sanitizer import EventSanitizer
from eds_calsync.snapshot import SnapshotStore
from eds_calsync.sync.change import has_changed


def _message_body(event_count: int) -> str:
    sent_at = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    return f"Synchronization Message for CalSync. {event_count} Events sent at UTC Time: {sent_at}"


def _cleanup_sent_items(config: SyncConfig, logger, mailbox):
    """Delete our own sync messages from the sent and trash folders."""
    for folder in (config.sent_folder, config.trash_folder):
        try:
            mailbox.delete_messages_matching(folder, config.email_subject)
        except TransportError as e:
            logger.warning(f"Could not clean up {folder!r}: {e}")


def run_send(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    window: SyncWindow,
    store,
    mailbox,
    codec,
    snapshot: SnapshotStore,
) -> BranchResult:
    """Execute the send direction for one run."""
    logger.info("Reading local calendar...")
    events = store.query_occurrences(window, tagged_only=False)
    outbound = EventSanitizer.filter(events)
    logger.info(f"{len(outbound)} of {len(events)} event(s) eligible to share")

    if not outbound:
        result = BranchResult(BranchStatus.SKIPPED_EMPTY, detail="no busy time to share")
    elif not has_changed(snapshot.load(), outbound):
        logger.info("Outbound busy time unchanged since last send, skipping")
        result = BranchResult(BranchStatus.SKIPPED_UNCHANGED, detail="unchanged")
    else:
        payload = codec.encode(outbound)
        if config.dry_run:
            logger.info(
                f"[DRY RUN] Would SEND {len(outbound)} occurrence(s) to {config.target_address}"
            )
            stats.sent += 1
            return BranchResult(BranchStatus.SENT, detail="dry run")

        mailbox.send_message(
            config.target_address, config.email_subject, _message_body(len(events)), payload
        )
        snapshot.save(payload)
        stats.sent += 1
        logger.info(f"Sent {len(outbound)} occurrence(s) to {config.target_address}")
        result = BranchResult(BranchStatus.SENT, detail=f"{len(outbound)} occurrence(s)")

    if not config.dry_run:
        _cleanup_sent_items(config, logger, mailbox)
    return result
