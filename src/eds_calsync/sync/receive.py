"""
Receive branch: sync folder → decode → reconcile → apply to local calendar.
"""

from eds_calsync.mail import InboundMessage
from eds_calsync.models import BranchResult
from eds_calsync.models import BranchStatus
from eds_calsync.models import CalendarSyncError
from eds_calsync.models import Occurrence
from eds_calsync.models import ParseError
from eds_calsync.models import SyncConfig
from eds_calsync.models import SyncStats
from eds_calsync.models import SyncWindow
from eds_calsync.provision import FolderRule
from eds_calsync.sync.reconcile import ReconcilePlan
from eds_calsync.sync.reconcile import reconcile


def decode_messages(
    logger, messages: list[InboundMessage], codec, window: SyncWindow
) -> list[Occurrence]:
    """Union of the in-window occurrences of every parseable attachment.

    Attachments that fail to decode are logged and contribute nothing.
    """
    remote = []
    for msg in messages:
        if not msg.attachments:
            logger.warning(f"Message {msg.uid} ({msg.subject!r}) has no calendar attachment")
        for data in msg.attachments:
            try:
                decoded = codec.decode(data, window)
            except ParseError as e:
                logger.warning(f"Skipping unparseable attachment in message {msg.uid}: {e}")
                continue
            remote.extend(o for o in decoded if window.contains(o))
    return remote


def apply_plan(config: SyncConfig, stats: SyncStats, logger, store, plan: ReconcilePlan) -> int:
    """Apply removals then additions. Returns the number of failed items."""
    failures = 0

    for occ in plan.to_remove:
        if config.dry_run:
            logger.info(f"[DRY RUN] Would DELETE mirror {occ.describe()}")
            stats.deleted += 1
            continue
        try:
            store.delete(occ)
        except CalendarSyncError as e:
            logger.error(f"Failed to delete {occ.describe()}: {e}")
            stats.errors += 1
            failures += 1
            continue
        stats.deleted += 1
        logger.debug(f"Deleted mirror {occ.describe()} ({occ.uid})")

    for occ in plan.to_add:
        if config.dry_run:
            logger.info(f"[DRY RUN] Would CREATE mirror {occ.describe()}")
            stats.added += 1
            continue
        try:
            created = store.create(occ)
        except CalendarSyncError as e:
            logger.error(f"Failed to create {occ.describe()}: {e}")
            stats.errors += 1
            failures += 1
            continue
        stats.added += 1
        logger.debug(f"Created mirror {occ.describe()} ({created.uid})")

    return failures


def run_receive(
    config: SyncConfig,
    stats: SyncStats,
    logger,
    window: SyncWindow,
    store,
    mailbox,
    codec,
    rule: FolderRule | None = None,
) -> BranchResult:
    """Execute the receive direction for one run."""
    if rule is not None:
        if config.dry_run:
            logger.info(f"[DRY RUN] Would apply rule {rule.name!r}")
        else:
            rule.apply(mailbox)

    logger.info(f"Fetching messages from {config.sync_folder!r}...")
    messages = mailbox.list_messages(config.sync_folder)
    if not messages:
        logger.info("No sync messages received")
        return BranchResult(BranchStatus.NO_MESSAGES, detail="no messages")

    remote = decode_messages(logger, messages, codec, window)
    logger.info(f"{len(messages)} message(s) carry {len(remote)} remote occurrence(s) in window")

    local_synced = store.query_occurrences(window, tagged_only=True)
    plan = reconcile(remote, local_synced)
    if plan.is_noop:
        logger.info("Mirror already matches the remote busy time")
        failures = 0
    else:
        logger.info(f"Reconciled: {len(plan.to_add)} to add, {len(plan.to_remove)} to remove")
        failures = apply_plan(config, stats, logger, store, plan)

    if config.dry_run:
        logger.info(f"[DRY RUN] Would delete {len(messages)} processed message(s)")
    elif failures:
        logger.warning(f"{failures} item(s) failed; keeping messages for the next run")
    else:
        for msg in messages:
            mailbox.delete_message(config.sync_folder, msg.uid)

    return BranchResult(
        BranchStatus.APPLIED,
        detail=f"+{len(plan.to_add)} -{len(plan.to_remove)}",
    )
