"""
One-time bootstrap of the mailbox side: the sync folder and its routing rule.

IMAP servers have no portable rule store, so the rule is a client-side
filter applied by the receive branch before it lists the sync folder.
"""

import logging
from dataclasses import dataclass

from eds_calsync.models import DEFAULT_RULE_NAME
from eds_calsync.models import SyncConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FolderRule:
    """Move inbox messages carrying the sync subject into the sync folder."""

    name: str
    subject: str
    folder: str
    source: str = "INBOX"

    def apply(self, mailbox) -> int:
        moved = mailbox.move_matching(self.source, self.folder, self.subject)
        if moved:
            logger.info(f"Rule {self.name!r}: moved {moved} message(s) to {self.folder!r}")
        return moved


class Provisioner:
    """Idempotent setup step run before the per-run orchestration."""

    def __init__(self, config: SyncConfig, mailbox):
        self.config = config
        self.mailbox = mailbox

    @property
    def rule(self) -> FolderRule:
        return FolderRule(
            name=DEFAULT_RULE_NAME,
            subject=self.config.email_subject,
            folder=self.config.sync_folder,
        )

    def is_setup_complete(self) -> bool:
        return self.mailbox.has_folder(self.config.sync_folder)

    def install(self) -> bool:
        """Create whatever is missing. Returns True if anything was created."""
        created = self.mailbox.ensure_folder(self.config.sync_folder)
        if created:
            logger.info(f"Setup complete: sync folder {self.config.sync_folder!r} created")
        else:
            logger.info("Setup already complete")
        return created
