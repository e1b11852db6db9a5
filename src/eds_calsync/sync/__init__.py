"""
CalendarSynchronizer — thin orchestrator that delegates to sync submodules.
"""

import logging
from datetime import date

from eds_calsync.models import BranchResult
from eds_calsync.models import BranchStatus
from eds_calsync.models import CalendarSyncError
from eds_calsync.models import SyncConfig
from eds_calsync.models import SyncReport
from eds_calsync.models import SyncStats
from eds_calsync.models import SyncWindow
from eds_calsync.provision import Provisioner
from eds_calsync.snapshot import SnapshotStore
from eds_calsync.sync.clear import perform_clear
from eds_calsync.sync.receive import run_receive
from eds_calsync.sync.send import run_send


class CalendarSynchronizer:
    """Runs one send pass and one receive pass over a shared date window.

    The calendar store, mailbox and codec are handed in already connected;
    the synchronizer never keeps references to them beyond the run.
    """

    def __init__(
        self,
        config: SyncConfig,
        store,
        mailbox,
        codec,
        snapshot: SnapshotStore | None = None,
        today: date | None = None,
    ):
        self.config = config
        self.store = store
        self.mailbox = mailbox
        self.codec = codec
        self.snapshot = snapshot or SnapshotStore(config.snapshot_path, codec)
        self.today = today
        self.logger = logging.getLogger(__name__)
        self.stats = SyncStats()

    def window(self) -> SyncWindow:
        return SyncWindow.from_today(self.config.sync_range_days, self.today)

    def _guarded(self, name: str, branch) -> BranchResult:
        try:
            return branch()
        except (CalendarSyncError, OSError) as e:
            self.logger.error(f"{name} failed: {e}")
            return BranchResult(BranchStatus.FAILED, error=e, detail=str(e))

    def run(self) -> SyncReport:
        """Execute the synchronization process."""
        window = self.window()
        self.logger.info(f"Sync window: {window.start} → {window.end}")

        send = BranchResult(BranchStatus.DISABLED)
        receive = BranchResult(BranchStatus.DISABLED)

        if self.config.enable_send:
            send = self._guarded(
                "Send",
                lambda: run_send(
                    self.config,
                    self.stats,
                    self.logger,
                    window,
                    self.store,
                    self.mailbox,
                    self.codec,
                    self.snapshot,
                ),
            )

        if self.config.enable_receive:
            rule = Provisioner(self.config, self.mailbox).rule
            receive = self._guarded(
                "Receive",
                lambda: run_receive(
                    self.config,
                    self.stats,
                    self.logger,
                    window,
                    self.store,
                    self.mailbox,
                    self.codec,
                    rule,
                ),
            )

        return SyncReport(window=window, send=send, receive=receive, stats=self.stats)

    def clear(self) -> SyncStats:
        perform_clear(self.config, self.stats, self.logger, self.window(), self.store)
        return self.stats
