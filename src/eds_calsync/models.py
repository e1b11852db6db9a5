"""
Pure data models — no EDS, ICalGLib or mail imports.
"""

import dataclasses
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from enum import Enum
from pathlib import Path

from eds_calsync.fingerprint import fingerprint
from eds_calsync.fingerprint import same_event

DEFAULT_CONFIG = Path.home() / ".config/eds-calsync.conf"
DEFAULT_SNAPSHOT = Path.home() / ".local/share/eds-calsync/last-sent.ics"

# Summary written on every exported and every mirrored occurrence.
PLACEHOLDER_SUMMARY = "Busy"

# CATEGORIES value that marks occurrences created by this tool.
SYNC_TAG = "[Calendar Sync]"

DEFAULT_EMAIL_SUBJECT = "CalSync Synchronization Message"
DEFAULT_SYNC_FOLDER = "CalSync Messages"
DEFAULT_RULE_NAME = "CalSync Folder Rule"


class CalendarSyncError(Exception):
    """Base exception for calendar sync errors."""

    pass


class ConfigurationError(CalendarSyncError):
    """Missing or malformed settings. Raised before any store or mail access."""


class TransportError(CalendarSyncError):
    """Sending, listing or deleting mail failed."""


class ParseError(CalendarSyncError):
    """An attachment could not be decoded as calendar data."""


class StoreError(CalendarSyncError):
    """The calendar store rejected a query, create or delete."""


class SnapshotError(CalendarSyncError):
    """The last-sent snapshot could not be written."""


class SyncTagViolation(Exception):
    """An untagged occurrence reached a code path that may delete it.

    This is a programming error, not a recoverable condition, so it does not
    derive from CalendarSyncError and is never captured into a branch result.
    """


class BusyState(str, Enum):
    FREE = "FREE"
    BUSY = "BUSY"
    TENTATIVE = "TENTATIVE"
    OUT_OF_OFFICE = "OOF"
    UNKNOWN = "UNKNOWN"


class Origin(str, Enum):
    USER_CREATED = "user"
    SYSTEM_SYNCED = "system"


@dataclass(frozen=True, eq=False)
class Occurrence:
    """One calendar time block.

    Equality and hashing follow the fingerprint policy: two occurrences are
    the same event iff their start and end are equal. Every other field is
    ignored, so a plain ``set`` of occurrences collapses duplicates.
    """

    start: datetime | None
    end: datetime | None
    summary: str = ""
    busy_state: BusyState = BusyState.BUSY
    is_all_day: bool = False
    origin: Origin = Origin.USER_CREATED
    sync_tag: str | None = None
    reminder_set: bool = True
    uid: str | None = None  # assigned by the calendar store

    def __eq__(self, other):
        if not isinstance(other, Occurrence):
            return NotImplemented
        return same_event(self, other)

    def __hash__(self):
        return hash(fingerprint(self))

    @property
    def is_tagged(self) -> bool:
        """True for occurrences this tool created and may therefore delete."""
        return self.origin is Origin.SYSTEM_SYNCED and self.sync_tag == SYNC_TAG

    def anonymized(self) -> "Occurrence":
        """Copy with the summary replaced by the placeholder, all else preserved."""
        return dataclasses.replace(self, summary=PLACEHOLDER_SUMMARY)

    def as_synced(self) -> "Occurrence":
        """Copy ready to be materialized as a mirror in the local calendar."""
        return dataclasses.replace(
            self,
            summary=PLACEHOLDER_SUMMARY,
            origin=Origin.SYSTEM_SYNCED,
            sync_tag=SYNC_TAG,
            reminder_set=False,
            uid=None,
        )

    def describe(self) -> str:
        start = self.start.isoformat() if self.start else "?"
        end = self.end.isoformat() if self.end else "?"
        return f"[{start} → {end}]"


@dataclass(frozen=True)
class SyncWindow:
    """Half-open date range ``[start, end)`` under reconciliation for one run."""

    start: date
    end: date

    @classmethod
    def from_today(cls, days: int, today: date | None = None) -> "SyncWindow":
        start = today or date.today()
        return cls(start, start + timedelta(days=days))

    @property
    def start_dt(self) -> datetime:
        return datetime.combine(self.start, time.min).astimezone()

    @property
    def end_dt(self) -> datetime:
        return datetime.combine(self.end, time.min).astimezone()

    def contains(self, occ: Occurrence) -> bool:
        """True when the occurrence lies entirely inside the window."""
        if occ.start is None or occ.end is None:
            return False
        return occ.start >= self.start_dt and occ.end <= self.end_dt


@dataclass
class SyncConfig:
    """Configuration for one sync run."""

    calendar_uid: str
    sync_range_days: int
    target_address: str | None = None
    enable_send: bool = True
    enable_receive: bool = True
    imap_host: str | None = None
    imap_port: int = 993
    smtp_host: str | None = None
    smtp_port: int = 587
    mail_username: str | None = None
    password_env: str = "CALSYNC_MAIL_PASSWORD"
    sync_folder: str = DEFAULT_SYNC_FOLDER
    email_subject: str = DEFAULT_EMAIL_SUBJECT
    sent_folder: str = "Sent"
    trash_folder: str = "Trash"
    snapshot_path: Path = field(default_factory=lambda: DEFAULT_SNAPSHOT)
    dry_run: bool = False
    verbose: bool = False
    yes: bool = False  # Auto-confirm without prompting


@dataclass
class SyncStats:
    """Statistics for sync operation."""

    added: int = 0
    deleted: int = 0
    sent: int = 0
    errors: int = 0


class BranchStatus(str, Enum):
    DISABLED = "disabled"
    SENT = "sent"
    SKIPPED_EMPTY = "skipped-empty"
    SKIPPED_UNCHANGED = "skipped-unchanged"
    NO_MESSAGES = "no-messages"
    APPLIED = "applied"
    FAILED = "failed"


@dataclass
class BranchResult:
    """Outcome of the send or receive branch of one run."""

    status: BranchStatus
    error: Exception | None = None
    detail: str = ""

    @property
    def failed(self) -> bool:
        return self.status is BranchStatus.FAILED


@dataclass
class SyncReport:
    window: SyncWindow
    send: BranchResult
    receive: BranchResult
    stats: SyncStats

    @property
    def ok(self) -> bool:
        return not (self.send.failed or self.receive.failed or self.stats.errors)
