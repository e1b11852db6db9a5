"""
Outbound event filtering — decides what may leave the local calendar.

Only busy/free information crosses to the remote party: subjects are
replaced with a placeholder before export.
"""

from collections.abc import Iterable

from eds_calsync.models import PLACEHOLDER_SUMMARY
from eds_calsync.models import SYNC_TAG
from eds_calsync.models import BusyState
from eds_calsync.models import Occurrence
from eds_calsync.models import Origin


class EventSanitizer:
    """Handles selection and anonymization of calendar occurrences for export."""

    @staticmethod
    def is_managed_event(occ: Occurrence) -> bool:
        """Check if an occurrence was created by our sync tool."""
        return occ.origin is Origin.SYSTEM_SYNCED and occ.sync_tag == SYNC_TAG

    @staticmethod
    def is_eligible(occ: Occurrence) -> bool:
        """Return True if the occurrence may be shared with the remote party.

        All-day entries are noise for busy/free purposes. Entries already
        titled with the placeholder are mirrors from the other side and must
        not bounce back. Free entries do not block time.
        """
        if occ.is_all_day:
            return False
        if occ.summary == PLACEHOLDER_SUMMARY:
            return False
        return occ.busy_state is not BusyState.FREE

    @staticmethod
    def anonymize(occ: Occurrence) -> Occurrence:
        return occ.anonymized()

    @classmethod
    def filter(cls, occurrences: Iterable[Occurrence]) -> list[Occurrence]:
        """Return the eligible occurrences, anonymized, in input order."""
        return [cls.anonymize(o) for o in occurrences if cls.is_eligible(o)]
