"""
Evolution Data Server calendar store.
"""

import dataclasses
import logging
import uuid
from typing import Optional
from typing import Tuple

import gi

gi.require_version("EDataServer", "1.2")
gi.require_version("ECal", "2.0")
gi.require_version("ICalGLib", "3.0")
from gi.repository import ECal
from gi.repository import EDataServer
from gi.repository import GLib

from eds_calsync.ical import component_to_occurrences
from eds_calsync.ical import format_utc
from eds_calsync.ical import occurrence_to_vevent
from eds_calsync.ical import parse_component
from eds_calsync.models import SYNC_TAG
from eds_calsync.models import Occurrence
from eds_calsync.models import StoreError
from eds_calsync.models import SyncTagViolation
from eds_calsync.models import SyncWindow

# E_CAL_CLIENT_ERROR_OBJECT_NOT_FOUND = 1  (from e-cal-client-error-quark)
_EDS_NOT_FOUND_CODE = 1
_EDS_CLIENT_ERROR_DOMAIN = "e-cal-client-error-quark"


def is_not_found_error(e: Exception) -> bool:
    """Return True when EDS reports that a calendar object does not exist."""
    if isinstance(e, GLib.Error):
        domain = e.domain or ""
        if e.code == _EDS_NOT_FOUND_CODE and _EDS_CLIENT_ERROR_DOMAIN in domain:
            return True
    return "object not found" in str(e).lower()


def get_calendar_display_info(calendar_uid: str) -> Tuple[str, str, str]:
    """
    Get human-readable information about a calendar.

    Returns:
        Tuple of (display_name, account_name, uid)
    """
    try:
        registry = EDataServer.SourceRegistry.new_sync(None)
        source = registry.ref_source(calendar_uid)

        if not source:
            return ("Unknown Calendar", "", calendar_uid)

        display_name = source.get_display_name() or "Unnamed Calendar"

        account_name = ""
        parent_uid = source.get_parent()
        if parent_uid:
            parent_source = registry.ref_source(parent_uid)
            if parent_source:
                account_name = parent_source.get_display_name() or ""

        return (display_name, account_name, calendar_uid)
    except GLib.Error as e:
        return (f"Error: {e.message}", "", calendar_uid)


def build_query(window: SyncWindow, tagged_only: bool) -> str:
    """Build the EDS s-expression selecting objects that occur in the window."""
    in_range = (
        f'(occur-in-time-range? (make-time "{format_utc(window.start_dt)}") '
        f'(make-time "{format_utc(window.end_dt)}"))'
    )
    if tagged_only:
        return f'(and (has-categories? "{SYNC_TAG}") {in_range})'
    return in_range


class EDSCalendarStore:
    """Calendar store backed by one EDS calendar source."""

    def __init__(self, registry: EDataServer.SourceRegistry, calendar_uid: str):
        self.registry = registry
        self.calendar_uid = calendar_uid
        self.client: Optional[ECal.Client] = None
        self.logger = logging.getLogger(__name__)

    def connect(self, timeout: int = 10):
        """Connect to the specified calendar in EDS."""
        source = self.registry.ref_source(self.calendar_uid)
        if not source:
            raise StoreError(f"Calendar with UID '{self.calendar_uid}' not found in EDS")

        try:
            self.client = ECal.Client.connect_sync(
                source, ECal.ClientSourceType.EVENTS, timeout, None
            )
        except GLib.Error as e:
            raise StoreError(f"Failed to connect to calendar {self.calendar_uid}: {e.message}")

    def _require_client(self) -> ECal.Client:
        if not self.client:
            raise StoreError("Client not connected")
        return self.client

    def query_occurrences(self, window: SyncWindow, tagged_only: bool = False) -> list[Occurrence]:
        """Return the occurrences lying entirely inside the window.

        With ``tagged_only`` only occurrences created by this tool are
        returned. Recurring masters are expanded into their instances.
        """
        client = self._require_client()
        try:
            _, objects = client.get_object_list_sync(build_query(window, tagged_only), None)
        except GLib.Error as e:
            raise StoreError(f"Failed to fetch events: {e.message}")

        occurrences = []
        for obj in objects:
            comp = parse_component(obj)
            for occ in component_to_occurrences(comp, window):
                if not window.contains(occ):
                    continue
                if tagged_only and not occ.is_tagged:
                    continue
                occurrences.append(occ)
        self.logger.debug(
            f"Queried {len(occurrences)} occurrence(s) in {window.start}..{window.end} "
            f"(tagged_only={tagged_only})"
        )
        return occurrences

    def create(self, occ: Occurrence) -> Occurrence:
        """Store an occurrence and return it with the server-assigned UID."""
        client = self._require_client()
        uid = str(uuid.uuid4())
        try:
            success, out_uid = client.create_object_sync(
                occurrence_to_vevent(occ, uid), ECal.OperationFlags.NONE, None
            )
        except GLib.Error as e:
            raise StoreError(f"Failed to create event {occ.describe()}: {e.message}")
        if not success:
            raise StoreError(f"Failed to create event {occ.describe()}")
        return dataclasses.replace(occ, uid=out_uid or uid)

    def delete(self, occ: Occurrence):
        """Remove a tagged occurrence. Untagged occurrences are never deleted."""
        if not occ.is_tagged:
            raise SyncTagViolation(
                f"Refusing to delete untagged occurrence {occ.describe()} (uid={occ.uid})"
            )
        if not occ.uid:
            raise StoreError(f"Cannot delete {occ.describe()}: no UID")

        client = self._require_client()
        try:
            success = client.remove_object_sync(
                occ.uid,
                None,  # rid (recurrence-id)
                ECal.ObjModType.THIS,
                ECal.OperationFlags.NONE,
                None,  # cancellable
            )
        except GLib.Error as e:
            if is_not_found_error(e):
                # Removed by the user or another client since the query.
                self.logger.debug(f"Event {occ.uid} already gone")
                return
            raise StoreError(f"Failed to remove event {occ.uid}: {e.message}")
        if not success:
            raise StoreError(f"Failed to remove event {occ.uid}")
