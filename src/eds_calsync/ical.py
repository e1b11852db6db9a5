"""
iCalendar encoding/decoding of occurrences, backed by libical-glib.
"""

import logging
import re
from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

import gi

gi.require_version("GLib", "2.0")
gi.require_version("ICalGLib", "3.0")
from gi.repository import GLib
from gi.repository import ICalGLib

from eds_calsync.models import SYNC_TAG
from eds_calsync.models import BusyState
from eds_calsync.models import Occurrence
from eds_calsync.models import Origin
from eds_calsync.models import ParseError
from eds_calsync.models import SyncWindow

_logger = logging.getLogger(__name__)

PRODID = "-//eds-calsync//EN"

# Outlook's busy-status extension; wins over TRANSP when present.
BUSY_STATUS_PROP = "X-MICROSOFT-CDO-BUSYSTATUS"

_EXDATE_DATE_RE = re.compile(r"^EXDATE[^:\n]*:(\d{8})", re.MULTILINE)

# UNTIL as YYYYMMDD, for both date-only and UTC datetime values.
_RRULE_UNTIL_RE = re.compile(r"UNTIL=(\d{8})")

# Upper bound on instances produced from a single RRULE.
_MAX_INSTANCES = 1000

# Upper bound on iterator steps, including those skipped before the window.
_MAX_STEPS = 100_000


def parse_component(obj) -> ICalGLib.Component:
    """Handle both string and native Component objects from EDS API."""
    if isinstance(obj, str):
        return ICalGLib.Component.new_from_string(obj)
    return obj


def _iter_vevents(comp: ICalGLib.Component):
    if comp.isa() == ICalGLib.ComponentKind.VEVENT_COMPONENT:
        yield comp
        return
    event = comp.get_first_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)
    while event:
        yield event
        event = comp.get_next_component(ICalGLib.ComponentKind.VEVENT_COMPONENT)


def _iter_properties(comp: ICalGLib.Component, kind: ICalGLib.PropertyKind):
    prop = comp.get_first_property(kind)
    while prop:
        yield prop
        prop = comp.get_next_property(kind)


def _resolve_zone(prop: ICalGLib.Property | None):
    """Return a tzinfo for the property's TZID, or None for floating times."""
    if prop is None:
        return None
    param = prop.get_first_parameter(ICalGLib.ParameterKind.TZID_PARAMETER)
    if not param:
        return None
    tzid = param.get_tzid() or ""
    try:
        return ZoneInfo(tzid.lstrip("/"))
    except (ZoneInfoNotFoundError, ValueError):
        # Windows zone names ("W. Europe Standard Time") are not in the tz
        # database; treat them as local time.
        _logger.debug("Unknown TZID %r, using local time", tzid)
        return None


def _to_datetime(t: ICalGLib.Time, zone) -> datetime:
    if t.is_date():
        naive = datetime(t.get_year(), t.get_month(), t.get_day())
        return naive.astimezone()
    naive = datetime(
        t.get_year(),
        t.get_month(),
        t.get_day(),
        t.get_hour(),
        t.get_minute(),
        t.get_second(),
    )
    if t.is_utc():
        return naive.replace(tzinfo=timezone.utc)
    if zone is not None:
        return naive.replace(tzinfo=zone)
    return naive.astimezone()


def format_utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _busy_state(vevent: ICalGLib.Component) -> BusyState:
    for prop in _iter_properties(vevent, ICalGLib.PropertyKind.X_PROPERTY):
        if (prop.get_x_name() or "").upper() != BUSY_STATUS_PROP:
            continue
        value = (prop.get_value_as_string() or "").strip().upper()
        try:
            return BusyState(value)
        except ValueError:
            return BusyState.UNKNOWN

    transp = vevent.get_first_property(ICalGLib.PropertyKind.TRANSP_PROPERTY)
    if transp:
        value = (transp.get_value_as_string() or "").strip().upper()
        if value == "TRANSPARENT":
            return BusyState.FREE

    status = vevent.get_first_property(ICalGLib.PropertyKind.STATUS_PROPERTY)
    if status:
        value = (status.get_value_as_string() or "").strip().upper()
        if value == "TENTATIVE":
            return BusyState.TENTATIVE

    # The iCal default (no TRANSP) is OPAQUE, which blocks time.
    return BusyState.BUSY


def is_managed_component(vevent: ICalGLib.Component) -> bool:
    """Check if a VEVENT carries our sync tag in CATEGORIES."""
    for prop in _iter_properties(vevent, ICalGLib.PropertyKind.CATEGORIES_PROPERTY):
        categories = prop.get_categories() or ""
        if SYNC_TAG in categories:
            return True
    return False


def _summary(vevent: ICalGLib.Component) -> str:
    prop = vevent.get_first_property(ICalGLib.PropertyKind.SUMMARY_PROPERTY)
    return (prop.get_summary() or "") if prop else ""


def _has_alarm(vevent: ICalGLib.Component) -> bool:
    return vevent.get_first_component(ICalGLib.ComponentKind.VALARM_COMPONENT) is not None


def _bounds(vevent: ICalGLib.Component) -> tuple[datetime | None, datetime | None, bool]:
    """Return (start, end, is_all_day) for a single VEVENT."""
    dts_prop = vevent.get_first_property(ICalGLib.PropertyKind.DTSTART_PROPERTY)
    if dts_prop is None:
        return None, None, False

    dts = dts_prop.get_dtstart()
    all_day = bool(dts.is_date())
    start = _to_datetime(dts, _resolve_zone(dts_prop))

    dte_prop = vevent.get_first_property(ICalGLib.PropertyKind.DTEND_PROPERTY)
    dur_prop = vevent.get_first_property(ICalGLib.PropertyKind.DURATION_PROPERTY)
    if dte_prop is not None:
        end = _to_datetime(dte_prop.get_dtend(), _resolve_zone(dte_prop))
    elif dur_prop is not None:
        end = start + timedelta(seconds=dur_prop.get_duration().as_int())
    elif all_day:
        end = start + timedelta(days=1)
    else:
        end = start
    return start, end, all_day


def _exdates(vevent: ICalGLib.Component) -> set[str]:
    """Collect excluded dates as YYYYMMDD strings."""
    dates = set()
    for prop in _iter_properties(vevent, ICalGLib.PropertyKind.EXDATE_PROPERTY):
        t = prop.get_exdate()
        if t and not t.is_null_time():
            dates.add(f"{t.get_year():04d}{t.get_month():02d}{t.get_day():02d}")
    if not dates:
        # get_exdate() returns null_time for EXDATE;VALUE=DATE in some
        # libical-glib builds; read the raw text instead.
        for m in _EXDATE_DATE_RE.finditer(vevent.as_ical_string() or ""):
            dates.add(m.group(1))
    return dates


def _until(rrule_prop: ICalGLib.Property) -> str | None:
    m = _RRULE_UNTIL_RE.search(rrule_prop.as_ical_string() or "")
    return m.group(1) if m else None


def _expand(
    vevent: ICalGLib.Component,
    start: datetime,
    end: datetime,
    window: SyncWindow | None,
) -> list[tuple[datetime, datetime]]:
    """Expand an RRULE into (start, end) pairs, bounded by the window.

    Instances ending before the window start are skipped without counting
    towards the instance cap, so long-running series still reach the window.
    """
    rrule_prop = vevent.get_first_property(ICalGLib.PropertyKind.RRULE_PROPERTY)
    duration = end - start
    excluded = _exdates(vevent)
    # With a TZID-bearing DTSTART and a date-only UNTIL, RecurIterator keeps
    # emitting instances past the series end.
    until = _until(rrule_prop)

    # Iterate on a floating copy of DTSTART: RecurIterator.new() raises for
    # TZIDs missing from libical's zone database.
    dts = vevent.get_dtstart()
    floating = ICalGLib.Time.new_from_string(
        f"{dts.get_year():04d}{dts.get_month():02d}{dts.get_day():02d}"
        f"T{dts.get_hour():02d}{dts.get_minute():02d}{dts.get_second():02d}"
    )
    it = ICalGLib.RecurIterator.new(rrule_prop.get_rrule(), floating)

    instances = []
    for _ in range(_MAX_STEPS):
        if len(instances) >= _MAX_INSTANCES:
            break
        occ = it.next()
        if occ is None or occ.is_null_time():
            break
        key = f"{occ.get_year():04d}{occ.get_month():02d}{occ.get_day():02d}"
        if until and key > until:
            break
        occ_start = start.replace(
            year=occ.get_year(),
            month=occ.get_month(),
            day=occ.get_day(),
            hour=occ.get_hour(),
            minute=occ.get_minute(),
            second=occ.get_second(),
        )
        if window is not None and occ_start >= window.end_dt:
            break
        if window is not None and occ_start + duration <= window.start_dt:
            continue
        if key in excluded:
            continue
        instances.append((occ_start, occ_start + duration))
    return instances


def component_to_occurrences(
    comp: ICalGLib.Component, window: SyncWindow | None = None
) -> list[Occurrence]:
    """Convert a VCALENDAR or VEVENT component into occurrences.

    Recurring masters are expanded; with a window, expansion stops at the
    window end.
    """
    occurrences = []
    for vevent in _iter_vevents(comp):
        start, end, all_day = _bounds(vevent)
        managed = is_managed_component(vevent)
        base = dict(
            summary=_summary(vevent),
            busy_state=_busy_state(vevent),
            is_all_day=all_day,
            origin=Origin.SYSTEM_SYNCED if managed else Origin.USER_CREATED,
            sync_tag=SYNC_TAG if managed else None,
            reminder_set=_has_alarm(vevent),
            uid=vevent.get_uid(),
        )
        has_rrule = vevent.get_first_property(ICalGLib.PropertyKind.RRULE_PROPERTY) is not None
        if has_rrule and start is not None:
            for occ_start, occ_end in _expand(vevent, start, end, window):
                occurrences.append(Occurrence(start=occ_start, end=occ_end, **base))
        else:
            occurrences.append(Occurrence(start=start, end=end, **base))
    return occurrences


def occurrence_to_vevent(occ: Occurrence, uid: str) -> ICalGLib.Component:
    """Build a standalone VEVENT for one occurrence."""
    vevent = ICalGLib.Component.new_vevent()
    vevent.add_property(ICalGLib.Property.new_uid(uid))
    vevent.add_property(ICalGLib.Property.new_summary(occ.summary))
    vevent.add_property(
        ICalGLib.Property.new_from_string(f"DTSTAMP:{format_utc(datetime.now(timezone.utc))}")
    )
    if occ.is_all_day:
        start_day: date = occ.start.date()
        end_day: date = occ.end.date()
        vevent.add_property(
            ICalGLib.Property.new_from_string(f"DTSTART;VALUE=DATE:{start_day:%Y%m%d}")
        )
        vevent.add_property(ICalGLib.Property.new_from_string(f"DTEND;VALUE=DATE:{end_day:%Y%m%d}"))
    else:
        vevent.add_property(ICalGLib.Property.new_from_string(f"DTSTART:{format_utc(occ.start)}"))
        vevent.add_property(ICalGLib.Property.new_from_string(f"DTEND:{format_utc(occ.end)}"))

    transp = "TRANSPARENT" if occ.busy_state is BusyState.FREE else "OPAQUE"
    vevent.add_property(ICalGLib.Property.new_from_string(f"TRANSP:{transp}"))
    vevent.add_property(
        ICalGLib.Property.new_from_string(f"{BUSY_STATUS_PROP}:{occ.busy_state.value}")
    )
    if occ.sync_tag:
        vevent.add_property(ICalGLib.Property.new_categories(occ.sync_tag))
    # Mirrors stay private so shared-calendar readers only see the block.
    if occ.origin is Origin.SYSTEM_SYNCED:
        vevent.add_property(ICalGLib.Property.new_from_string("CLASS:PRIVATE"))
    return vevent


class ICalCodec:
    """Encode outbound occurrences to, and decode inbound ones from, iCalendar bytes."""

    def encode(self, occurrences: list[Occurrence]) -> bytes:
        cal = ICalGLib.Component.new_vcalendar()
        cal.add_property(ICalGLib.Property.new_version("2.0"))
        cal.add_property(ICalGLib.Property.new_prodid(PRODID))
        # Local UIDs stay on this side; every outbound block gets a fresh one.
        for i, occ in enumerate(occurrences):
            uid = f"calsync-{format_utc(occ.start)}-{i}@eds-calsync"
            cal.add_component(occurrence_to_vevent(occ, uid))
        return cal.as_ical_string().encode("utf-8")

    def decode(self, data: bytes, window: SyncWindow | None = None) -> list[Occurrence]:
        """Parse an attachment into occurrences, raising ParseError if it is not iCalendar."""
        text = _decode_text(data)
        if "BEGIN:VCALENDAR" not in text and "BEGIN:VEVENT" not in text:
            raise ParseError("Attachment does not contain iCalendar data")
        try:
            comp = ICalGLib.Component.new_from_string(text)
        except GLib.Error as e:
            raise ParseError(f"Malformed iCalendar data: {e.message}") from e
        if comp is None or comp.isa() not in (
            ICalGLib.ComponentKind.VCALENDAR_COMPONENT,
            ICalGLib.ComponentKind.VEVENT_COMPONENT,
        ):
            raise ParseError("Malformed iCalendar data")
        return component_to_occurrences(comp, window)


def _decode_text(data: bytes) -> str:
    # Outlook writes attachments as UTF-16 when saved through MAPI.
    if data.startswith((b"\xff\xfe", b"\xfe\xff")):
        return data.decode("utf-16")
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"Attachment is not valid UTF-8: {e}") from e
