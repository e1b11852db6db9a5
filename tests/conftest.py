"""
Shared pytest fixtures and occurrence helpers.
"""

import dataclasses
import logging
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta

import pytest

from eds_calsync.models import BusyState
from eds_calsync.models import Occurrence
from eds_calsync.models import SyncConfig
from eds_calsync.models import SyncStats
from eds_calsync.models import SyncWindow

CALENDAR_ID = "local-calendar-test"
TODAY = date(2026, 3, 2)
RANGE_DAYS = 7


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """Local-aware datetime ``day`` days after TODAY."""
    return datetime.combine(TODAY + timedelta(days=day), time(hour, minute)).astimezone()


def make_occ(
    day: int = 0,
    hour: int = 10,
    hours: int = 1,
    summary: str = "Meeting",
    busy_state: BusyState = BusyState.BUSY,
    is_all_day: bool = False,
    uid: str | None = None,
) -> Occurrence:
    """Return a user-created occurrence inside the test window."""
    start = at(day, hour)
    return Occurrence(
        start=start,
        end=start + timedelta(hours=hours),
        summary=summary,
        busy_state=busy_state,
        is_all_day=is_all_day,
        uid=uid,
    )


def make_mirror(day: int = 0, hour: int = 10, hours: int = 1, uid: str = "mirror-1") -> Occurrence:
    """Return a tagged occurrence as it would look after a previous receive."""
    return dataclasses.replace(make_occ(day, hour, hours).as_synced(), uid=uid)


@pytest.fixture
def window():
    return SyncWindow.from_today(RANGE_DAYS, TODAY)


@pytest.fixture
def sync_config(tmp_path):
    return SyncConfig(
        calendar_uid=CALENDAR_ID,
        sync_range_days=RANGE_DAYS,
        target_address="peer@example.com",
        imap_host="imap.example.com",
        smtp_host="smtp.example.com",
        mail_username="me@example.com",
        snapshot_path=tmp_path / "last-sent.ics",
    )


@pytest.fixture
def sync_logger():
    return logging.getLogger("test_sync")


@pytest.fixture
def sync_stats():
    return SyncStats()
