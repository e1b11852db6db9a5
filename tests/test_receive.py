"""
Tests for the receive branch (eds_calsync.sync.receive.run_receive).
"""

import dataclasses

import pytest

from eds_calsync.fingerprint import fingerprint_set
from eds_calsync.models import BranchStatus
from eds_calsync.models import Occurrence
from eds_calsync.models import SyncStats
from eds_calsync.provision import Provisioner
from eds_calsync.sync.receive import decode_messages
from eds_calsync.sync.receive import run_receive
from tests.conftest import at
from tests.conftest import make_mirror
from tests.conftest import make_occ
from tests.fake_client import FakeCalendarStore
from tests.fake_client import FakeCodec
from tests.fake_client import FakeMailbox


@pytest.fixture
def codec():
    return FakeCodec()


@pytest.fixture
def mailbox(sync_config):
    box = FakeMailbox()
    box.ensure_folder(sync_config.sync_folder)
    return box


def _receive(cfg, logger, window, store, mailbox, codec, stats=None, rule=None):
    return run_receive(cfg, stats or SyncStats(), logger, window, store, mailbox, codec, rule)


class TestNoMessages:
    def test_empty_folder_changes_nothing(
        self, sync_config, sync_logger, window, mailbox, codec
    ):
        store = FakeCalendarStore([make_mirror(hour=9)])
        result = _receive(sync_config, sync_logger, window, store, mailbox, codec)

        assert result.status is BranchStatus.NO_MESSAGES
        assert len(store.mirrors) == 1
        assert store.deletes == []


class TestApply:
    def test_initial_population(self, sync_config, sync_logger, window, mailbox, codec):
        remote = [make_occ(hour=9, summary="Busy"), make_occ(day=3, hour=14, summary="Busy")]
        mailbox.deliver(sync_config.sync_folder, sync_config.email_subject, codec.encode(remote))
        store = FakeCalendarStore()
        stats = SyncStats()

        result = _receive(sync_config, sync_logger, window, store, mailbox, codec, stats)

        assert result.status is BranchStatus.APPLIED
        assert fingerprint_set(store.mirrors) == fingerprint_set(remote)
        assert all(not o.reminder_set for o in store.mirrors)
        assert stats.added == 2
        assert mailbox.folders[sync_config.sync_folder] == []

    def test_time_edit_replaces_mirror(self, sync_config, sync_logger, window, mailbox, codec):
        store = FakeCalendarStore([make_mirror(hour=9, uid="old")])
        mailbox.deliver(
            sync_config.sync_folder, sync_config.email_subject, codec.encode([make_occ(hour=10)])
        )
        stats = SyncStats()
        _receive(sync_config, sync_logger, window, store, mailbox, codec, stats)

        assert store.deletes == ["old"]
        assert store.mirrors == [make_occ(hour=10)]
        assert (stats.added, stats.deleted) == (1, 1)

    def test_matching_mirror_is_left_alone(self, sync_config, sync_logger, window, mailbox, codec):
        store = FakeCalendarStore([make_mirror(hour=9, uid="kept")])
        mailbox.deliver(
            sync_config.sync_folder, sync_config.email_subject, codec.encode([make_occ(hour=9)])
        )
        stats = SyncStats()
        result = _receive(sync_config, sync_logger, window, store, mailbox, codec, stats)

        assert result.status is BranchStatus.APPLIED
        assert store.creates == []
        assert store.deletes == []
        assert (stats.added, stats.deleted) == (0, 0)
        assert mailbox.folders[sync_config.sync_folder] == []

    def test_empty_snapshot_removes_all_mirrors(
        self, sync_config, sync_logger, window, mailbox, codec
    ):
        store = FakeCalendarStore(
            [make_mirror(hour=9, uid="m1"), make_mirror(hour=14, uid="m2")]
        )
        mailbox.deliver(sync_config.sync_folder, sync_config.email_subject, codec.encode([]))
        _receive(sync_config, sync_logger, window, store, mailbox, codec)
        assert store.mirrors == []

    def test_user_events_untouched(self, sync_config, sync_logger, window, mailbox, codec):
        user = make_occ(hour=9, summary="Mine", uid="user-1")
        store = FakeCalendarStore([user])
        mailbox.deliver(sync_config.sync_folder, sync_config.email_subject, codec.encode([]))
        _receive(sync_config, sync_logger, window, store, mailbox, codec)
        assert store.user_events == [user]
        assert store.user_events[0].summary == "Mine"

    def test_out_of_window_occurrences_ignored(
        self, sync_config, sync_logger, window, mailbox, codec
    ):
        inside = make_occ(day=1, hour=9)
        outside = make_occ(day=30, hour=9)
        straddling = Occurrence(start=at(6, 23), end=at(7, 1))
        mailbox.deliver(
            sync_config.sync_folder,
            sync_config.email_subject,
            codec.encode([inside, outside, straddling]),
        )
        store = FakeCalendarStore()
        _receive(sync_config, sync_logger, window, store, mailbox, codec)
        assert store.mirrors == [inside]

    def test_messages_are_unioned(self, sync_config, sync_logger, window, mailbox, codec):
        folder, subject = sync_config.sync_folder, sync_config.email_subject
        mailbox.deliver(folder, subject, codec.encode([make_occ(hour=9)]))
        mailbox.deliver(folder, subject, codec.encode([make_occ(hour=9), make_occ(hour=14)]))
        store = FakeCalendarStore()
        _receive(sync_config, sync_logger, window, store, mailbox, codec)
        assert fingerprint_set(store.mirrors) == fingerprint_set(
            [make_occ(hour=9), make_occ(hour=14)]
        )


class TestBadInput:
    def test_unparseable_attachment_is_skipped(
        self, sync_config, sync_logger, window, mailbox, codec
    ):
        folder, subject = sync_config.sync_folder, sync_config.email_subject
        mailbox.deliver(folder, subject, b"this is not a calendar")
        mailbox.deliver(folder, subject, codec.encode([make_occ(hour=9)]))
        store = FakeCalendarStore()
        result = _receive(sync_config, sync_logger, window, store, mailbox, codec)

        assert result.status is BranchStatus.APPLIED
        assert store.mirrors == [make_occ(hour=9)]

    def test_decode_messages_skips_missing_attachments(self, sync_logger, window, mailbox, codec):
        msg = mailbox.deliver("x", "no attachment")
        assert decode_messages(sync_logger, [msg], codec, window) == []


class TestFailuresAndDryRun:
    def test_failed_create_keeps_messages(
        self, sync_config, sync_logger, window, mailbox, codec
    ):
        mailbox.deliver(
            sync_config.sync_folder, sync_config.email_subject, codec.encode([make_occ(hour=9)])
        )
        store = FakeCalendarStore()
        store.fail_creates = True
        stats = SyncStats()
        _receive(sync_config, sync_logger, window, store, mailbox, codec, stats)

        assert stats.errors == 1
        assert len(mailbox.folders[sync_config.sync_folder]) == 1

    def test_dry_run_changes_nothing(self, sync_config, sync_logger, window, mailbox, codec):
        cfg = dataclasses.replace(sync_config, dry_run=True)
        store = FakeCalendarStore([make_mirror(hour=9, uid="old")])
        mailbox.deliver(cfg.sync_folder, cfg.email_subject, codec.encode([make_occ(hour=10)]))
        stats = SyncStats()
        _receive(cfg, sync_logger, window, store, mailbox, codec, stats)

        assert store.creates == []
        assert store.deletes == []
        assert (stats.added, stats.deleted) == (1, 1)
        assert len(mailbox.folders[cfg.sync_folder]) == 1


class TestFolderRule:
    def test_rule_moves_sync_messages_from_inbox(
        self, sync_config, sync_logger, window, mailbox, codec
    ):
        rule = Provisioner(sync_config, mailbox).rule
        mailbox.deliver("INBOX", sync_config.email_subject, codec.encode([make_occ(hour=9)]))
        mailbox.deliver("INBOX", "RE: " + sync_config.email_subject, b"reply")
        mailbox.deliver("INBOX", "Lunch?")
        store = FakeCalendarStore()

        result = _receive(sync_config, sync_logger, window, store, mailbox, codec, rule=rule)

        assert result.status is BranchStatus.APPLIED
        assert store.mirrors == [make_occ(hour=9)]
        assert sorted(m.subject for m in mailbox.folders["INBOX"]) == [
            "Lunch?",
            "RE: " + sync_config.email_subject,
        ]
