"""
Unit tests for eds_calsync.config.
"""

from pathlib import Path

import pytest

from eds_calsync.config import build_config
from eds_calsync.config import load_config
from eds_calsync.config import load_config_file
from eds_calsync.config import mail_password
from eds_calsync.models import DEFAULT_SNAPSHOT
from eds_calsync.models import ConfigurationError

_BASE = {
    "calendar_uid": "cal-1",
    "sync_range_days": "14",
    "target_address": "peer@example.com",
    "imap_host": "imap.example.com",
    "smtp_host": "smtp.example.com",
    "mail_username": "me@example.com",
}

_CONFIG_TEXT = """\
[calsync]
calendar_uid = cal-from-file
sync_range_days = 30
target_address = peer@example.com
imap_host = imap.example.com
smtp_host = smtp.example.com
mail_username = me@example.com
enable_receive = no
snapshot_path = ~/calsync/sent.ics
"""


def _without(key: str) -> dict[str, str]:
    return {k: v for k, v in _BASE.items() if k != key}


class TestBuildConfig:
    def test_defaults(self):
        cfg = build_config(_BASE)
        assert cfg.sync_range_days == 14
        assert cfg.enable_send and cfg.enable_receive
        assert cfg.imap_port == 993
        assert cfg.smtp_port == 587
        assert cfg.sync_folder == "CalSync Messages"
        assert cfg.email_subject == "CalSync Synchronization Message"
        assert cfg.password_env == "CALSYNC_MAIL_PASSWORD"
        assert cfg.snapshot_path == DEFAULT_SNAPSHOT
        assert not cfg.dry_run

    def test_override_wins_over_file(self):
        cfg = build_config(_BASE, calendar_uid="cal-2", sync_range_days=3)
        assert cfg.calendar_uid == "cal-2"
        assert cfg.sync_range_days == 3

    def test_none_override_falls_through(self):
        cfg = build_config(_BASE, calendar_uid=None, target_address=None)
        assert cfg.calendar_uid == "cal-1"

    @pytest.mark.parametrize("days", ["0", "-5", "abc", ""])
    def test_bad_range_rejected(self, days):
        with pytest.raises(ConfigurationError):
            build_config({**_BASE, "sync_range_days": days})

    def test_calendar_required(self):
        with pytest.raises(ConfigurationError, match="calendar_uid"):
            build_config(_without("calendar_uid"))

    def test_neither_direction_is_an_error(self):
        with pytest.raises(ConfigurationError):
            build_config(_BASE, enable_send=False, enable_receive=False)

    def test_target_required_when_sending(self):
        with pytest.raises(ConfigurationError, match="target_address"):
            build_config(_without("target_address"))

    def test_target_must_look_like_an_address(self):
        with pytest.raises(ConfigurationError):
            build_config({**_BASE, "target_address": "not-an-address"})

    def test_target_optional_when_receive_only(self):
        cfg = build_config(_without("target_address"), enable_send=False)
        assert cfg.target_address is None

    def test_mail_host_required(self):
        with pytest.raises(ConfigurationError, match="imap_host"):
            build_config(_without("imap_host"))

    def test_bad_boolean_rejected(self):
        with pytest.raises(ConfigurationError):
            build_config({**_BASE, "enable_send": "sometimes"})


class TestConfigFile:
    def test_missing_file_is_empty(self, tmp_path):
        assert load_config_file(tmp_path / "absent.conf") == {}

    def test_other_section_is_ignored(self, tmp_path):
        path = tmp_path / "c.conf"
        path.write_text("[something-else]\nkey = value\n")
        assert load_config_file(path) == {}

    def test_load_config_reads_file_and_overrides(self, tmp_path):
        path = tmp_path / "c.conf"
        path.write_text(_CONFIG_TEXT)
        cfg = load_config(path, sync_range_days=7, dry_run=True)

        assert cfg.calendar_uid == "cal-from-file"
        assert cfg.sync_range_days == 7
        assert cfg.enable_receive is False
        assert cfg.dry_run is True
        assert cfg.snapshot_path == Path("~/calsync/sent.ics").expanduser()

    def test_malformed_file_is_a_configuration_error(self, tmp_path):
        path = tmp_path / "c.conf"
        path.write_text("this is not ini\n")
        with pytest.raises(ConfigurationError):
            load_config_file(path)


class TestMailPassword:
    def test_reads_named_variable(self, monkeypatch):
        monkeypatch.setenv("MY_PW", "hunter2")
        cfg = build_config({**_BASE, "password_env": "MY_PW"})
        assert mail_password(cfg) == "hunter2"

    def test_missing_variable_is_an_error(self, monkeypatch):
        monkeypatch.delenv("CALSYNC_MAIL_PASSWORD", raising=False)
        with pytest.raises(ConfigurationError, match="CALSYNC_MAIL_PASSWORD"):
            mail_password(build_config(_BASE))
