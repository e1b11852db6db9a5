"""
Configuration file loading and validation.

Everything here runs before the calendar store or the mailbox is touched;
any problem surfaces as ConfigurationError.
"""

import os
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from pathlib import Path
from typing import Any

from eds_calsync.models import DEFAULT_EMAIL_SUBJECT
from eds_calsync.models import DEFAULT_SNAPSHOT
from eds_calsync.models import DEFAULT_SYNC_FOLDER
from eds_calsync.models import ConfigurationError
from eds_calsync.models import SyncConfig

SECTION = "calsync"


def load_config_file(config_path: Path) -> dict[str, str]:
    if not config_path.exists():
        return {}
    parser = ConfigParser()
    try:
        parser.read(config_path)
    except ConfigParserError as e:
        raise ConfigurationError(f"Cannot parse {config_path}: {e}") from e
    if SECTION not in parser:
        return {}
    return dict(parser[SECTION])


def _parse_bool(key: str, value: Any, default: bool) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    try:
        return ConfigParser.BOOLEAN_STATES[str(value).strip().lower()]
    except KeyError:
        raise ConfigurationError(f"{key} must be a boolean, got {value!r}") from None


def _parse_int(key: str, value: Any, default: int | None = None) -> int:
    if value is None or value == "":
        if default is None:
            raise ConfigurationError(f"{key} is required")
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be an integer, got {value!r}") from None


def build_config(file_values: dict[str, str], **overrides: Any) -> SyncConfig:
    """Merge file values with CLI overrides and validate the result.

    Overrides that are None fall through to the file value.
    """
    values: dict[str, Any] = dict(file_values)
    values.update({k: v for k, v in overrides.items() if v is not None})

    calendar_uid = values.get("calendar_uid")
    if not calendar_uid:
        raise ConfigurationError("calendar_uid is required")

    days = _parse_int("sync_range_days", values.get("sync_range_days"))
    if days <= 0:
        raise ConfigurationError(f"sync_range_days must be positive, got {days}")

    enable_send = _parse_bool("enable_send", values.get("enable_send"), True)
    enable_receive = _parse_bool("enable_receive", values.get("enable_receive"), True)
    if not enable_send and not enable_receive:
        raise ConfigurationError("Both enable_send and enable_receive are off; nothing to do")

    target = values.get("target_address")
    if enable_send and (not target or "@" not in target):
        raise ConfigurationError(f"target_address must be an email address, got {target!r}")

    for key in ("imap_host", "smtp_host", "mail_username"):
        if not values.get(key):
            raise ConfigurationError(f"{key} is required")

    return SyncConfig(
        calendar_uid=calendar_uid,
        sync_range_days=days,
        target_address=target,
        enable_send=enable_send,
        enable_receive=enable_receive,
        imap_host=values["imap_host"],
        imap_port=_parse_int("imap_port", values.get("imap_port"), 993),
        smtp_host=values["smtp_host"],
        smtp_port=_parse_int("smtp_port", values.get("smtp_port"), 587),
        mail_username=values["mail_username"],
        password_env=values.get("password_env") or "CALSYNC_MAIL_PASSWORD",
        sync_folder=values.get("sync_folder") or DEFAULT_SYNC_FOLDER,
        email_subject=values.get("email_subject") or DEFAULT_EMAIL_SUBJECT,
        sent_folder=values.get("sent_folder") or "Sent",
        trash_folder=values.get("trash_folder") or "Trash",
        snapshot_path=Path(values["snapshot_path"]).expanduser()
        if values.get("snapshot_path")
        else DEFAULT_SNAPSHOT,
        dry_run=_parse_bool("dry_run", values.get("dry_run"), False),
        verbose=_parse_bool("verbose", values.get("verbose"), False),
        yes=_parse_bool("yes", values.get("yes"), False),
    )


def load_config(config_path: Path, **overrides: Any) -> SyncConfig:
    return build_config(load_config_file(config_path), **overrides)


def mail_password(config: SyncConfig) -> str:
    password = os.environ.get(config.password_env)
    if not password:
        raise ConfigurationError(f"Mail password not set: export {config.password_env}")
    return password
