"""
Mail transport over SMTP (send) and IMAP (list, move, delete).

Connections are opened per operation; nothing is held between calls.
"""

import email
import imaplib
import logging
import smtplib
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import field
from email.header import decode_header
from email.header import make_header
from email.message import EmailMessage
from email.message import Message
from email.utils import parsedate_to_datetime

from eds_calsync.models import ConfigurationError
from eds_calsync.models import SyncConfig
from eds_calsync.models import TransportError

logger = logging.getLogger(__name__)

ATTACHMENT_FILENAME = "calsync.ics"

# Replies and forwards of a sync message are left in the inbox.
RULE_EXCEPTIONS = ("RE: ", "FW: ")

_CALENDAR_TYPES = frozenset({"text/calendar", "application/ics"})


@dataclass
class InboundMessage:
    """A message in the sync folder, with its calendar attachments decoded to bytes."""

    uid: str
    subject: str
    attachments: list[bytes] = field(default_factory=list)
    date: str = ""


def build_sync_message(
    sender: str, to: str, subject: str, body: str, attachment: bytes
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)
    msg.add_attachment(
        attachment, maintype="text", subtype="calendar", filename=ATTACHMENT_FILENAME
    )
    return msg


def extract_calendar_attachments(msg: Message) -> list[bytes]:
    """Return the raw bytes of every calendar-looking attachment."""
    found = []
    for part in msg.walk():
        if part.is_multipart():
            continue
        filename = (part.get_filename() or "").lower()
        if not (filename.endswith(".ics") or part.get_content_type() in _CALENDAR_TYPES):
            continue
        payload = part.get_payload(decode=True)
        if payload:
            found.append(payload)
    return found


def matches_rule(subject: str, sync_subject: str) -> bool:
    """Return True if a message with this subject belongs in the sync folder."""
    if any(subject.startswith(prefix) for prefix in RULE_EXCEPTIONS):
        return False
    return sync_subject in subject


def _quote(mailbox: str) -> str:
    return '"' + mailbox.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _decode_header(value: str | None) -> str:
    if not value:
        return ""
    return str(make_header(decode_header(value)))


class ImapSmtpMailbox:
    """Mail transport and inbound message source for one account."""

    def __init__(self, config: SyncConfig, password: str):
        if not config.imap_host or not config.smtp_host or not config.mail_username:
            raise ConfigurationError("IMAP host, SMTP host and mail username are required")
        self.config = config
        self.password = password

    # ------------------------------------------------------------------ #
    # Connections                                                          #
    # ------------------------------------------------------------------ #

    @contextmanager
    def _imap(self) -> Iterator[imaplib.IMAP4]:
        try:
            conn = imaplib.IMAP4_SSL(self.config.imap_host, self.config.imap_port)
            conn.login(self.config.mail_username, self.password)
        except (imaplib.IMAP4.error, OSError) as e:
            raise TransportError(f"IMAP connection to {self.config.imap_host} failed: {e}") from e
        try:
            yield conn
        except (imaplib.IMAP4.error, OSError) as e:
            raise TransportError(f"IMAP command failed: {e}") from e
        finally:
            try:
                conn.logout()
            except (imaplib.IMAP4.error, OSError):
                pass

    @staticmethod
    def _select(conn: imaplib.IMAP4, folder: str, readonly: bool = False):
        typ, data = conn.select(_quote(folder), readonly=readonly)
        if typ != "OK":
            raise TransportError(f"Cannot open mail folder {folder!r}: {data}")

    @staticmethod
    def _search(conn: imaplib.IMAP4, *criteria: str) -> list[bytes]:
        typ, data = conn.uid("SEARCH", None, *criteria)
        if typ != "OK":
            raise TransportError(f"IMAP SEARCH failed: {data}")
        return data[0].split() if data and data[0] else []

    @staticmethod
    def _fetch(conn: imaplib.IMAP4, uid: bytes, what: str) -> bytes:
        typ, data = conn.uid("FETCH", uid, what)
        if typ != "OK":
            raise TransportError(f"IMAP FETCH {uid!r} failed: {data}")
        for item in data:
            if isinstance(item, tuple):
                return item[1]
        return b""

    @staticmethod
    def _mark_deleted(conn: imaplib.IMAP4, uids: list[bytes]):
        for uid in uids:
            conn.uid("STORE", uid, "+FLAGS", r"(\Deleted)")
        if uids:
            conn.expunge()

    # ------------------------------------------------------------------ #
    # Transport                                                            #
    # ------------------------------------------------------------------ #

    def send_message(self, to: str, subject: str, body: str, attachment: bytes):
        msg = build_sync_message(self.config.mail_username, to, subject, body, attachment)
        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port) as server:
                server.starttls()
                server.login(self.config.mail_username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(f"Failed to send sync message to {to}: {e}") from e
        logger.debug(f"Sent {subject!r} to {to} ({len(attachment)} byte attachment)")

    def delete_messages_matching(self, folder: str, subject: str) -> int:
        """Delete every message in ``folder`` whose subject contains ``subject``."""
        with self._imap() as conn:
            self._select(conn, folder)
            uids = self._search(conn, "SUBJECT", _quote(subject))
            self._mark_deleted(conn, uids)
        if uids:
            logger.debug(f"Deleted {len(uids)} message(s) from {folder!r}")
        return len(uids)

    # ------------------------------------------------------------------ #
    # Inbound                                                              #
    # ------------------------------------------------------------------ #

    def list_messages(self, folder: str) -> list[InboundMessage]:
        messages = []
        with self._imap() as conn:
            self._select(conn, folder, readonly=True)
            for uid in self._search(conn, "ALL"):
                parsed = email.message_from_bytes(self._fetch(conn, uid, "(RFC822)"))
                messages.append(
                    InboundMessage(
                        uid=uid.decode(),
                        subject=_decode_header(parsed.get("Subject")),
                        attachments=extract_calendar_attachments(parsed),
                        date=parsed.get("Date", ""),
                    )
                )
        messages.sort(key=_message_sort_key)
        return messages

    def delete_message(self, folder: str, uid: str):
        with self._imap() as conn:
            self._select(conn, folder)
            self._mark_deleted(conn, [uid.encode()])

    def move_matching(self, source: str, target: str, sync_subject: str) -> int:
        """Move sync messages from ``source`` to ``target``, honouring the rule exceptions."""
        moved = []
        with self._imap() as conn:
            self._select(conn, source)
            for uid in self._search(conn, "SUBJECT", _quote(sync_subject)):
                header = email.message_from_bytes(
                    self._fetch(conn, uid, "(BODY.PEEK[HEADER.FIELDS (SUBJECT)])")
                )
                if not matches_rule(_decode_header(header.get("Subject")), sync_subject):
                    continue
                typ, data = conn.uid("COPY", uid, _quote(target))
                if typ != "OK":
                    raise TransportError(f"Cannot copy message {uid!r} to {target!r}: {data}")
                moved.append(uid)
            self._mark_deleted(conn, moved)
        return len(moved)

    # ------------------------------------------------------------------ #
    # Folders                                                              #
    # ------------------------------------------------------------------ #

    def has_folder(self, folder: str) -> bool:
        with self._imap() as conn:
            typ, _ = conn.select(_quote(folder), readonly=True)
            return typ == "OK"

    def ensure_folder(self, folder: str) -> bool:
        """Create ``folder`` if missing. Returns True when it was created."""
        with self._imap() as conn:
            typ, _ = conn.select(_quote(folder), readonly=True)
            if typ == "OK":
                return False
            typ, data = conn.create(_quote(folder))
            if typ != "OK":
                raise TransportError(f"Cannot create mail folder {folder!r}: {data}")
        logger.info(f"Created mail folder {folder!r}")
        return True


def _message_sort_key(msg: InboundMessage):
    try:
        return (0, parsedate_to_datetime(msg.date).timestamp(), msg.uid)
    except (TypeError, ValueError, IndexError):
        return (1, 0.0, msg.uid)
