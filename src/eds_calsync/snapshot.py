"""
The last successfully sent outbound attachment, kept for change detection.
"""

import logging
from pathlib import Path

from eds_calsync.models import Occurrence
from eds_calsync.models import ParseError
from eds_calsync.models import SnapshotError

logger = logging.getLogger(__name__)


class SnapshotStore:
    """Reads and writes the previously-sent iCalendar payload on disk."""

    def __init__(self, path: Path, codec):
        self.path = path
        self.codec = codec

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[Occurrence]:
        """Return the previously sent occurrences; empty on first run.

        An unreadable snapshot counts as empty so the next run re-sends
        rather than suppressing a message forever.
        """
        if not self.exists():
            return []
        try:
            return self.codec.decode(self.path.read_bytes())
        except (OSError, ParseError) as e:
            logger.warning(f"Ignoring unreadable snapshot {self.path}: {e}")
            return []

    def save(self, payload: bytes):
        """Replace the snapshot with ``payload`` (written atomically)."""
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(payload)
            tmp.replace(self.path)
        except OSError as e:
            raise SnapshotError(f"Cannot write snapshot {self.path}: {e}") from e
