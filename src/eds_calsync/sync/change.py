"""
Outbound change detection.
"""

from collections.abc import Iterable

from eds_calsync.fingerprint import fingerprint_set
from eds_calsync.models import Occurrence


def has_changed(previous: Iterable[Occurrence], current: Iterable[Occurrence]) -> bool:
    """Return True when the current outbound set differs from the last one sent.

    Comparison is set equality over fingerprints: order is irrelevant and
    duplicates collapse. A missing previous snapshot is passed as an empty
    iterable, so the first run with anything eligible always reports a change.
    """
    return fingerprint_set(previous) != fingerprint_set(current)
