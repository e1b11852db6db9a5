"""
Event identity: two occurrences are the same event iff start and end match.

Summary, busy state, all-day flag and origin are deliberately left out, so a
time edit reads as "remove old, add new" and two events sharing an interval
collapse into one.
"""

from collections.abc import Iterable


class _Missing:
    """Stand-in for a null timestamp; equal only to itself."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "<missing>"


MISSING = _Missing()


def fingerprint(occ) -> tuple:
    """Return the ``(start, end)`` key used for set membership."""
    start = occ.start if occ.start is not None else MISSING
    end = occ.end if occ.end is not None else MISSING
    return (start, end)


def same_event(a, b) -> bool:
    return fingerprint(a) == fingerprint(b)


def fingerprint_set(occurrences: Iterable) -> frozenset:
    return frozenset(fingerprint(o) for o in occurrences)


def distinct(occurrences: Iterable) -> list:
    """Drop later occurrences whose fingerprint was already seen, keeping order."""
    seen = set()
    result = []
    for occ in occurrences:
        key = fingerprint(occ)
        if key in seen:
            continue
        seen.add(key)
        result.append(occ)
    return result
