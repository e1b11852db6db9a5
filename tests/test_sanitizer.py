"""
Unit tests for EventSanitizer in eds_calsync.sanitizer.

Each test exercises one coherent behaviour of is_eligible() / filter()
in isolation.
"""

from eds_calsync.models import PLACEHOLDER_SUMMARY
from eds_calsync.models import BusyState
from eds_calsync.sanitizer import EventSanitizer
from tests.conftest import make_mirror
from tests.conftest import make_occ

# ---------------------------------------------------------------------------
# TestIsEligible
# ---------------------------------------------------------------------------


class TestIsEligible:
    def test_busy_timed_event_is_eligible(self):
        assert EventSanitizer.is_eligible(make_occ(summary="Standup"))

    def test_all_day_event_is_excluded(self):
        assert not EventSanitizer.is_eligible(make_occ(is_all_day=True))

    def test_placeholder_summary_is_excluded(self):
        """Anything titled "Busy" is treated as a mirror from the other side."""
        assert not EventSanitizer.is_eligible(make_occ(summary=PLACEHOLDER_SUMMARY))

    def test_summary_match_is_exact(self):
        assert EventSanitizer.is_eligible(make_occ(summary="busy"))
        assert EventSanitizer.is_eligible(make_occ(summary="Busy day"))

    def test_free_event_is_excluded(self):
        assert not EventSanitizer.is_eligible(make_occ(busy_state=BusyState.FREE))

    def test_tentative_oof_and_unknown_are_eligible(self):
        for state in (BusyState.TENTATIVE, BusyState.OUT_OF_OFFICE, BusyState.UNKNOWN):
            assert EventSanitizer.is_eligible(make_occ(busy_state=state))

    def test_received_mirror_never_bounces_back(self):
        assert not EventSanitizer.is_eligible(make_mirror())


# ---------------------------------------------------------------------------
# TestIsManagedEvent
# ---------------------------------------------------------------------------


class TestIsManagedEvent:
    def test_mirror_is_managed(self):
        assert EventSanitizer.is_managed_event(make_mirror())

    def test_user_event_is_not_managed(self):
        assert not EventSanitizer.is_managed_event(make_occ())


# ---------------------------------------------------------------------------
# TestFilter
# ---------------------------------------------------------------------------


class TestFilter:
    def test_output_is_anonymized(self):
        out = EventSanitizer.filter([make_occ(summary="Doctor appointment")])
        assert [o.summary for o in out] == [PLACEHOLDER_SUMMARY]

    def test_busy_state_and_times_survive(self):
        src = make_occ(hour=14, hours=2, busy_state=BusyState.TENTATIVE)
        (out,) = EventSanitizer.filter([src])
        assert out.start == src.start
        assert out.end == src.end
        assert out.busy_state is BusyState.TENTATIVE

    def test_each_exclusion_drops_exactly_its_event(self):
        events = [
            make_occ(hour=8, is_all_day=True),
            make_occ(hour=9, summary=PLACEHOLDER_SUMMARY),
            make_occ(hour=10, busy_state=BusyState.FREE),
            make_occ(hour=11, summary="Planning"),
        ]
        out = EventSanitizer.filter(events)
        assert len(out) == 1
        assert out[0].start == events[3].start

    def test_preserves_input_order(self):
        events = [make_occ(hour=15), make_occ(hour=9), make_occ(hour=12)]
        assert EventSanitizer.filter(events) == events

    def test_busy_and_free_scenario(self):
        """A busy 09:00-10:00 survives; a free 11:00-12:00 does not."""
        busy = make_occ(hour=9, summary="Doctor", busy_state=BusyState.BUSY)
        free = make_occ(hour=11, summary="Lunch", busy_state=BusyState.FREE)
        out = EventSanitizer.filter([busy, free])
        assert len(out) == 1
        assert out[0] == busy
        assert out[0].summary == PLACEHOLDER_SUMMARY

    def test_empty_input(self):
        assert EventSanitizer.filter([]) == []
