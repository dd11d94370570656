"""
Tests for FEFO batch selection (fulfillment_engines/fefo.py).

Pure engine: no database.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from fulfillment_engines.fefo import (
    FefoCandidate,
    FefoEngine,
    allocate_fefo,
    earliest_candidate,
    order_candidates,
)
from fulfillment_kernel.exceptions import InvalidQuantityError

B1 = uuid4()
B2 = uuid4()
B3 = uuid4()


def _candidate(batch_id, expiry: date, available: str) -> FefoCandidate:
    return FefoCandidate(batch_id=batch_id, expiry_date=expiry, available=Decimal(available))


class TestFefoOrdering:
    def test_earliest_batch_consumed_first(self):
        result = allocate_fefo(
            [
                _candidate(B1, date(2026, 2, 1), "50"),
                _candidate(B2, date(2026, 2, 15), "100"),
            ],
            Decimal("70"),
        )

        assert result.as_pairs() == [(B1, Decimal("50")), (B2, Decimal("20"))]
        assert result.shortfall == Decimal("0")
        assert result.is_complete

    def test_input_order_does_not_matter(self):
        result = allocate_fefo(
            [
                _candidate(B2, date(2026, 2, 15), "100"),
                _candidate(B1, date(2026, 2, 1), "50"),
            ],
            Decimal("70"),
        )

        assert result.as_pairs() == [(B1, Decimal("50")), (B2, Decimal("20"))]

    def test_same_expiry_breaks_tie_on_batch_id(self):
        low, high = sorted([uuid4(), uuid4()], key=str)
        ordered = order_candidates(
            [
                _candidate(high, date(2026, 3, 1), "10"),
                _candidate(low, date(2026, 3, 1), "10"),
            ]
        )

        assert [c.batch_id for c in ordered] == [low, high]


class TestFefoShortfall:
    def test_partial_fulfillment_reports_shortfall(self):
        result = allocate_fefo(
            [
                _candidate(B1, date(2026, 2, 1), "100"),
                _candidate(B2, date(2026, 2, 15), "50"),
            ],
            Decimal("200"),
        )

        assert result.allocated == Decimal("150")
        assert result.shortfall == Decimal("50")
        assert not result.is_complete

    def test_no_candidates_is_full_shortfall(self):
        result = allocate_fefo([], Decimal("5"))

        assert result.picks == ()
        assert result.shortfall == Decimal("5")

    def test_zero_request_picks_nothing(self):
        result = allocate_fefo([_candidate(B1, date(2026, 2, 1), "10")], Decimal("0"))

        assert result.picks == ()
        assert result.is_complete


class TestFefoFiltering:
    def test_excluded_batches_are_skipped(self):
        result = allocate_fefo(
            [
                _candidate(B1, date(2026, 2, 1), "50"),
                _candidate(B2, date(2026, 2, 15), "50"),
                _candidate(B3, date(2026, 3, 1), "50"),
            ],
            Decimal("60"),
            exclude_batch_ids=[B1],
        )

        assert result.as_pairs() == [(B2, Decimal("50")), (B3, Decimal("10"))]

    def test_empty_candidates_are_skipped(self):
        result = allocate_fefo(
            [
                _candidate(B1, date(2026, 2, 1), "0"),
                _candidate(B2, date(2026, 2, 15), "5"),
            ],
            Decimal("5"),
        )

        assert result.as_pairs() == [(B2, Decimal("5"))]

    def test_earliest_candidate_ignores_empty_rows(self):
        chosen = earliest_candidate(
            [
                _candidate(B1, date(2026, 2, 1), "0"),
                _candidate(B2, date(2026, 2, 15), "5"),
            ]
        )

        assert chosen.batch_id == B2

    def test_earliest_candidate_none_when_nothing_available(self):
        assert earliest_candidate([]) is None


class TestFefoPrecision:
    def test_need_kept_at_configured_places(self):
        result = allocate_fefo(
            [_candidate(B1, date(2026, 2, 1), "10")], Decimal("1.234"), decimal_places=3
        )

        assert result.requested == Decimal("1.234")
        assert result.as_pairs() == [(B1, Decimal("1.234"))]

    def test_shortfall_keeps_sub_cent_remainder(self):
        result = allocate_fefo(
            [_candidate(B1, date(2026, 2, 1), "1.230")], Decimal("1.234"), decimal_places=3
        )

        assert result.allocated == Decimal("1.230")
        assert result.shortfall == Decimal("0.004")

    def test_default_rounds_to_two_places(self):
        result = FefoEngine().allocate(candidates=[], quantity_needed=Decimal("1.005"))

        assert result.requested == Decimal("1.01")
        assert result.shortfall == Decimal("1.01")


class TestFefoValidation:
    def test_float_quantity_rejected(self):
        with pytest.raises(InvalidQuantityError):
            FefoEngine().allocate(candidates=[], quantity_needed=1.5)

    def test_negative_quantity_rejected(self):
        with pytest.raises(InvalidQuantityError):
            FefoEngine().allocate(candidates=[], quantity_needed=Decimal("-1"))

    def test_engine_trace_emitted(self, captured_logs):
        allocate_fefo([_candidate(B1, date(2026, 2, 1), "10")], Decimal("3"))

        traces = [r for r in captured_logs() if r["message"] == "FULFILLMENT_ENGINE_TRACE"]
        assert traces
        assert traces[-1]["engine_name"] == "fefo"


_quantities = st.decimals(min_value=0, max_value=1000, places=2, allow_nan=False, allow_infinity=False)


@st.composite
def _candidate_sets(draw):
    count = draw(st.integers(min_value=0, max_value=6))
    return [
        FefoCandidate(
            batch_id=uuid4(),
            expiry_date=date(2026, 1, 1).replace(day=draw(st.integers(min_value=1, max_value=28))),
            available=draw(_quantities),
        )
        for _ in range(count)
    ]


class TestFefoProperties:
    @settings(max_examples=200, deadline=None)
    @given(candidates=_candidate_sets(), needed=_quantities)
    def test_conservation_and_bounds(self, candidates, needed):
        result = allocate_fefo(candidates, needed)

        assert result.allocated + result.shortfall == needed
        available = {str(c.batch_id): c.available for c in candidates}
        for pick in result.picks:
            assert Decimal("0") < pick.quantity <= available[str(pick.batch_id)]

    @settings(max_examples=200, deadline=None)
    @given(candidates=_candidate_sets(), needed=_quantities)
    def test_later_batch_used_only_after_earlier_exhausted(self, candidates, needed):
        result = allocate_fefo(candidates, needed)

        by_id = {str(c.batch_id): c for c in candidates}
        picks = result.picks
        for earlier, later in zip(picks, picks[1:]):
            assert by_id[str(earlier.batch_id)].sort_key <= by_id[str(later.batch_id)].sort_key
            # A later pick exists only when the earlier batch was drained.
            assert earlier.quantity == by_id[str(earlier.batch_id)].available
