"""Unit tests for the WAC fold, incremental path and full replay."""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from costing.domain.exceptions import ValidationError
from costing.domain.model.cost_layer import Movement, WacSnapshot
from costing.domain.model.value_objects import Money
from costing.domain.service.wac_calculator import (
    CostState,
    apply_event,
    apply_movement,
    fold,
    replay,
)
from tests.builders import KEY, OTHER_KEY, T0, build_history


def _receive(qty, cost, landed=None):
    return Movement.of(qty, cost, landed)


def _issue(qty):
    return Movement.of(-qty)


def _snapshot(state: CostState) -> WacSnapshot:
    return WacSnapshot(qty_on_hand=state.qty_on_hand, wac=state.wac, total_value=state.total_value)


# ── Single step ──────────────────────────────────────────────────────────────


class TestApplyMovement:

    def test_receipt_into_empty_key_takes_its_cost(self):
        state = apply_movement(CostState.zero(), _receive(12, "4.25"))
        assert state.qty_on_hand == 12
        assert state.wac == Money.of("4.25")
        assert state.total_value == Money.of("51.00")

    def test_weighted_blend(self):
        state = fold([_receive(10, "5"), _receive(10, "7")])
        assert state.qty_on_hand == 20
        assert state.wac == Money.of("6.00")
        assert state.total_value == Money.of("120")

    def test_issue_depletes_at_current_wac(self):
        state = fold([_receive(10, "5"), _receive(10, "7"), _issue(5)])
        assert state.qty_on_hand == 15
        assert state.total_value == Money.of("90.00")
        assert state.wac == Money.of("6.00")

    def test_issue_ignores_its_own_unit_cost(self):
        state = fold([_receive(10, "5"), Movement.of(-4, "99.99")])
        assert state.wac == Money.of("5")
        assert state.total_value == Money.of("30")

    def test_landed_cost_added_to_unit_cost(self):
        state = apply_movement(CostState.zero(), _receive(10, "5", "0.50"))
        assert state.wac == Money.of("5.50")
        assert state.total_value == Money.of("55.00")

    def test_oversell_clamps_to_zero(self):
        state = fold([_receive(5, "4"), _issue(8)])
        assert state.qty_on_hand == 0
        assert state.total_value == Money.zero()
        assert state.wac == Money.zero()

    def test_receipt_after_clamp_starts_fresh(self):
        state = fold([_receive(5, "4"), _issue(8), _receive(2, "9")])
        assert state.qty_on_hand == 2
        assert state.wac == Money.of("9")

    def test_issue_from_empty_key(self):
        state = apply_movement(CostState.zero(), _issue(3))
        assert state.qty_on_hand == 0
        assert state.total_value == Money.zero()

    def test_zero_delta_is_a_no_op(self):
        start = fold([_receive(3, "2")])
        assert apply_movement(start, Movement.of(0)) == start

    def test_issuing_everything_leaves_exactly_zero_value(self):
        # 10 / 3 does not terminate; the remainder must not linger.
        state = fold([_receive(1, "4"), _receive(2, "3"), _issue(1), _issue(2)])
        assert state.qty_on_hand == 0
        assert state.total_value.amount == 0
        assert state.wac.amount == 0

    def test_repeated_division_stays_consistent(self):
        state = fold([_receive(1, "4"), _receive(2, "3"), _issue(1)])
        assert state.qty_on_hand == 2
        drift = state.total_value.difference(state.wac * state.qty_on_hand)
        assert drift < Decimal("1e-30")

    def test_currency_mismatch_rejected(self):
        start = fold([_receive(3, "2")])
        with pytest.raises(ValidationError, match="Cannot combine"):
            apply_movement(start, Movement.of(1, "2", currency="EUR"))

    def test_value_and_quantity_never_negative(self):
        movements = [
            _receive(3, "1.10"), _issue(1), _issue(5), _receive(7, "2.35"),
            _issue(7), _issue(1), _receive(1, "0"), _issue(2), _receive(4, "8.01"),
        ]
        state = CostState.zero()
        for movement in movements:
            state = apply_movement(state, movement)
            assert state.qty_on_hand >= 0
            assert state.total_value.amount >= 0


# ── Incremental path ─────────────────────────────────────────────────────────


class TestApplyEvent:

    def test_first_event_has_no_previous(self):
        snap = apply_event(KEY, None, 10, Money.of("5"))
        assert snap.previous_event_id is None
        assert snap.qty_on_hand == 10
        assert snap.wac == Money.of("5")

    def test_builds_on_previous_snapshot(self):
        previous = WacSnapshot(
            qty_on_hand=10, wac=Money.of("5"), total_value=Money.of("50"), event_id="e-1"
        )
        snap = apply_event(KEY, previous, 10, Money.of("7"))
        assert snap.previous_event_id == "e-1"
        assert snap.qty_on_hand == 20
        assert snap.wac == Money.of("6")
        assert snap.total_value == Money.of("120")

    def test_uses_stored_value_not_qty_times_wac(self):
        # Stored value is authoritative even when wac was rounded.
        previous = WacSnapshot(
            qty_on_hand=3,
            wac=Money.of("3.33"),
            total_value=Money.of("10"),
            event_id="e-1",
        )
        snap = apply_event(KEY, previous, 3, Money.of("0"))
        assert snap.total_value == Money.of("10")
        assert snap.wac == Money.of("10").divide(6)

    def test_landed_cost_defaults_to_zero(self):
        snap = apply_event(KEY, None, 4, Money.of("2.50"))
        assert snap.total_value == Money.of("10.00")

    def test_oversell_clamp(self):
        previous = WacSnapshot(
            qty_on_hand=5, wac=Money.of("4"), total_value=Money.of("20"), event_id="e-1"
        )
        snap = apply_event(KEY, previous, -8, Money.of("0"))
        assert snap.qty_on_hand == 0
        assert snap.total_value == Money.zero()
        assert snap.wac == Money.zero()

    @pytest.mark.parametrize(
        "qty, value", [(-3, "10"), (3, "-10")],
    )
    def test_refuses_to_build_on_a_negative_snapshot(self, qty, value):
        previous = WacSnapshot(
            qty_on_hand=qty, wac=Money.of("1"), total_value=Money.of(value), event_id="e-1"
        )
        with pytest.raises(ValidationError, match="reconcile the key"):
            apply_event(KEY, previous, 1, Money.of("2"))


# ── Full replay ──────────────────────────────────────────────────────────────


MOVEMENTS = [
    Movement.of(10, "5"),
    Movement.of(10, "7"),
    Movement.of(-5),
    Movement.of(7, "6.13", "0.21"),
    Movement.of(-3),
    Movement.of(-30),
    Movement.of(4, "11.11"),
    Movement.of(-1),
    Movement.of(9, "0.99", "0.01"),
]


class TestReplay:

    def test_empty_history(self):
        result = replay(KEY, [])
        assert result.qty_on_hand == 0
        assert result.wac == Money.zero()
        assert result.event_count == 0
        assert result.last_event_id is None

    def test_reports_count_and_last_event(self):
        events = build_history(KEY, MOVEMENTS)
        result = replay(KEY, events)
        assert result.event_count == len(MOVEMENTS)
        assert result.last_event_id == events[-1].id

    def test_deterministic(self):
        events = build_history(KEY, MOVEMENTS)
        assert replay(KEY, events) == replay(KEY, events)

    def test_matches_incremental_path(self):
        events = build_history(KEY, MOVEMENTS)
        result = replay(KEY, events)
        latest = events[-1]
        assert result.qty_on_hand == latest.qty_on_hand_at_event
        assert result.wac == latest.wac_at_event
        assert result.total_value == latest.total_value_at_event

    def test_incremental_matches_replay_at_every_prefix(self):
        events = build_history(KEY, MOVEMENTS)
        for n in range(1, len(events) + 1):
            result = replay(KEY, events[:n])
            assert result.total_value == events[n - 1].total_value_at_event
            assert result.qty_on_hand == events[n - 1].qty_on_hand_at_event

    def test_input_order_does_not_matter(self):
        events = build_history(KEY, MOVEMENTS)
        assert replay(KEY, list(reversed(events))) == replay(KEY, events)

    def test_equal_timestamps_break_ties_by_sequence(self):
        issue_first = [
            replace(e, event_timestamp=T0) for e in build_history(KEY, [
                Movement.of(10, "5"), Movement.of(-10), Movement.of(10, "8"),
            ])
        ]
        result = replay(KEY, list(reversed(issue_first)))
        assert result.qty_on_hand == 10
        assert result.wac == Money.of("8")

    def test_ignores_stored_snapshots(self):
        events = build_history(KEY, MOVEMENTS[:2])
        events[0] = replace(events[0], wac_at_event=Money.of("999"))
        assert replay(KEY, events).wac == Money.of("6")

    def test_rejects_events_of_another_key(self):
        events = build_history(KEY, MOVEMENTS[:2]) + build_history(OTHER_KEY, MOVEMENTS[:1])
        with pytest.raises(ValidationError, match="belongs to"):
            replay(KEY, events)

    def test_key_isolation(self):
        a = build_history(KEY, [Movement.of(10, "5")])
        b = build_history(
            OTHER_KEY,
            [Movement.of(3, "100"), Movement.of(-3)],
            start=T0 + timedelta(seconds=30),
        )
        assert replay(KEY, a).wac == Money.of("5")
        assert replay(OTHER_KEY, b).qty_on_hand == 0

    def test_currency_follows_history(self):
        events = build_history(KEY, [Movement.of(2, "3", currency="EUR")])
        assert replay(KEY, events).total_value == Money.of("6", "EUR")
