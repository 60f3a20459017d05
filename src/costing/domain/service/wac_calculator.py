"""Domain service: Weighted Average Cost calculation.

One pure step, ``apply_movement``, implements the costing rule:

- a receipt adds ``(unit_cost + landed_cost_delta) * qty`` to the value
  at face value, ignoring the prior WAC;
- an issue removes ``qty * current WAC`` from the value, so it never
  changes the WAC itself;
- if quantity on hand would go negative, the state is reset to zero
  quantity and zero value (oversell clamp);
- WAC is ``value / qty``, or zero when nothing is on hand.

Every entry point folds that same step, selected by input:
``apply_event`` folds one new movement onto the latest stored snapshot
(O(1)), ``replay`` folds a key's whole ordered history from zero (O(n)).
Nothing here reads or writes storage.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from costing.domain.exceptions import ValidationError
from costing.domain.model.cost_layer import (
    CostingKey,
    CostLayerEvent,
    Movement,
    WacSnapshot,
)
from costing.domain.model.value_objects import DEFAULT_CURRENCY, Money
from costing.logging_config import get_logger

logger = get_logger("domain.wac_calculator")


@dataclass(frozen=True)
class CostState:
    """Running (quantity, value) pair carried through the fold."""

    qty_on_hand: int
    total_value: Money

    @staticmethod
    def zero(currency: str = DEFAULT_CURRENCY) -> CostState:
        return CostState(qty_on_hand=0, total_value=Money.zero(currency))

    @staticmethod
    def from_snapshot(snapshot: WacSnapshot) -> CostState:
        # Value is taken as stored, never re-derived as qty * wac.
        return CostState(
            qty_on_hand=snapshot.qty_on_hand,
            total_value=snapshot.total_value,
        )

    @property
    def wac(self) -> Money:
        if self.qty_on_hand > 0:
            return self.total_value.divide(self.qty_on_hand)
        return Money.zero(self.total_value.currency)


@dataclass(frozen=True)
class NewSnapshot:
    """Result of the incremental path, ready to attach to a new event."""

    wac: Money
    qty_on_hand: int
    total_value: Money
    previous_event_id: str | None


@dataclass(frozen=True)
class ReplayResult:
    """Authoritative state of a key after replaying its full history."""

    key: CostingKey
    wac: Money
    qty_on_hand: int
    total_value: Money
    event_count: int
    last_event_id: str | None


def apply_movement(state: CostState, movement: Movement) -> CostState:
    """Apply one movement to the running state."""
    if movement.currency != state.total_value.currency:
        raise ValidationError(
            f"Cannot combine {state.total_value.currency} with {movement.currency}"
        )

    if movement.is_receipt:
        value = state.total_value + movement.total_unit_cost * movement.qty_delta
        return CostState(
            qty_on_hand=state.qty_on_hand + movement.qty_delta,
            total_value=value,
        )

    issued = -movement.qty_delta
    qty = state.qty_on_hand - issued
    if qty < 0:
        logger.warning(
            "Issue exceeds quantity on hand; resetting cost basis to zero",
            extra={"qty_on_hand": state.qty_on_hand, "qty_delta": movement.qty_delta},
        )
        return CostState.zero(state.total_value.currency)
    if qty == 0:
        return CostState.zero(state.total_value.currency)
    return CostState(
        qty_on_hand=qty,
        total_value=state.total_value - state.wac * issued,
    )


def fold(
    movements: Iterable[Movement],
    start: CostState | None = None,
    currency: str = DEFAULT_CURRENCY,
) -> CostState:
    """Fold ``apply_movement`` over movements, from ``start`` or from zero."""
    state = start if start is not None else CostState.zero(currency)
    for movement in movements:
        state = apply_movement(state, movement)
    return state


def apply_event(
    key: CostingKey,
    previous: WacSnapshot | None,
    qty_delta: int,
    unit_cost: Money,
    landed_cost_delta: Money | None = None,
) -> NewSnapshot:
    """Incremental path: one new movement on top of the latest snapshot.

    Only the previous snapshot is read, so the cost is O(1) in the size
    of the key's history.
    """
    movement = Movement(
        qty_delta=qty_delta,
        unit_cost=unit_cost,
        landed_cost_delta=(
            landed_cost_delta
            if landed_cost_delta is not None
            else Money.zero(unit_cost.currency)
        ),
    )
    if previous is not None:
        if previous.qty_on_hand < 0 or previous.total_value.is_negative:
            raise ValidationError(
                f"Latest snapshot of {key} (event {previous.event_id}) is negative; "
                "reconcile the key before recording new movements"
            )
        start = CostState.from_snapshot(previous)
    else:
        start = CostState.zero(movement.currency)

    state = fold([movement], start=start)

    logger.debug(
        "Computed snapshot for %s",
        key,
        extra={
            "qty_delta": qty_delta,
            "qty_on_hand": state.qty_on_hand,
            "wac": state.wac.amount,
            "total_value": state.total_value.amount,
        },
    )
    return NewSnapshot(
        wac=state.wac,
        qty_on_hand=state.qty_on_hand,
        total_value=state.total_value,
        previous_event_id=previous.event_id if previous is not None else None,
    )


def order_events(events: Iterable[CostLayerEvent]) -> list[CostLayerEvent]:
    """Sort events by (event_timestamp, sequence); the sort is stable."""
    return sorted(events, key=lambda e: e.ordering)


def replay(
    key: CostingKey,
    events: Iterable[CostLayerEvent],
    currency: str | None = None,
) -> ReplayResult:
    """Full replay: recompute a key's state from its whole history.

    Stored snapshot fields are ignored; only the movements are folded.
    Replaying the same log twice gives the same result.
    """
    ordered = order_events(events)
    for event in ordered:
        if event.key != key:
            raise ValidationError(f"Event {event.id} belongs to {event.key}, not {key}")

    if currency is None:
        currency = ordered[0].currency if ordered else DEFAULT_CURRENCY

    state = fold((e.movement for e in ordered), currency=currency)
    return ReplayResult(
        key=key,
        wac=state.wac,
        qty_on_hand=state.qty_on_hand,
        total_value=state.total_value,
        event_count=len(ordered),
        last_event_id=ordered[-1].id if ordered else None,
    )


def replay_steps(
    key: CostingKey,
    events: Iterable[CostLayerEvent],
) -> list[tuple[CostLayerEvent, WacSnapshot]]:
    """Replay a key and pair each event with the state expected after it."""
    ordered = order_events(events)
    steps: list[tuple[CostLayerEvent, WacSnapshot]] = []
    state: CostState | None = None
    for event in ordered:
        if event.key != key:
            raise ValidationError(f"Event {event.id} belongs to {event.key}, not {key}")
        if state is None:
            state = CostState.zero(event.currency)
        state = apply_movement(state, event.movement)
        steps.append(
            (
                event,
                WacSnapshot(
                    qty_on_hand=state.qty_on_hand,
                    wac=state.wac,
                    total_value=state.total_value,
                    event_id=event.id,
                ),
            )
        )
    return steps
