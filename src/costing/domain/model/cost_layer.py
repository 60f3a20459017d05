"""Cost layer ledger model.

A ``CostLayerEvent`` is one immutable inventory movement for a
``CostingKey``.  The snapshot fields (``qty_on_hand_at_event``,
``wac_at_event``, ``total_value_at_event``) are computed once, when the
event is recorded, and never recomputed in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from costing.domain.exceptions import ValidationError
from costing.domain.model.value_objects import DEFAULT_CURRENCY, Money


class EventType(Enum):
    GOODS_RECEIPT = "GOODS_RECEIPT"
    BUYLIST_RECEIPT = "BUYLIST_RECEIPT"
    TRANSFER_IN = "TRANSFER_IN"
    SALE = "SALE"
    TRANSFER_OUT = "TRANSFER_OUT"
    ADJUSTMENT = "ADJUSTMENT"

    @property
    def is_receipt_type(self) -> bool:
        return self in _RECEIPT_TYPES

    @property
    def is_issue_type(self) -> bool:
        return self in _ISSUE_TYPES


_RECEIPT_TYPES = frozenset(
    {EventType.GOODS_RECEIPT, EventType.BUYLIST_RECEIPT, EventType.TRANSFER_IN}
)
_ISSUE_TYPES = frozenset({EventType.SALE, EventType.TRANSFER_OUT})


@dataclass(frozen=True, order=True)
class CostingKey:
    """Partition of the ledger into independent WAC series."""

    installation_id: str
    item_id: str
    location_id: str

    def __post_init__(self) -> None:
        for name in ("installation_id", "item_id", "location_id"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f"Costing key {name} is required")

    def __str__(self) -> str:
        return f"{self.installation_id}/{self.item_id}@{self.location_id}"


@dataclass(frozen=True)
class Movement:
    """The raw inputs of one movement: what the fold consumes.

    ``unit_cost`` and ``landed_cost_delta`` only matter for receipts;
    issues are costed at the running WAC.
    """

    qty_delta: int
    unit_cost: Money
    landed_cost_delta: Money

    def __post_init__(self) -> None:
        if not isinstance(self.qty_delta, int) or isinstance(self.qty_delta, bool):
            raise ValidationError(
                f"Quantity delta must be an integer, got {type(self.qty_delta).__name__}"
            )
        if self.unit_cost.currency != self.landed_cost_delta.currency:
            raise ValidationError(
                f"Cannot combine {self.unit_cost.currency} "
                f"with {self.landed_cost_delta.currency}"
            )
        if self.unit_cost.is_negative:
            raise ValidationError(f"Unit cost cannot be negative, got {self.unit_cost.amount}")
        if self.landed_cost_delta.is_negative:
            raise ValidationError(
                f"Landed cost cannot be negative, got {self.landed_cost_delta.amount}"
            )

    @property
    def currency(self) -> str:
        return self.unit_cost.currency

    @property
    def is_receipt(self) -> bool:
        return self.qty_delta > 0

    @property
    def total_unit_cost(self) -> Money:
        return self.unit_cost + self.landed_cost_delta

    @staticmethod
    def of(
        qty_delta: int,
        unit_cost: str | int | Money = "0",
        landed_cost_delta: str | int | Money | None = None,
        currency: str = DEFAULT_CURRENCY,
    ) -> Movement:
        """Build a movement from loosely typed input (CLI, JSON, tests)."""
        cost = unit_cost if isinstance(unit_cost, Money) else Money.of(unit_cost, currency)
        if landed_cost_delta is None:
            landed = Money.zero(cost.currency)
        elif isinstance(landed_cost_delta, Money):
            landed = landed_cost_delta
        else:
            landed = Money.of(landed_cost_delta, cost.currency)
        return Movement(qty_delta=qty_delta, unit_cost=cost, landed_cost_delta=landed)


@dataclass(frozen=True)
class WacSnapshot:
    """Running cost state of a key after some event.

    ``event_id`` is the event that produced the state, or None for the
    empty state of a key with no history.
    """

    qty_on_hand: int
    wac: Money
    total_value: Money
    event_id: str | None = None

    @staticmethod
    def empty(currency: str = DEFAULT_CURRENCY) -> WacSnapshot:
        return WacSnapshot(
            qty_on_hand=0,
            wac=Money.zero(currency),
            total_value=Money.zero(currency),
        )

    @property
    def currency(self) -> str:
        return self.total_value.currency


@dataclass(frozen=True)
class CostLayerEvent:
    """Immutable ledger entry: one movement plus the snapshot after it.

    ``sequence`` is assigned by the store on append and breaks ties
    between events sharing an ``event_timestamp``.  The snapshot fields
    are held as stored; reconciliation is what judges them.
    """

    id: str
    key: CostingKey
    event_type: EventType
    movement: Movement
    event_timestamp: datetime
    qty_on_hand_at_event: int
    wac_at_event: Money
    total_value_at_event: Money
    previous_event_id: str | None = None
    sequence: int = 0
    source_reference: str | None = None
    created_by: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def qty_delta(self) -> int:
        return self.movement.qty_delta

    @property
    def unit_cost(self) -> Money:
        return self.movement.unit_cost

    @property
    def landed_cost_delta(self) -> Money:
        return self.movement.landed_cost_delta

    @property
    def currency(self) -> str:
        return self.movement.currency

    @property
    def ordering(self) -> tuple[datetime, int]:
        """Total order of events within a key."""
        return (self.event_timestamp, self.sequence)

    @property
    def snapshot(self) -> WacSnapshot:
        return WacSnapshot(
            qty_on_hand=self.qty_on_hand_at_event,
            wac=self.wac_at_event,
            total_value=self.total_value_at_event,
            event_id=self.id,
        )
