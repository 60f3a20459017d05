"""Data Transfer Objects: plain containers that cross layer boundaries.

DTOs carry data between the CLI and application layers without
exposing domain internals to the outside world.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class MovementRequest:
    """Input: one movement as authored by a receiving or issuing workflow."""

    installation_id: str
    item_id: str
    location_id: str
    event_type: str
    qty_delta: int
    unit_cost: str = "0"
    landed_cost_delta: str | None = None
    currency: str | None = None
    event_timestamp: datetime | None = None
    source_reference: str | None = None
    created_by: str | None = None


@dataclass(frozen=True)
class CostEventDTO:
    """Output: a recorded cost layer event as displayed to the user."""

    id: str
    key: str
    event_type: str
    qty_delta: int
    unit_cost: str  # formatted, e.g. "5.00 USD"
    landed_cost_delta: str
    qty_on_hand: int
    wac: str  # four places
    total_value: str
    event_timestamp: str
    previous_event_id: str | None
    source_reference: str | None


@dataclass(frozen=True)
class CostPositionDTO:
    """Output: the cost position of one key."""

    key: str
    qty_on_hand: int
    wac: str
    total_value: str
    currency: str
    last_event_id: str | None
    event_count: int | None = None  # only known after a replay
