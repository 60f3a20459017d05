"""Domain -> DTO mapping shared by the use cases."""

from __future__ import annotations

from datetime import timezone

from costing.application.dto import CostEventDTO, CostPositionDTO
from costing.domain.model.cost_layer import CostingKey, CostLayerEvent, WacSnapshot
from costing.domain.service.wac_calculator import ReplayResult

WAC_DISPLAY_PLACES = 4


def event_to_dto(event: CostLayerEvent) -> CostEventDTO:
    return CostEventDTO(
        id=event.id,
        key=str(event.key),
        event_type=event.event_type.value,
        qty_delta=event.qty_delta,
        unit_cost=str(event.unit_cost),
        landed_cost_delta=str(event.landed_cost_delta),
        qty_on_hand=event.qty_on_hand_at_event,
        wac=str(event.wac_at_event.rounded(WAC_DISPLAY_PLACES)),
        total_value=str(event.total_value_at_event.rounded(2)),
        event_timestamp=event.event_timestamp.astimezone(timezone.utc).strftime(
            "%Y-%m-%d %H:%M:%S UTC"
        ),
        previous_event_id=event.previous_event_id,
        source_reference=event.source_reference,
    )


def snapshot_to_dto(key: CostingKey, snapshot: WacSnapshot) -> CostPositionDTO:
    return CostPositionDTO(
        key=str(key),
        qty_on_hand=snapshot.qty_on_hand,
        wac=str(snapshot.wac.rounded(WAC_DISPLAY_PLACES)),
        total_value=str(snapshot.total_value.rounded(2)),
        currency=snapshot.currency,
        last_event_id=snapshot.event_id,
    )


def replay_to_dto(result: ReplayResult) -> CostPositionDTO:
    return CostPositionDTO(
        key=str(result.key),
        qty_on_hand=result.qty_on_hand,
        wac=str(result.wac.rounded(WAC_DISPLAY_PLACES)),
        total_value=str(result.total_value.rounded(2)),
        currency=result.total_value.currency,
        last_event_id=result.last_event_id,
        event_count=result.event_count,
    )
