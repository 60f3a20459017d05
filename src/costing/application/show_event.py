"""Application service: Show Event use case (query)."""

from __future__ import annotations

from costing.application.dto import CostEventDTO
from costing.application.mapping import event_to_dto
from costing.domain.exceptions import EntityNotFoundError
from costing.domain.repository.cost_layer_repository import CostLayerRepository


class ShowEventHandler:

    def __init__(self, event_repo: CostLayerRepository) -> None:
        self._event_repo = event_repo

    def handle(self, event_id: str) -> CostEventDTO:
        event = self._event_repo.get_by_id(event_id)
        if event is None:
            raise EntityNotFoundError(f"Cost layer event {event_id} not found")
        return event_to_dto(event)
