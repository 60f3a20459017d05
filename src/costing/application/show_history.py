"""Application service: Show History use case (query)."""

from __future__ import annotations

from costing.application.dto import CostEventDTO
from costing.application.mapping import event_to_dto
from costing.domain.model.cost_layer import CostingKey
from costing.domain.repository.cost_layer_repository import CostLayerRepository


class ShowHistoryHandler:

    def __init__(self, event_repo: CostLayerRepository) -> None:
        self._event_repo = event_repo

    def handle(self, key: CostingKey) -> list[CostEventDTO]:
        """Every event of a key in replay order."""
        return [event_to_dto(event) for event in self._event_repo.list_for_key(key)]
