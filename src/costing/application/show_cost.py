"""Application service: Show Cost use case (query).

Current cost of a key without recording anything.  By default this is
the snapshot stored on the latest event (O(1)); ``authoritative=True``
replays the whole history instead.
"""

from __future__ import annotations

from costing.application.dto import CostPositionDTO
from costing.application.mapping import replay_to_dto, snapshot_to_dto
from costing.domain.model.cost_layer import CostingKey, WacSnapshot
from costing.domain.model.value_objects import DEFAULT_CURRENCY
from costing.domain.repository.cost_layer_repository import CostLayerRepository
from costing.domain.service.wac_calculator import replay


class ShowCostHandler:

    def __init__(
        self,
        event_repo: CostLayerRepository,
        default_currency: str = DEFAULT_CURRENCY,
    ) -> None:
        self._event_repo = event_repo
        self._default_currency = default_currency

    def handle(self, key: CostingKey, authoritative: bool = False) -> CostPositionDTO:
        if authoritative:
            events = self._event_repo.list_for_key(key)
            currency = events[0].currency if events else self._default_currency
            return replay_to_dto(replay(key, events, currency=currency))

        latest = self._event_repo.get_latest(key)
        if latest is None:
            return snapshot_to_dto(key, WacSnapshot.empty(self._default_currency))
        return snapshot_to_dto(key, latest.snapshot)
