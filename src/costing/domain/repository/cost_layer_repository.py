"""Abstract repository for the cost layer ledger.

Defined in the domain layer so the domain never depends on
infrastructure.  The ledger is append-only: there is no update and no
delete.  Implementations must serialize appends per key; ``append`` is
conditional on the key's latest event still being
``expected_previous_id``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from costing.domain.model.cost_layer import CostingKey, CostLayerEvent


class CostLayerRepository(ABC):

    @abstractmethod
    def get_latest(self, key: CostingKey) -> CostLayerEvent | None:
        """Return the most recent event for a key, or None."""

    @abstractmethod
    def list_for_key(self, key: CostingKey) -> list[CostLayerEvent]:
        """Return every event for a key, ascending by (timestamp, sequence).

        The list must be read as one consistent snapshot of the log.
        """

    @abstractmethod
    def get_by_id(self, event_id: str) -> CostLayerEvent | None:
        """Return an event by its ID, or None if not found."""

    @abstractmethod
    def list_keys(self) -> list[CostingKey]:
        """Return every key that has at least one event."""

    @abstractmethod
    def append(
        self,
        event: CostLayerEvent,
        expected_previous_id: str | None,
    ) -> CostLayerEvent:
        """Append an event and return it as stored (with its sequence).

        Raises ConcurrentAppendError if the key's latest event is not
        ``expected_previous_id``.
        """
