"""Application service: Reconcile Costs use case.

Runs the reconciliation checker for one key or for the whole ledger.
Reports come back as domain objects; nothing is written.
"""

from __future__ import annotations

from decimal import Decimal

from costing.domain.model.cost_layer import CostingKey
from costing.domain.repository.cost_layer_repository import CostLayerRepository
from costing.domain.service.reconciliation import (
    DEFAULT_TOLERANCE,
    ReconciliationChecker,
    ReconciliationReport,
)


class ReconcileCostsHandler:

    def __init__(
        self,
        event_repo: CostLayerRepository,
        tolerance: Decimal = DEFAULT_TOLERANCE,
    ) -> None:
        self._checker = ReconciliationChecker(event_repo, tolerance=tolerance)

    def handle(self, key: CostingKey | None = None) -> list[ReconciliationReport]:
        """Reconcile ``key``, or every key in the ledger when it is None."""
        if key is not None:
            return [self._checker.check(key)]
        return self._checker.check_all()
