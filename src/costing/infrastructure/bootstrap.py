"""Composition root: wires concrete implementations to domain interfaces.

This is the only place in the codebase that knows about *all* layers
and the only one that reads settings.  Every other module depends only
on abstractions.
"""

from __future__ import annotations

from functools import lru_cache

from costing.infrastructure.persistence.json_cost_layer_repository import (
    JsonCostLayerRepository,
)
from costing.infrastructure.settings import CostingSettings
from costing.logging_config import configure_logging

_LEDGER_FILE = "cost_layer_events.json"


@lru_cache(maxsize=1)
def settings() -> CostingSettings:
    return CostingSettings.from_env()


def init_logging() -> None:
    configure_logging(level=settings().log_level)


def cost_layer_repository() -> JsonCostLayerRepository:
    return JsonCostLayerRepository(settings().data_dir / _LEDGER_FILE)
