"""Option groups shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import click

from costing.domain.exceptions import ValidationError
from costing.domain.model.cost_layer import CostingKey


def key_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add --installation / --item / --location to a command."""
    func = click.option("--location", required=True, help="Location (warehouse) ID.")(func)
    func = click.option("--item", required=True, help="Item (variant) ID.")(func)
    func = click.option("--installation", required=True, help="Installation (tenant) ID.")(func)
    return func


def build_key(installation: str, item: str, location: str) -> CostingKey:
    try:
        return CostingKey(installation_id=installation, item_id=item, location_id=location)
    except ValidationError as exc:
        raise click.BadParameter(str(exc))
