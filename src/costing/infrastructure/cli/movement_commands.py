"""CLI commands for recording movements."""

from __future__ import annotations

from datetime import datetime, timezone

import click

from costing.application.dto import CostEventDTO, MovementRequest
from costing.application.record_movement import RecordMovementHandler
from costing.domain.exceptions import DomainException
from costing.infrastructure.bootstrap import cost_layer_repository, settings
from costing.infrastructure.cli.options import key_options


def _as_utc(value: datetime | None) -> datetime | None:
    """click.DateTime yields naive datetimes; they are read as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _record(request: MovementRequest) -> CostEventDTO:
    cfg = settings()
    handler = RecordMovementHandler(
        event_repo=cost_layer_repository(),
        max_attempts=cfg.max_append_attempts,
        default_currency=cfg.default_currency,
    )

    try:
        return handler.handle(request)
    except DomainException as exc:
        raise click.ClickException(str(exc))


def _echo_event(dto: CostEventDTO) -> None:
    click.echo(f"Event {dto.id} recorded  ({dto.event_type} {dto.qty_delta:+d})")
    click.echo(f"Key:           {dto.key}")
    click.echo(f"Qty on hand:   {dto.qty_on_hand}")
    click.echo(f"WAC:           {dto.wac}")
    click.echo(f"Total value:   {dto.total_value}")


@click.command("receive")
@key_options
@click.option("--quantity", required=True, type=click.IntRange(min=1), help="Units received.")
@click.option("--unit-cost", required=True, help="Cost per unit (e.g. 5.00).")
@click.option("--landed-cost", default=None, help="Extra per-unit cost (freight, fees).")
@click.option(
    "--type",
    "event_type",
    type=click.Choice(["GOODS_RECEIPT", "BUYLIST_RECEIPT", "TRANSFER_IN", "ADJUSTMENT"]),
    default="GOODS_RECEIPT",
    show_default=True,
)
@click.option("--currency", default=None, help="ISO currency code.")
@click.option("--at", "event_timestamp", type=click.DateTime(), default=None, help="Event time (UTC).")
@click.option("--source", default=None, help="Source document reference.")
@click.option("--by", "created_by", default=None, help="Actor recording the movement.")
def movement_receive(
    installation: str,
    item: str,
    location: str,
    quantity: int,
    unit_cost: str,
    landed_cost: str | None,
    event_type: str,
    currency: str | None,
    event_timestamp: datetime | None,
    source: str | None,
    created_by: str | None,
) -> None:
    """Receive stock into a location at its own unit cost."""
    dto = _record(
        MovementRequest(
            installation_id=installation,
            item_id=item,
            location_id=location,
            event_type=event_type,
            qty_delta=quantity,
            unit_cost=unit_cost,
            landed_cost_delta=landed_cost,
            currency=currency,
            event_timestamp=_as_utc(event_timestamp),
            source_reference=source,
            created_by=created_by,
        )
    )
    _echo_event(dto)


@click.command("issue")
@key_options
@click.option("--quantity", required=True, type=click.IntRange(min=1), help="Units leaving stock.")
@click.option(
    "--type",
    "event_type",
    type=click.Choice(["SALE", "TRANSFER_OUT", "ADJUSTMENT"]),
    default="SALE",
    show_default=True,
)
@click.option("--currency", default=None, help="ISO currency code.")
@click.option("--at", "event_timestamp", type=click.DateTime(), default=None, help="Event time (UTC).")
@click.option("--source", default=None, help="Source document reference.")
@click.option("--by", "created_by", default=None, help="Actor recording the movement.")
def movement_issue(
    installation: str,
    item: str,
    location: str,
    quantity: int,
    event_type: str,
    currency: str | None,
    event_timestamp: datetime | None,
    source: str | None,
    created_by: str | None,
) -> None:
    """Issue stock from a location at the current WAC."""
    dto = _record(
        MovementRequest(
            installation_id=installation,
            item_id=item,
            location_id=location,
            event_type=event_type,
            qty_delta=-quantity,
            currency=currency,
            event_timestamp=_as_utc(event_timestamp),
            source_reference=source,
            created_by=created_by,
        )
    )
    _echo_event(dto)
