"""CLI commands for cost positions, history and reconciliation."""

from __future__ import annotations

import click

from costing.application.dto import CostPositionDTO
from costing.application.reconcile_costs import ReconcileCostsHandler
from costing.application.show_cost import ShowCostHandler
from costing.application.show_event import ShowEventHandler
from costing.application.show_history import ShowHistoryHandler
from costing.domain.exceptions import DomainException
from costing.infrastructure.bootstrap import cost_layer_repository, settings
from costing.infrastructure.cli.options import build_key, key_options


def _display_position(dto: CostPositionDTO) -> None:
    click.echo(f"Key:           {dto.key}")
    click.echo(f"Qty on hand:   {dto.qty_on_hand}")
    click.echo(f"WAC:           {dto.wac} {dto.currency}")
    click.echo(f"Total value:   {dto.total_value} {dto.currency}")
    click.echo(f"Last event:    {dto.last_event_id or '-'}")
    if dto.event_count is not None:
        click.echo(f"Events:        {dto.event_count}")


@click.command("show")
@key_options
@click.option(
    "--authoritative",
    is_flag=True,
    default=False,
    help="Replay the full history instead of reading the latest snapshot.",
)
def cost_show(installation: str, item: str, location: str, authoritative: bool) -> None:
    """Show the current cost position of an item at a location."""
    handler = ShowCostHandler(
        event_repo=cost_layer_repository(),
        default_currency=settings().default_currency,
    )
    key = build_key(installation, item, location)

    try:
        dto = handler.handle(key, authoritative)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_position(dto)


@click.command("replay")
@key_options
def cost_replay(installation: str, item: str, location: str) -> None:
    """Recompute a cost position from its full event history."""
    handler = ShowCostHandler(
        event_repo=cost_layer_repository(),
        default_currency=settings().default_currency,
    )
    key = build_key(installation, item, location)

    try:
        dto = handler.handle(key, authoritative=True)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    _display_position(dto)


@click.command("history")
@key_options
def cost_history(installation: str, item: str, location: str) -> None:
    """List every cost layer event of an item at a location."""
    handler = ShowHistoryHandler(event_repo=cost_layer_repository())
    key = build_key(installation, item, location)

    try:
        events = handler.handle(key)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    if not events:
        click.echo("No cost layer events found.")
        return

    click.echo(
        f"{'Timestamp':<24} {'Type':<16} {'Qty':>7} {'Unit cost':>14} "
        f"{'On hand':>8} {'WAC':>12} {'Value':>14}"
    )
    click.echo("-" * 101)
    for e in events:
        click.echo(
            f"{e.event_timestamp:<24} {e.event_type:<16} {e.qty_delta:>+7d} {e.unit_cost:>14} "
            f"{e.qty_on_hand:>8} {e.wac:>12} {e.total_value:>14}"
        )


@click.command("reconcile")
@click.option("--installation", default=None, help="Installation (tenant) ID.")
@click.option("--item", default=None, help="Item (variant) ID.")
@click.option("--location", default=None, help="Location (warehouse) ID.")
@click.option("--all", "check_all", is_flag=True, default=False, help="Reconcile every key.")
def cost_reconcile(
    installation: str | None,
    item: str | None,
    location: str | None,
    check_all: bool,
) -> None:
    """Replay the ledger and report stored snapshots that drifted.

    Exits with status 1 when any mismatch is found.  Nothing is repaired.
    """
    if check_all:
        key = None
    elif installation and item and location:
        key = build_key(installation, item, location)
    else:
        raise click.UsageError("Give --installation, --item and --location, or --all")

    handler = ReconcileCostsHandler(
        event_repo=cost_layer_repository(),
        tolerance=settings().reconcile_tolerance,
    )

    try:
        reports = handler.handle(key)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    if not reports:
        click.echo("No cost layer events found.")
        return

    failed = 0
    for report in reports:
        if report.is_consistent:
            click.echo(f"OK        {report.key}  ({report.replay.event_count} events)")
            continue
        failed += 1
        click.echo(f"MISMATCH  {report.key}  ({len(report.mismatches)} discrepancies)")
        for mismatch in report.mismatches:
            click.echo(f"    {mismatch.describe()}")

    if failed:
        click.echo(f"{failed} of {len(reports)} keys diverge from replay.")
        click.get_current_context().exit(1)


@click.command("event")
@click.argument("event_id")
def cost_event(event_id: str) -> None:
    """Show one cost layer event with the snapshot stored on it."""
    handler = ShowEventHandler(event_repo=cost_layer_repository())

    try:
        dto = handler.handle(event_id)
    except DomainException as exc:
        raise click.ClickException(str(exc))

    click.echo(f"Event:         {dto.id}  ({dto.event_type} {dto.qty_delta:+d})")
    click.echo(f"Key:           {dto.key}")
    click.echo(f"At:            {dto.event_timestamp}")
    click.echo(f"Unit cost:     {dto.unit_cost}  (landed {dto.landed_cost_delta})")
    click.echo(f"Qty on hand:   {dto.qty_on_hand}")
    click.echo(f"WAC:           {dto.wac}")
    click.echo(f"Total value:   {dto.total_value}")
    click.echo(f"Previous:      {dto.previous_event_id or '-'}")
    if dto.source_reference:
        click.echo(f"Source:        {dto.source_reference}")
