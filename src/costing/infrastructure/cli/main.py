import uuid

import click

from costing.infrastructure.bootstrap import init_logging
from costing.infrastructure.cli.cost_commands import (
    cost_event,
    cost_history,
    cost_reconcile,
    cost_replay,
    cost_show,
)
from costing.infrastructure.cli.movement_commands import movement_issue, movement_receive
from costing.infrastructure.settings import ConfigError
from costing.logging_config import LogContext


@click.group()
def cli() -> None:
    """Costing: weighted average cost ledger."""
    try:
        init_logging()
    except ConfigError as exc:
        raise click.ClickException(str(exc))
    # Every log line of one invocation shares this id.
    LogContext.set(correlation_id=uuid.uuid4().hex)


@cli.group()
def movement() -> None:
    """Record inventory movements."""


@cli.group()
def cost() -> None:
    """Inspect and audit cost positions."""


# Register subcommands
movement.add_command(movement_receive)
movement.add_command(movement_issue)
cost.add_command(cost_show)
cost.add_command(cost_history)
cost.add_command(cost_replay)
cost.add_command(cost_event)
cli.add_command(cost_reconcile)
