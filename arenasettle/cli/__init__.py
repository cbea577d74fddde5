"""
arenasettle/cli/__init__.py

ArenaSettle CLI — root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    arenasettle = "arenasettle.cli:cli"

Each command lives in its own module and is added below.
"""

from typing import Optional

import click
from dotenv import load_dotenv

from arenasettle.cli.history import history_command
from arenasettle.cli.issues import clear_issue_command
from arenasettle.cli.reconcile import reconcile_command, run_command
from arenasettle.cli.sweep import sweep_command
from arenasettle.core.log import setup_logging
from arenasettle.runtime.context import SettlementContext


@click.group()
@click.version_option(package_name="arenasettle")
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False),
    default=None,
    envvar="ARENASETTLE_CONFIG",
    help="YAML settings file. Environment variables override it.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging.")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None,
              help="Also write logs to this file.")
@click.pass_context
def cli(
    ctx:         click.Context,
    config_path: Optional[str],
    verbose:     bool,
    log_file:    Optional[str],
) -> None:
    """
    ArenaSettle — escrow settlement and reconciliation for arena matches.

    \b
    Commands:
      reconcile     One pass through the settlement state machine.
      run           Reconcile every interval until stopped.
      sweep         Walk all game accounts; close or refund finished ones.
      history       Print and verify the reconciliation journal.
      clear-issue   Release a match flagged for operator review.

    \b
    Quick start:
      arenasettle reconcile --dry-run
      arenasettle sweep --dry-run --format json
      arenasettle history .arenasettle/journal.jsonl
    """
    load_dotenv()
    setup_logging(verbose=verbose, log_file=log_file)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj.setdefault("context_factory", SettlementContext.from_config)


cli.add_command(reconcile_command)
cli.add_command(run_command)
cli.add_command(sweep_command)
cli.add_command(history_command)
cli.add_command(clear_issue_command)
