"""Config and context loading shared by the commands. Setup errors exit 2."""

import sys
from pathlib import Path

import click

from arenasettle.cli.output import emit_error
from arenasettle.core.config import SettlementConfig
from arenasettle.core.exceptions import ConfigError, JournalError

EXIT_OK      = 0
EXIT_FAILED  = 1
EXIT_SETUP   = 2


def load_config(ctx: click.Context, command: str, fmt: str) -> SettlementConfig:
    path = ctx.obj.get("config_path")
    try:
        return SettlementConfig.from_yaml(Path(path) if path else None)
    except ConfigError as exc:
        emit_error(command, str(exc), fmt)
        sys.exit(EXIT_SETUP)


def load_context(ctx: click.Context, command: str, fmt: str):
    """Build the SettlementContext through the factory on ctx.obj."""
    config = load_config(ctx, command, fmt)
    try:
        return ctx.obj["context_factory"](config)
    except (ConfigError, JournalError) as exc:
        emit_error(command, str(exc), fmt)
        sys.exit(EXIT_SETUP)
