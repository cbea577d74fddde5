"""arenasettle clear-issue — release a match flagged for operator review."""

import sys
from pathlib import Path

import click

from arenasettle.cli.output import _Color, emit_error, row_info, row_ok
from arenasettle.cli.setup import EXIT_FAILED, EXIT_OK, EXIT_SETUP, load_config
from arenasettle.core.exceptions import ConfigError, JournalError
from arenasettle.ledger.journal import NullJournal, ReconciliationJournal
from arenasettle.repository.file import JsonFileMatchRepository


@click.command(name="clear-issue")
@click.argument("match_id")
@click.pass_context
def clear_issue_command(ctx: click.Context, match_id: str) -> None:
    """
    Clear the settlement issue recorded against MATCH_ID.

    Run after fixing whatever the issue named; the next pass picks the
    match up again.
    """
    config = load_config(ctx, "clear-issue", "human")
    try:
        repository = JsonFileMatchRepository(Path(config.repository_path))
        journal = (
            ReconciliationJournal(Path(config.journal_path))
            if config.journal_path else NullJournal()
        )
    except (ConfigError, JournalError) as exc:
        emit_error("clear-issue", str(exc), "human")
        sys.exit(EXIT_SETUP)

    record = repository.get(match_id)
    if record is None:
        emit_error("clear-issue", f"Match not found: {match_id}", "human")
        sys.exit(EXIT_SETUP)

    issue = record.settlement_issue
    if issue is None:
        click.echo(row_ok(match_id, "no settlement issue recorded"))
        sys.exit(EXIT_OK)

    result = repository.update(match_id, {"settlement_issue": None},
                               expected_version=record.version)
    if result.conflict:
        emit_error("clear-issue", f"Match {match_id} changed concurrently; try again", "human")
        sys.exit(EXIT_FAILED)

    journal.append("issue_cleared", match_id=match_id,
                   game_id=record.on_chain_game_id, data=issue.to_dict())
    click.echo(row_ok(match_id, f"cleared {issue.kind.value}: {issue.cause}"))
    click.echo(row_info("", _Color.dim("the next reconciliation pass will retry this match")))
    sys.exit(EXIT_OK)
