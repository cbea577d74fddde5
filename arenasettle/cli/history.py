"""
arenasettle history — print and verify the reconciliation journal.

Exit codes:
    0  Journal chain intact
    1  Journal has violations
    2  Error (file missing, malformed line)
"""

import sys
from pathlib import Path
from typing import List, Optional

import click

from arenasettle.cli.output import (
    BAR_LIGHT,
    _Color,
    echo_json,
    emit_error,
    header,
    row_fail,
    row_info,
    row_ok,
    verdict,
)
from arenasettle.cli.setup import EXIT_FAILED, EXIT_OK, EXIT_SETUP
from arenasettle.core.exceptions import JournalError
from arenasettle.ledger.journal import JournalEntry, JournalReport, read_entries, verify_entries


@click.command(name="history")
@click.argument("journal", type=click.Path(exists=False))
@click.option("--match-id", default=None, metavar="MATCH_ID",
              help="Show only entries for one match (verification covers the whole file).")
@click.option("--limit", type=int, default=None, metavar="N",
              help="Show only the last N entries.")
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
def history_command(
    journal:  str,
    match_id: Optional[str],
    limit:    Optional[int],
    fmt:      str,
    no_color: bool,
) -> None:
    """
    Print and verify a reconciliation journal.

    JOURNAL is the path to the .jsonl journal file.
    """
    _Color.configure(not no_color)
    path = Path(journal)
    if not path.exists():
        emit_error("history", f"Journal not found: {journal}", fmt)
        sys.exit(EXIT_SETUP)

    try:
        entries = read_entries(path)
    except JournalError as exc:
        emit_error("history", str(exc), fmt)
        sys.exit(EXIT_SETUP)

    report = verify_entries(entries)

    shown = entries
    if match_id:
        shown = [e for e in shown if e.match_id == match_id]
    if limit is not None and limit >= 0:
        shown = shown[-limit:] if limit else []

    if fmt == "json":
        echo_json("arenasettle_history", {
            "journal":       str(path),
            "valid":         report.valid,
            "total_entries": report.total_entries,
            "head_hash":     report.head_hash,
            "event_counts":  report.event_counts,
            "violations":    report.violations,
            "entries":       [e.to_dict() for e in shown],
        })
    else:
        _output_human(path, report, shown)

    sys.exit(EXIT_OK if report.valid else EXIT_FAILED)


def _output_human(path: Path, report: JournalReport, shown: List[JournalEntry]) -> None:
    header("Reconciliation Journal")

    click.echo(row_info("Journal", str(path)))
    click.echo(row_info("Entries", f"{report.total_entries:,}"))
    if report.event_counts:
        click.echo(row_info("Events", "  ".join(
            f"{_Color.cyan(k)}: {v}" for k, v in sorted(report.event_counts.items())
        )))
    click.echo()

    if report.valid:
        click.echo(row_ok("Chain", "intact, all entry hashes valid"))
    else:
        click.echo(row_fail("Chain", _Color.red(f"{len(report.violations)} violation(s)")))
    short = report.head_hash[:16] + "..." + report.head_hash[-8:]
    click.echo(row_info("Chain head", _Color.cyan(short)))
    click.echo()

    if shown:
        click.echo(f"  {BAR_LIGHT}")
        for e in shown:
            result = e.data.get("result", "")
            target = e.match_id or (f"game {e.game_id}" if e.game_id is not None else "-")
            click.echo(
                f"  {e.sequence:>6}  {_Color.dim(e.timestamp)}  "
                f"{e.event:<22}  {target:<20}  {result}"
            )
        click.echo()

    for v in report.violations:
        click.echo(row_fail("Violation", v))
    if report.violations:
        click.echo()

    if report.valid:
        verdict(True, "VALID  ·  journal integrity confirmed")
    else:
        verdict(False, f"INVALID  ·  {len(report.violations)} violation(s)")
