"""
arenasettle sweep — walk every on-chain game account.

Usage:
    arenasettle sweep --dry-run                 Report only
    arenasettle sweep                           Close / refund-and-close
    arenasettle sweep --dry-run --format json   Machine-readable report

Exit codes:
    0  Sweep completed (findings do not change the exit code)
    2  Setup error (missing key, bad config, platform unreachable)
"""

import sys

import click

from arenasettle.cli.output import (
    BAR_LIGHT,
    _Color,
    echo_json,
    emit_error,
    header,
    row_info,
    row_ok,
    row_warn,
    verdict,
)
from arenasettle.cli.setup import EXIT_OK, EXIT_SETUP, load_context
from arenasettle.core.exceptions import ArenaSettleError
from arenasettle.settlement.sweep import LAMPORTS_PER_SOL, SweepCategory, SweepReport


@click.command(name="sweep")
@click.option("--dry-run", is_flag=True, default=False,
              help="Classify accounts without sending transactions.")
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
@click.pass_context
def sweep_command(ctx: click.Context, dry_run: bool, fmt: str, no_color: bool) -> None:
    """
    Walk game ids 0..total_games and reclaim rent from finished games.

    \b
    Examples:
      arenasettle sweep --dry-run
      arenasettle sweep --format json
    """
    _Color.configure(not no_color)
    context = load_context(ctx, "sweep", fmt)

    try:
        report = context.sweeper.sweep(dry_run=dry_run)
    except ArenaSettleError as exc:
        emit_error("sweep", str(exc), fmt)
        sys.exit(EXIT_SETUP)

    if fmt == "json":
        echo_json("arenasettle_sweep", report.to_dict())
    else:
        _output_human(report)
    sys.exit(EXIT_OK)


def _output_human(report: SweepReport) -> None:
    header("Game Account Sweep" + ("  [dry-run]" if report.dry_run else ""))

    click.echo(row_info("Game ids", f"0 → {report.total_games}"))
    click.echo(row_info("Already closed", str(report.already_closed)))
    counts = report.counts()
    click.echo(row_info("Open accounts", "  ".join(
        f"{_Color.cyan(k)}: {v}" for k, v in counts.items() if v
    ) or "none"))
    click.echo()

    orphans = report.orphans
    if orphans:
        click.echo(row_warn("Orphans", ", ".join(str(e.game_id) for e in orphans)))
    else:
        click.echo(row_ok("Orphans", "none"))

    anomalies = report.by_category(SweepCategory.ANOMALY)
    if anomalies:
        click.echo(row_warn("Anomalies", f"{len(anomalies)} need operator review"))
    else:
        click.echo(row_ok("Anomalies", "none"))

    sol = report.recoverable_lamports / LAMPORTS_PER_SOL
    click.echo(row_info("Recoverable rent",
        f"{report.recoverable_lamports:,} lamports  " + _Color.dim(f"({sol:.6f} SOL)")
    ))
    click.echo()

    if report.entries:
        click.echo(f"  {BAR_LIGHT}")
        click.echo(f"  {'Game':>6}  {'Category':<18}  {'Status':<10}  Detail")
        click.echo(f"  {BAR_LIGHT}")
        for e in report.entries:
            detail = e.reason
            if e.result:
                detail = f"{detail}  → {e.result}"
            category = e.category.value
            if e.category == SweepCategory.ANOMALY:
                category = _Color.yellow(f"{category:<18}")
            else:
                category = f"{category:<18}"
            click.echo(f"  {e.game_id:>6}  {category}  {e.status or '-':<10}  {detail}")
        click.echo()

    verdict(not anomalies, "SWEEP COMPLETE" if not anomalies
            else f"SWEEP COMPLETE  ·  {len(anomalies)} anomaly(ies)")
