"""
arenasettle reconcile / run — drive the settlement state machine.

    arenasettle reconcile --dry-run              What would one pass do?
    arenasettle reconcile                        One pass, for real
    arenasettle reconcile --match-id m-42        One match only
    arenasettle run                              Pass every interval until stopped

"Dry-run then apply" uses the same code path: a dry run builds and signs
each transaction against a placeholder blockhash and stops there.
"""

import signal
import sys
import threading
from typing import Optional

import click

from arenasettle.cli.output import (
    BAR_LIGHT,
    _Color,
    echo_json,
    emit_error,
    header,
    row_info,
    verdict,
)
from arenasettle.cli.setup import EXIT_OK, EXIT_SETUP, load_context
from arenasettle.core.exceptions import ArenaSettleError
from arenasettle.settlement.reconciler import ReconcileOutcome
from arenasettle.settlement.scheduler import PassSummary

_OUTCOME_COLOR = {
    ReconcileOutcome.APPLIED:   _Color.green,
    ReconcileOutcome.CONVERGED: _Color.green,
    ReconcileOutcome.DRY_RUN:   _Color.cyan,
    ReconcileOutcome.RETRY:     _Color.yellow,
    ReconcileOutcome.CONFLICT:  _Color.yellow,
    ReconcileOutcome.BLOCKED:   _Color.yellow,
    ReconcileOutcome.ANOMALY:   _Color.red,
    ReconcileOutcome.FATAL:     _Color.red,
    ReconcileOutcome.ERROR:     _Color.red,
}

_NEEDS_OPERATOR = (
    ReconcileOutcome.ANOMALY,
    ReconcileOutcome.FATAL,
    ReconcileOutcome.BLOCKED,
    ReconcileOutcome.ERROR,
)


@click.command(name="reconcile")
@click.option("--match-id", default=None, metavar="MATCH_ID",
              help="Reconcile a single match instead of every candidate.")
@click.option("--dry-run", is_flag=True, default=False,
              help="Decide and build transactions without sending them.")
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
)
@click.option("--no-color", is_flag=True, default=False, help="Disable ANSI color output.")
@click.pass_context
def reconcile_command(
    ctx:      click.Context,
    match_id: Optional[str],
    dry_run:  bool,
    fmt:      str,
    no_color: bool,
) -> None:
    """
    Run one reconciliation pass.

    \b
    Examples:
      arenasettle reconcile --dry-run
      arenasettle reconcile --match-id m-42
    """
    _Color.configure(not no_color)
    context = load_context(ctx, "reconcile", fmt)

    try:
        if match_id:
            report = context.reconciler.reconcile_id(match_id, dry_run=dry_run)
            summary = PassSummary(reports=[report], dry_run=dry_run)
        else:
            summary = context.scheduler.run_pass(dry_run=dry_run)
    except KeyError:
        emit_error("reconcile", f"Match not found: {match_id}", fmt)
        sys.exit(EXIT_SETUP)
    except ArenaSettleError as exc:
        emit_error("reconcile", str(exc), fmt)
        sys.exit(EXIT_SETUP)

    if fmt == "json":
        echo_json("arenasettle_reconcile", summary.to_dict())
    else:
        _output_human(summary)
    sys.exit(EXIT_OK)


def _output_human(summary: PassSummary) -> None:
    header("Reconciliation Pass" + ("  [dry-run]" if summary.dry_run else ""))

    click.echo(row_info("Matches", str(len(summary.reports))))
    if summary.counts:
        click.echo(row_info("Outcomes", "  ".join(
            f"{_Color.cyan(k)}: {v}" for k, v in sorted(summary.counts.items())
        )))
    click.echo()

    if summary.reports:
        click.echo(f"  {BAR_LIGHT}")
        click.echo(f"  {'Match':<24}  {'Outcome':<10}  Detail")
        click.echo(f"  {BAR_LIGHT}")
        for r in summary.reports:
            paint = _OUTCOME_COLOR.get(r.outcome, str)
            detail = r.reason or (r.error or "")
            if r.action:
                detail = f"{r.action.value}: {detail}"
            if r.signature and r.outcome == ReconcileOutcome.APPLIED:
                detail = f"{detail}  [{r.signature[:16]}...]"
            click.echo(f"  {r.match_id:<24}  {paint(f'{r.outcome.value:<10}')}  {detail}")
        click.echo()

    stuck = [r for r in summary.reports if r.outcome in _NEEDS_OPERATOR]
    if stuck:
        verdict(False, f"{len(stuck)} match(es) need operator attention")
    else:
        verdict(True, "PASS COMPLETE")


@click.command(name="run")
@click.option("--interval", type=float, default=None,
              help="Seconds between passes (overrides config).")
@click.pass_context
def run_command(ctx: click.Context, interval: Optional[float]) -> None:
    """Reconcile periodically until interrupted (Ctrl-C or SIGTERM)."""
    context = load_context(ctx, "run", "human")
    if interval is not None:
        if interval <= 0:
            emit_error("run", "--interval must be positive", "human")
            sys.exit(EXIT_SETUP)
        context.scheduler.interval_seconds = interval

    stop_event = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop_event.set())
    click.echo(row_info("Authority", str(context.authority.pubkey)))
    click.echo(row_info("Interval", f"{context.scheduler.interval_seconds:.1f}s"))
    try:
        context.scheduler.run_forever(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
    click.echo(row_info("Stopped", "scheduler exited"))
