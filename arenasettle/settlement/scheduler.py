"""
Retry & recovery scheduler.

One logical loop, one match at a time. Every pass re-reads each candidate
from the repository and the chain, so nothing decided in an earlier pass
is trusted in a later one.

Candidates: tied / completed / forfeited / cancelled matches that are not
yet converged and are not flagged fatal. A cancelled match that never got
an on-chain game has nothing to reconcile. An exception from one match is
reported against that match and the pass moves on.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from arenasettle.core.log import get_logger
from arenasettle.core.models import MatchRecord, MatchStatus
from arenasettle.settlement.machine import is_converged
from arenasettle.settlement.reconciler import ReconcileOutcome, ReconcileReport, Reconciler

logger = get_logger(__name__)

CANDIDATE_STATUSES = (
    MatchStatus.TIED,
    MatchStatus.COMPLETED,
    MatchStatus.FORFEITED,
    MatchStatus.CANCELLED,
)


@dataclass
class PassSummary:
    reports: List[ReconcileReport] = field(default_factory=list)
    dry_run: bool = False

    @property
    def counts(self) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for r in self.reports:
            out[r.outcome.value] = out.get(r.outcome.value, 0) + 1
        return out

    def to_dict(self) -> dict:
        return {
            "dry_run":  self.dry_run,
            "matches":  len(self.reports),
            "counts":   self.counts,
            "reports":  [r.to_dict() for r in self.reports],
        }


def needs_work(record: MatchRecord) -> bool:
    if record.status == MatchStatus.CANCELLED and record.on_chain_game_id is None:
        return False
    return (
        record.status in CANDIDATE_STATUSES
        and not record.is_flagged_fatal
        and not is_converged(record)
    )


class SettlementScheduler:

    def __init__(self, repository, reconciler: Reconciler, interval_seconds: float = 30.0):
        self.repository       = repository
        self.reconciler       = reconciler
        self.interval_seconds = interval_seconds

    def candidates(self) -> List[MatchRecord]:
        records = self.repository.query_by_status(CANDIDATE_STATUSES)
        return sorted((r for r in records if needs_work(r)), key=lambda r: r.match_id)

    def run_pass(self, dry_run: bool = False) -> PassSummary:
        summary = PassSummary(dry_run=dry_run)
        candidates = self.candidates()
        logger.info("Reconciliation pass: %d candidate(s)%s",
                    len(candidates), " [dry-run]" if dry_run else "")
        for record in candidates:
            summary.reports.append(self._reconcile_one(record, dry_run))
        if candidates:
            logger.info("Pass complete: %s", summary.counts)
        return summary

    def _reconcile_one(self, record: MatchRecord, dry_run: bool) -> ReconcileReport:
        try:
            return self.reconciler.reconcile(record, dry_run=dry_run)
        except Exception as exc:
            logger.exception("Match %s: reconcile raised", record.match_id)
            return ReconcileReport(
                record.match_id,
                ReconcileOutcome.ERROR,
                error=f"{type(exc).__name__}: {exc}",
            )

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Pass, wait interval_seconds, repeat until stop_event is set."""
        stop_event = stop_event or threading.Event()
        logger.info("Scheduler started, interval %.1fs", self.interval_seconds)
        while not stop_event.is_set():
            try:
                self.run_pass()
            except Exception:
                logger.exception("Reconciliation pass failed")
            stop_event.wait(self.interval_seconds)
        logger.info("Scheduler stopped")
