"""
arenasettle settlement - decide, execute and schedule reconciliation.

- machine      pure decision: (MatchRecord, ChainSnapshot) -> Decision
- reconciler   executes one decision for one match
- scheduler    periodic passes over matches needing work
- sweep        operator walk over every on-chain game account
"""

from arenasettle.settlement.machine import (
    Action,
    Decision,
    SettlementState,
    decide,
    evaluate_close,
    is_converged,
    wants_refund,
)
from arenasettle.settlement.reconciler import ReconcileOutcome, ReconcileReport, Reconciler
from arenasettle.settlement.scheduler import PassSummary, SettlementScheduler
from arenasettle.settlement.sweep import LedgerSweeper, SweepCategory, SweepReport

__all__ = [
    "Action",
    "Decision",
    "LedgerSweeper",
    "PassSummary",
    "ReconcileOutcome",
    "ReconcileReport",
    "Reconciler",
    "SettlementScheduler",
    "SettlementState",
    "SweepCategory",
    "SweepReport",
    "decide",
    "evaluate_close",
    "is_converged",
    "wants_refund",
]
