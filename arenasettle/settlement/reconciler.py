"""
Reconciler: executes one settlement decision for one match.

    read chain → decide → submit → confirm → persist (+ journal)

Error handling is local to the match:

    RETRYABLE        record unchanged, next pass tries again
    ALREADY_DONE     same transition as success
    FATAL            settlement_issue(kind=fatal) written; the automatic
                     loop skips the match until an operator clears it
    conflict         someone else wrote the record first; next pass re-reads
    missing profile  settlement_issue(kind=missing_prerequisite), status kept

An invalid wallet in the record and undecodable account data are FATAL.
Nothing here raises for a single match's failure except errors that make
every match fail alike (journal unwritable, repository I/O); the scheduler
reports those against the match as ERROR and continues.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from arenasettle.chain.outcome import OutcomeKind, SubmissionResult
from arenasettle.chain.pda import as_pubkey
from arenasettle.chain.state import ChainSnapshot
from arenasettle.core.exceptions import (
    ChainSubmissionError,
    DecodeError,
    RepositoryConflictError,
)
from arenasettle.core.log import get_logger
from arenasettle.core.models import IssueKind, MatchRecord, SettlementIssue
from arenasettle.finance.outcome import PayoutPlan, payout_plan
from arenasettle.finance.pnl import DEFAULT_TIE_TOLERANCE
from arenasettle.ledger.journal import NullJournal
from arenasettle.settlement.machine import Action, Decision, SettlementState, decide

logger = get_logger(__name__)

PayoutHook = Callable[[MatchRecord, PayoutPlan], None]


class ReconcileOutcome(str, Enum):
    NOOP      = "noop"
    CONVERGED = "converged"
    APPLIED   = "applied"
    DRY_RUN   = "dry_run"
    RETRY     = "retry"
    CONFLICT  = "conflict"
    BLOCKED   = "blocked"
    FATAL     = "fatal"
    ANOMALY   = "anomaly"
    SKIPPED   = "skipped"
    ERROR     = "error"


@dataclass(frozen=True)
class ReconcileReport:
    match_id:  str
    outcome:   ReconcileOutcome
    state:     Optional[SettlementState] = None
    action:    Optional[Action] = None
    reason:    str = ""
    signature: Optional[str] = None
    error:     Optional[str] = None
    players:   tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id":  self.match_id,
            "outcome":   self.outcome.value,
            "state":     self.state.value if self.state else None,
            "action":    self.action.value if self.action else None,
            "reason":    self.reason,
            "signature": self.signature,
            "error":     self.error,
            "players":   list(self.players),
        }


def _jsonable(patch: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in patch.items()}


def _invalid_wallets(record: MatchRecord) -> List[str]:
    invalid = []
    for player in record.players:
        try:
            as_pubkey(player)
        except (TypeError, ValueError):
            invalid.append(player)
    return invalid


class Reconciler:

    def __init__(
        self,
        repository,
        chain_state,
        composer,
        journal=None,
        payout_hook: Optional[PayoutHook] = None,
        rake_percent: float = 0.10,
        tie_fee_percent: float = 0.02,
        tie_tolerance: float = DEFAULT_TIE_TOLERANCE,
        close_settled_games: bool = True,
    ):
        self.repository          = repository
        self.chain_state         = chain_state
        self.composer            = composer
        self.journal             = journal or NullJournal()
        self.payout_hook         = payout_hook
        self.rake_percent        = rake_percent
        self.tie_fee_percent     = tie_fee_percent
        self.tie_tolerance       = tie_tolerance
        self.close_settled_games = close_settled_games

    # ── Entry points ─────────────────────────────────────────

    def reconcile_id(self, match_id: str, dry_run: bool = False) -> ReconcileReport:
        record = self.repository.get(match_id)
        if record is None:
            raise KeyError(match_id)
        return self.reconcile(record, dry_run=dry_run)

    def reconcile(self, record: MatchRecord, dry_run: bool = False) -> ReconcileReport:
        if record.is_flagged_fatal:
            return ReconcileReport(
                record.match_id,
                ReconcileOutcome.SKIPPED,
                reason=f"flagged fatal: {record.settlement_issue.cause}",
            )

        if record.on_chain_game_id is None:
            decision = decide(record, ChainSnapshot())
            return ReconcileReport(
                record.match_id, ReconcileOutcome.NOOP, decision.state, reason=decision.reason
            )

        invalid = _invalid_wallets(record)
        if invalid:
            issue = SettlementIssue(
                IssueKind.FATAL,
                "Invalid wallet address in match record",
                ", ".join(str(p) for p in invalid),
                players=tuple(str(p) for p in invalid),
            )
            return self._flag(record, issue, dry_run, ReconcileOutcome.FATAL)

        try:
            snapshot = self.chain_state.snapshot(record.on_chain_game_id, record.players)
        except ChainSubmissionError as exc:
            logger.warning("Match %s: chain read failed: %s", record.match_id, exc)
            return ReconcileReport(record.match_id, ReconcileOutcome.RETRY, error=str(exc))
        except (DecodeError, ValueError) as exc:
            issue = SettlementIssue(IssueKind.FATAL, "On-chain account data is malformed", str(exc))
            return self._flag(record, issue, dry_run, ReconcileOutcome.FATAL)

        decision = decide(record, snapshot, self.tie_tolerance)
        logger.debug(
            "Match %s: %s %s", record.match_id, decision.state.value, decision.reason
        )

        if decision.issue is not None:
            outcome = (
                ReconcileOutcome.BLOCKED
                if decision.issue.kind == IssueKind.MISSING_PREREQUISITE
                else ReconcileOutcome.ANOMALY
            )
            return self._flag(record, decision.issue, dry_run, outcome, decision)

        if decision.action is None:
            if decision.patch:
                return self._converge(record, decision, dry_run)
            return ReconcileReport(
                record.match_id, ReconcileOutcome.NOOP, decision.state, reason=decision.reason
            )

        if decision.action == Action.CLOSE_GAME and not self.close_settled_games:
            return ReconcileReport(
                record.match_id, ReconcileOutcome.NOOP, decision.state,
                reason="closing settled games is disabled",
            )

        return self._execute(record, decision, dry_run)

    # ── Steps ────────────────────────────────────────────────

    def _execute(self, record: MatchRecord, decision: Decision, dry_run: bool) -> ReconcileReport:
        call = getattr(self.composer, decision.action.value)
        result: SubmissionResult = call(**decision.args, dry_run=dry_run)

        base = dict(
            match_id=record.match_id,
            state=decision.state,
            action=decision.action,
            reason=decision.reason,
            signature=result.signature,
            error=result.error,
        )

        if result.kind == OutcomeKind.DRY_RUN:
            return ReconcileReport(outcome=ReconcileOutcome.DRY_RUN, **base)

        self.journal.append(
            decision.action.value,
            match_id=record.match_id,
            game_id=record.on_chain_game_id,
            data={
                "result":    result.kind.value,
                "signature": result.signature,
                "error":     result.error,
                "code":      result.code,
                "args":      decision.args,
            },
        )

        if result.kind == OutcomeKind.RETRYABLE:
            return ReconcileReport(outcome=ReconcileOutcome.RETRY, **base)

        if result.kind == OutcomeKind.FATAL:
            issue = SettlementIssue(
                IssueKind.FATAL,
                f"{decision.action.value} rejected by the program",
                result.error or "",
            )
            flagged = self._flag(record, issue, dry_run, ReconcileOutcome.FATAL, decision)
            return replace(flagged, signature=result.signature)

        # SUCCESS or ALREADY_DONE
        changes = dict(decision.patch)
        if record.settlement_issue is not None:
            changes["settlement_issue"] = None
        updated = record
        if changes:
            try:
                updated = self._persist(record, changes)
            except RepositoryConflictError as exc:
                logger.warning("Match %s: %s after %s", record.match_id, exc, decision.action.value)
                return ReconcileReport(outcome=ReconcileOutcome.CONFLICT, **base)

        if decision.pay_out:
            self._pay_out(updated)

        logger.info(
            "Match %s: %s %s", record.match_id, decision.action.value, result.kind.value
        )
        return ReconcileReport(outcome=ReconcileOutcome.APPLIED, **base)

    def _converge(self, record: MatchRecord, decision: Decision, dry_run: bool) -> ReconcileReport:
        report = dict(
            match_id=record.match_id,
            state=decision.state,
            reason=decision.reason,
        )
        if dry_run:
            return ReconcileReport(outcome=ReconcileOutcome.DRY_RUN, **report)

        changes = dict(decision.patch)
        if record.settlement_issue is not None:
            changes["settlement_issue"] = None
        try:
            self._persist(record, changes)
        except RepositoryConflictError:
            return ReconcileReport(outcome=ReconcileOutcome.CONFLICT, **report)

        self.journal.append(
            "converge",
            match_id=record.match_id,
            game_id=record.on_chain_game_id,
            data={"patch": _jsonable(decision.patch), "reason": decision.reason},
        )
        logger.info("Match %s: converged (%s)", record.match_id, decision.reason)
        return ReconcileReport(outcome=ReconcileOutcome.CONVERGED, **report)

    def _flag(
        self,
        record: MatchRecord,
        issue: SettlementIssue,
        dry_run: bool,
        outcome: ReconcileOutcome,
        decision: Optional[Decision] = None,
    ) -> ReconcileReport:
        report = ReconcileReport(
            record.match_id,
            outcome,
            state=decision.state if decision else None,
            action=decision.action if decision else None,
            reason=issue.cause,
            error=issue.detail or None,
            players=tuple(issue.players),
        )
        if dry_run or record.settlement_issue == issue:
            return report

        try:
            self._persist(record, {"settlement_issue": issue})
        except RepositoryConflictError:
            return replace(report, outcome=ReconcileOutcome.CONFLICT)

        self.journal.append(
            issue.kind.value,
            match_id=record.match_id,
            game_id=record.on_chain_game_id,
            data=issue.to_dict(),
        )
        log = logger.error if issue.kind == IssueKind.FATAL else logger.warning
        log("Match %s: %s %s", record.match_id, issue.cause, issue.detail)
        return report

    def _persist(self, record: MatchRecord, changes: Dict[str, Any]) -> MatchRecord:
        result = self.repository.update(
            record.match_id, changes, expected_version=record.version
        )
        if result.conflict:
            raise RepositoryConflictError(record.match_id, record.version)
        return result.record

    def _pay_out(self, record: MatchRecord) -> None:
        plan = payout_plan(record, self.rake_percent, self.tie_fee_percent)
        self.journal.append(
            "payout_planned",
            match_id=record.match_id,
            game_id=record.on_chain_game_id,
            data={"transfers": dict(plan.transfers), "fee": plan.fee},
        )
        if self.payout_hook is None:
            return
        try:
            self.payout_hook(record, plan)
        except Exception:
            # Settled on-chain regardless; the payout service owns retries.
            logger.exception("Match %s: payout hook failed", record.match_id)
