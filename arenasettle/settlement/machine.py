"""
Settlement state machine.

decide() maps (MatchRecord, ChainSnapshot) to the single next action that
moves the pair toward a consistent terminal state. It is pure: no reads,
no writes, no clock. The reconciler executes what it returns.

Critical invariants:
- At most one on-chain action per decision
- A record is never told to settle a game that is not Active
- Escrow is only refunded from a Tied or Cancelled account
- Close is only proposed for a terminal account with an empty escrow
- Once converged (settled, no refund wanted), deciding again proposes
  nothing but an optional close
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from arenasettle.chain.codec import GameAccount, GameStatus
from arenasettle.chain.state import ChainSnapshot
from arenasettle.core.models import (
    FINAL_ESCROW_STATES,
    SETTLED_FAMILY,
    EscrowState,
    IssueKind,
    MatchRecord,
    MatchStatus,
    SettlementIssue,
)
from arenasettle.finance.outcome import determine_outcome
from arenasettle.finance.pnl import DEFAULT_TIE_TOLERANCE, roi_to_bps


class SettlementState(str, Enum):
    NEEDS_ON_CHAIN_CREATION    = "needs_on_chain_creation"
    AWAITING_DEPOSITS          = "awaiting_deposits"
    IN_PROGRESS                = "in_progress"
    READY_TO_SETTLE            = "ready_to_settle"
    BLOCKED_ON_MISSING_PROFILE = "blocked_on_missing_profile"
    ALREADY_SETTLED_ON_CHAIN   = "already_settled_on_chain"
    NEEDS_REFUND               = "needs_refund"
    NEEDS_CLOSE                = "needs_close"
    TERMINAL                   = "terminal"


class Action(str, Enum):
    END_GAME            = "end_game"
    CANCEL_PENDING_GAME = "cancel_pending_game"
    REFUND_ESCROW       = "refund_escrow"
    CLOSE_GAME          = "close_game"
    REFUND_AND_CLOSE    = "refund_and_close"


@dataclass(frozen=True)
class Decision:
    """
    state    derived settlement state
    action   program call to make, or None
    args     keyword arguments for the composer call
    patch    repository changes: applied after a successful action, or
             immediately when there is no action
    issue    problem to record against the match
    pay_out  run the payout hook after a successful action
    """
    state:   SettlementState
    action:  Optional[Action] = None
    args:    Dict[str, Any] = field(default_factory=dict)
    patch:   Dict[str, Any] = field(default_factory=dict)
    issue:   Optional[SettlementIssue] = None
    pay_out: bool = False
    reason:  str = ""

    @property
    def missing_players(self) -> Tuple[str, ...]:
        if self.issue is not None and self.issue.kind == IssueKind.MISSING_PREREQUISITE:
            return tuple(self.issue.players)
        return ()

    @property
    def converges_without_tx(self) -> bool:
        return self.action is None and bool(self.patch)


def wants_refund(record: MatchRecord) -> bool:
    """Escrow should go back to the players and has not yet."""
    if record.escrow_state in FINAL_ESCROW_STATES:
        return False
    if record.status == MatchStatus.CANCELLED:
        return True
    if record.escrow_state == EscrowState.REFUND_FAILED:
        return True
    return record.status == MatchStatus.TIED and record.on_chain_settled


def is_converged(record: MatchRecord) -> bool:
    return record.on_chain_settled and not wants_refund(record)


# ─────────────────────────────────────────────────────────────
# Branches
# ─────────────────────────────────────────────────────────────

def _players_match(record: MatchRecord, game: GameAccount) -> bool:
    return (
        str(game.player_one) == record.player1
        and str(game.player_two) == record.player2
    )


def _anomaly(cause: str, detail: str = "") -> Decision:
    return Decision(
        SettlementState.TERMINAL,
        issue=SettlementIssue(IssueKind.ANOMALY, cause, detail),
        reason=cause,
    )


def _blocked(missing) -> Decision:
    missing = tuple(missing)
    return Decision(
        SettlementState.BLOCKED_ON_MISSING_PROFILE,
        issue=SettlementIssue(
            IssueKind.MISSING_PREREQUISITE,
            "Player profile not created on-chain",
            players=missing,
        ),
        reason=f"missing profile(s): {', '.join(missing)}",
    )


def _end_game_args(record: MatchRecord, tie: bool, forfeit: bool) -> Dict[str, Any]:
    return {
        "game_id":            record.on_chain_game_id,
        "player_one":         record.player1,
        "player_two":         record.player2,
        "winner":             None if tie else record.winner,
        "player_one_pnl_bps": roi_to_bps(record.player1_roi),
        "player_two_pnl_bps": roi_to_bps(record.player2_roi),
        "is_forfeit":         forfeit,
    }


def _outcome_mismatch(record: MatchRecord, tie_tolerance: float) -> Optional[str]:
    """
    Compare a tied or completed record against its own ROIs. Forfeits are
    decided by the forfeit, not by ROI, and are not checked.
    """
    if record.status not in (MatchStatus.TIED, MatchStatus.COMPLETED):
        return None
    outcome = determine_outcome(
        record.player1, record.player2,
        record.player1_roi, record.player2_roi,
        tie_tolerance,
    )
    if outcome.status != record.status:
        return f"ROIs say {outcome.status.value}"
    if outcome.winner != record.winner:
        return f"ROIs name {outcome.winner} as winner"
    return None


def _settle(record: MatchRecord, snapshot: ChainSnapshot, tie_tolerance: float) -> Decision:
    """Off-chain outcome decided, game Active on-chain."""
    missing = snapshot.missing_profiles(record.players)
    if missing:
        return _blocked(missing)

    tie = record.status == MatchStatus.TIED
    if not tie and not record.winner:
        return _anomaly(f"Match is {record.status.value} but has no winner")

    mismatch = _outcome_mismatch(record, tie_tolerance)
    if mismatch:
        return _anomaly(
            "Recorded outcome disagrees with player ROIs",
            f"status {record.status.value}, {mismatch}",
        )

    return Decision(
        SettlementState.READY_TO_SETTLE,
        action=Action.END_GAME,
        args=_end_game_args(record, tie, record.status == MatchStatus.FORFEITED),
        patch={
            "on_chain_settled": True,
            "escrow_state":     EscrowState.SETTLEMENT_PENDING,
        },
        pay_out=not tie,
        reason=f"end_game as {record.status.value}",
    )


def _refunded_state(game: GameAccount) -> EscrowState:
    """Deposit flags survive refund_escrow, so a replay sees the same count."""
    if game.deposit_count == 1:
        return EscrowState.PARTIAL_REFUND
    return EscrowState.REFUNDED


def _refund(record: MatchRecord, snapshot: ChainSnapshot) -> Decision:
    game = snapshot.game

    if game is None:
        return Decision(
            SettlementState.ALREADY_SETTLED_ON_CHAIN,
            patch={"on_chain_settled": True, "escrow_state": EscrowState.REFUNDED},
            reason="game account closed; nothing left to refund",
        )

    if game.status == GameStatus.PENDING:
        return Decision(
            SettlementState.NEEDS_REFUND,
            action=Action.CANCEL_PENDING_GAME,
            args={"game_id": record.on_chain_game_id},
            reason="cancel pending game before refund",
        )

    if game.status == GameStatus.ACTIVE:
        missing = snapshot.missing_profiles(record.players)
        if missing:
            return _blocked(missing)
        return Decision(
            SettlementState.NEEDS_REFUND,
            action=Action.END_GAME,
            args=_end_game_args(record, tie=True, forfeit=False),
            reason="end active game as a tie before refund",
        )

    if game.status.is_refundable:
        refunded = _refunded_state(game)
        if snapshot.escrow_empty:
            return Decision(
                SettlementState.ALREADY_SETTLED_ON_CHAIN,
                patch={"on_chain_settled": True, "escrow_state": refunded},
                reason="escrow already empty",
            )
        return Decision(
            SettlementState.NEEDS_REFUND,
            action=Action.REFUND_ESCROW,
            args={
                "game_id":    record.on_chain_game_id,
                "player_one": str(game.player_one),
                "player_two": str(game.player_two),
            },
            patch={"on_chain_settled": True, "escrow_state": refunded},
            reason=f"refund {snapshot.escrow_balance} from {game.status.name.lower()} game",
        )

    return _anomaly(
        "Refund wanted but the game has a winner on-chain",
        f"on-chain status {game.status.name}",
    )


def evaluate_close(
    game: Optional[GameAccount],
    escrow_balance: Optional[int],
    allow_refund_and_close: bool = False,
) -> Decision:
    """
    Close is only possible for a terminal account whose escrow exists and
    is empty. A refundable account with funds may be refunded and closed in
    one transaction, which only the operator sweep is allowed to do.
    """
    if game is None:
        return Decision(SettlementState.TERMINAL, reason="game account closed")
    if game.status == GameStatus.PENDING:
        return Decision(SettlementState.AWAITING_DEPOSITS)
    if game.status == GameStatus.ACTIVE:
        return Decision(SettlementState.IN_PROGRESS)

    if escrow_balance == 0:
        return Decision(
            SettlementState.NEEDS_CLOSE,
            action=Action.CLOSE_GAME,
            args={"game_id": game.game_id},
            reason="terminal game with empty escrow",
        )
    if escrow_balance is None:
        return _anomaly(
            "Escrow token account closed but game account still open",
            f"game {game.game_id}",
        )
    if game.status.is_refundable:
        if not allow_refund_and_close:
            return _anomaly(
                "Refundable escrow still funded after refund",
                f"game {game.game_id} balance {escrow_balance}",
            )
        return Decision(
            SettlementState.NEEDS_REFUND,
            action=Action.REFUND_AND_CLOSE,
            args={
                "game_id":    game.game_id,
                "player_one": str(game.player_one),
                "player_two": str(game.player_two),
            },
            reason=f"refund {escrow_balance} and close",
        )
    return _anomaly(
        "Unclaimed prize in escrow",
        f"game {game.game_id} ({game.status.name}) balance {escrow_balance}",
    )


# ─────────────────────────────────────────────────────────────
# Entry point
# ─────────────────────────────────────────────────────────────

def decide(
    record: MatchRecord,
    snapshot: ChainSnapshot,
    tie_tolerance: float = DEFAULT_TIE_TOLERANCE,
) -> Decision:
    if record.on_chain_game_id is None:
        if record.status == MatchStatus.CANCELLED:
            return Decision(
                SettlementState.TERMINAL,
                reason="cancelled before an on-chain game existed",
            )
        return Decision(
            SettlementState.NEEDS_ON_CHAIN_CREATION,
            reason="no on-chain game id",
        )

    game = snapshot.game

    if record.status in (MatchStatus.PENDING_DEPOSITS, MatchStatus.ACTIVE):
        if game is not None and game.status == GameStatus.ACTIVE:
            return Decision(SettlementState.IN_PROGRESS)
        return Decision(SettlementState.AWAITING_DEPOSITS)

    if game is not None and not _players_match(record, game):
        return _anomaly(
            "On-chain game belongs to different players",
            f"game {record.on_chain_game_id}",
        )

    refund = wants_refund(record)

    if record.status in SETTLED_FAMILY:
        if game is not None and game.status == GameStatus.ACTIVE:
            if refund:
                return _refund(record, snapshot)
            return _settle(record, snapshot, tie_tolerance)

        if not record.on_chain_settled:
            if game is None:
                patch: Dict[str, Any] = {"on_chain_settled": True}
                if refund:
                    patch["escrow_state"] = EscrowState.REFUNDED
                return Decision(
                    SettlementState.ALREADY_SETTLED_ON_CHAIN,
                    patch=patch,
                    reason="game account already closed",
                )
            if game.status == GameStatus.PENDING:
                return Decision(
                    SettlementState.AWAITING_DEPOSITS,
                    reason="outcome decided but deposits never completed",
                )
            if refund:
                return _refund(record, snapshot)
            return Decision(
                SettlementState.ALREADY_SETTLED_ON_CHAIN,
                patch={"on_chain_settled": True},
                reason=f"already {game.status.name.lower()} on-chain",
            )

    if refund:
        return _refund(record, snapshot)

    # Escrow already final off-chain; only the settled flag can lag.
    if not record.on_chain_settled:
        if game is None:
            return Decision(
                SettlementState.ALREADY_SETTLED_ON_CHAIN,
                patch={"on_chain_settled": True},
                reason="game account already closed",
            )
        if game.status.is_terminal and snapshot.escrow_balance == 0:
            return Decision(
                SettlementState.ALREADY_SETTLED_ON_CHAIN,
                patch={"on_chain_settled": True},
                reason=f"already {game.status.name.lower()} on-chain",
            )

    return evaluate_close(game, snapshot.escrow_balance)
