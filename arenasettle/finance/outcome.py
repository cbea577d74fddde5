"""
Match outcome and payout planning.

determine_outcome() judges a finished match from both players' ROI: tie
flag and winner out. The settlement decision uses it to check that a
record's status and winner agree with its ROIs before anything is written
on-chain. payout_plan() is what the payout hook pays once the game is
settled. Amounts are integers in the smallest unit of the escrow mint.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

from arenasettle.core.models import MatchRecord, MatchStatus
from arenasettle.finance.pnl import (
    DEFAULT_TIE_TOLERANCE,
    is_tie,
    round_half_up,
)


@dataclass(frozen=True)
class MatchOutcome:
    player1_roi: float
    player2_roi: float
    tied:        bool
    winner:      Optional[str]

    @property
    def status(self) -> MatchStatus:
        return MatchStatus.TIED if self.tied else MatchStatus.COMPLETED


def determine_outcome(
    player1: str,
    player2: str,
    player1_roi: float,
    player2_roi: float,
    tolerance: float = DEFAULT_TIE_TOLERANCE,
) -> MatchOutcome:
    if is_tie(player1_roi, player2_roi, tolerance):
        return MatchOutcome(player1_roi, player2_roi, True, None)
    winner = player1 if player1_roi > player2_roi else player2
    return MatchOutcome(player1_roi, player2_roi, False, winner)


@dataclass(frozen=True)
class PayoutPlan:
    transfers: Dict[str, int] = field(default_factory=dict)
    fee:       int = 0

    @property
    def total(self) -> int:
        return sum(self.transfers.values()) + self.fee


def payout_plan(record: MatchRecord, rake: float, tie_fee: float) -> PayoutPlan:
    """
    completed / forfeited   winner gets 2 × bet × (1 − rake)
    tied                    each player gets bet × (1 − tie_fee / 2)
    cancelled               each player gets the bet back
    """
    bet = record.bet_amount
    pot = 2 * bet

    if record.status in (MatchStatus.COMPLETED, MatchStatus.FORFEITED):
        if not record.winner:
            raise ValueError(f"Match {record.match_id} has no winner to pay")
        payout = round_half_up(pot * (1 - rake))
        return PayoutPlan({record.winner: payout}, pot - payout)

    if record.status == MatchStatus.TIED:
        each = round_half_up(bet * (1 - tie_fee / 2))
        return PayoutPlan({record.player1: each, record.player2: each}, pot - 2 * each)

    if record.status == MatchStatus.CANCELLED:
        return PayoutPlan({record.player1: bet, record.player2: bet}, 0)

    raise ValueError(f"Match {record.match_id} is not finished: {record.status.value}")
