"""
arenasettle/core/models.py

Off-chain data model.

MatchRecord is owned by the match repository. This engine mutates only the
settlement fields (on_chain_settled, escrow_state, settlement_issue) and
never deletes a record. Serialized field names are camelCase so records
round-trip through the document store unchanged.

on_chain_game_id is set once and never reassigned: the mapping between a
MatchRecord and its OnChainGameAccount is 1:1.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional


# ─────────────────────────────────────────────────────────────
# Vocabularies
# ─────────────────────────────────────────────────────────────

class MatchStatus(str, Enum):
    PENDING_DEPOSITS = "pending_deposits"
    ACTIVE           = "active"
    TIED             = "tied"
    COMPLETED        = "completed"
    FORFEITED        = "forfeited"
    CANCELLED        = "cancelled"


class EscrowState(str, Enum):
    AWAITING_DEPOSITS  = "awaiting_deposits"
    LOCKED             = "locked"
    SETTLEMENT_PENDING = "settlement_pending"
    REFUND_FAILED      = "refund_failed"
    REFUNDED           = "refunded"
    PAYOUT_SENT        = "payout_sent"
    PARTIAL_REFUND     = "partial_refund"


# Off-chain statuses whose outcome is decided and must be mirrored on-chain.
SETTLED_FAMILY = frozenset({
    MatchStatus.TIED,
    MatchStatus.COMPLETED,
    MatchStatus.FORFEITED,
})

# Escrow states that imply a zero escrow token balance.
FINAL_ESCROW_STATES = frozenset({
    EscrowState.REFUNDED,
    EscrowState.PAYOUT_SENT,
    EscrowState.PARTIAL_REFUND,
})


class IssueKind(str, Enum):
    MISSING_PREREQUISITE = "missing_prerequisite"
    FATAL                = "fatal"
    CONFLICT             = "conflict"
    ANOMALY              = "anomaly"


# ─────────────────────────────────────────────────────────────
# SettlementIssue
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SettlementIssue:
    """
    Why a match is stuck, in operator terms.

    cause is a fixed human-readable sentence; detail carries the raw
    cluster error or other diagnostic text.
    """
    kind:    IssueKind
    cause:   str
    detail:  str = ""
    players: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind":    self.kind.value,
            "cause":   self.cause,
            "detail":  self.detail,
            "players": list(self.players),
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "SettlementIssue":
        return SettlementIssue(
            kind=IssueKind(data["kind"]),
            cause=data.get("cause", ""),
            detail=data.get("detail", ""),
            players=tuple(data.get("players") or ()),
        )


# ─────────────────────────────────────────────────────────────
# MatchRecord
# ─────────────────────────────────────────────────────────────

_CAMEL = {
    "match_id":          "matchId",
    "player1":           "player1",
    "player2":           "player2",
    "player1_tag":       "player1Tag",
    "player2_tag":       "player2Tag",
    "bet_amount":        "betAmount",
    "duration_seconds":  "durationSeconds",
    "start_time":        "startTime",
    "end_time":          "endTime",
    "status":            "status",
    "on_chain_game_id":  "onChainGameId",
    "on_chain_settled":  "onChainSettled",
    "escrow_state":      "escrowState",
    "winner":            "winner",
    "player1_roi":       "player1Roi",
    "player2_roi":       "player2Roi",
    "version":           "version",
    "settlement_issue":  "settlementIssue",
}


@dataclass(frozen=True)
class MatchRecord:
    match_id:         str
    player1:          str
    player2:          str
    bet_amount:       int
    status:           MatchStatus
    escrow_state:     EscrowState = EscrowState.AWAITING_DEPOSITS
    player1_tag:      str = ""
    player2_tag:      str = ""
    duration_seconds: int = 900
    start_time:       Optional[int] = None
    end_time:         Optional[int] = None
    on_chain_game_id: Optional[int] = None
    on_chain_settled: bool = False
    winner:           Optional[str] = None
    player1_roi:      float = 0.0
    player2_roi:      float = 0.0
    version:          int = 0
    settlement_issue: Optional[SettlementIssue] = None

    @property
    def players(self) -> List[str]:
        return [self.player1, self.player2]

    @property
    def is_flagged_fatal(self) -> bool:
        return (
            self.settlement_issue is not None
            and self.settlement_issue.kind == IssueKind.FATAL
        )

    def with_changes(self, **changes: Any) -> "MatchRecord":
        """Return a copy with the given Python-named fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, SettlementIssue):
                value = value.to_dict()
            out[_CAMEL[f.name]] = value
        return out

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "MatchRecord":
        kwargs: Dict[str, Any] = {}
        for py_name, wire_name in _CAMEL.items():
            if wire_name in data:
                kwargs[py_name] = data[wire_name]
        kwargs["status"] = MatchStatus(kwargs["status"])
        if "escrow_state" in kwargs:
            kwargs["escrow_state"] = EscrowState(kwargs["escrow_state"])
        if kwargs.get("settlement_issue"):
            kwargs["settlement_issue"] = SettlementIssue.from_dict(
                kwargs["settlement_issue"]
            )
        else:
            kwargs["settlement_issue"] = None
        return MatchRecord(**kwargs)


# Python field names a repository update may touch.
MATCH_FIELDS = frozenset(_CAMEL)


# ─────────────────────────────────────────────────────────────
# Position (input to the financial calculators)
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Position:
    entry_price: float
    is_long:     bool
    size:        float
    leverage:    float = 1.0
    exit_price:  Optional[float] = None
    asset:       str = ""
