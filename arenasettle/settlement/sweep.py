"""
Ledger sweep: walks every game account the program has created.

For ids 0..platform.total_games (inclusive) each still-open account is
classified:

    active            Pending or Active, left alone
    closeable         terminal, escrow empty          → close_game
    refund_and_close  Tied/Cancelled, escrow funded   → refund_and_close
    anomaly           anything the engine must not touch automatically
    unreadable        the read failed; try again on the next sweep

Accounts with no off-chain MatchRecord are reported as orphans. Reads are
spaced by delay_seconds.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from arenasettle.core.exceptions import ChainSubmissionError, ConfigError, DecodeError
from arenasettle.core.log import get_logger
from arenasettle.core.models import FINAL_ESCROW_STATES, EscrowState
from arenasettle.core.time import unix_to_timestamp
from arenasettle.ledger.journal import NullJournal
from arenasettle.settlement.machine import Action, SettlementState, evaluate_close

logger = get_logger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000


class SweepCategory(str, Enum):
    ACTIVE           = "active"
    CLOSEABLE        = "closeable"
    REFUND_AND_CLOSE = "refund_and_close"
    ANOMALY          = "anomaly"
    UNREADABLE       = "unreadable"


@dataclass
class SweepEntry:
    game_id:        int
    category:       SweepCategory
    status:         Optional[str] = None
    escrow_balance: Optional[int] = None
    rent_lamports:  int = 0
    orphan:         bool = False
    reason:         str = ""
    result:         Optional[str] = None
    signature:      Optional[str] = None
    settled_at:     Optional[str] = None
    player_one:     Optional[str] = None
    player_two:     Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "game_id":        self.game_id,
            "category":       self.category.value,
            "status":         self.status,
            "settled_at":     self.settled_at,
            "escrow_balance": self.escrow_balance,
            "rent_lamports":  self.rent_lamports,
            "orphan":         self.orphan,
            "reason":         self.reason,
            "result":         self.result,
            "signature":      self.signature,
        }


@dataclass
class SweepReport:
    total_games:    int = 0
    already_closed: int = 0
    entries:        List[SweepEntry] = field(default_factory=list)
    dry_run:        bool = True

    def by_category(self, category: SweepCategory) -> List[SweepEntry]:
        return [e for e in self.entries if e.category == category]

    @property
    def orphans(self) -> List[SweepEntry]:
        return [e for e in self.entries if e.orphan]

    @property
    def recoverable_lamports(self) -> int:
        return sum(
            e.rent_lamports for e in self.entries
            if e.category in (SweepCategory.CLOSEABLE, SweepCategory.REFUND_AND_CLOSE)
        )

    def counts(self) -> Dict[str, int]:
        return {c.value: len(self.by_category(c)) for c in SweepCategory}

    def to_dict(self) -> dict:
        return {
            "dry_run":              self.dry_run,
            "total_games":          self.total_games,
            "already_closed":       self.already_closed,
            "counts":               self.counts(),
            "orphans":              [e.game_id for e in self.orphans],
            "recoverable_lamports": self.recoverable_lamports,
            "recoverable_sol":      self.recoverable_lamports / LAMPORTS_PER_SOL,
            "entries":              [e.to_dict() for e in self.entries],
        }


_ACTION_CATEGORY = {
    Action.CLOSE_GAME:       SweepCategory.CLOSEABLE,
    Action.REFUND_AND_CLOSE: SweepCategory.REFUND_AND_CLOSE,
}


class LedgerSweeper:

    def __init__(
        self,
        chain_state,
        composer,
        repository,
        journal=None,
        delay_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.chain_state   = chain_state
        self.composer      = composer
        self.repository    = repository
        self.journal       = journal or NullJournal()
        self.delay_seconds = delay_seconds
        self._sleep        = sleep

    # ── Scan ─────────────────────────────────────────────────

    def _known_game_ids(self) -> Dict[int, str]:
        return {
            r.on_chain_game_id: r.match_id
            for r in self.repository.all()
            if r.on_chain_game_id is not None
        }

    def _classify(self, game_id: int, known: Dict[int, str]) -> Optional[SweepEntry]:
        """None when the game account no longer exists."""
        state = self.chain_state
        try:
            game = state.fetch_game(game_id)
            if game is None:
                return None
            balance = state.escrow_balance(game_id)
            addresses = state.addresses
            rent = (
                state.account_lamports(addresses.game(game_id))
                + state.account_lamports(addresses.escrow(game_id))
            )
        except ChainSubmissionError as exc:
            return SweepEntry(game_id, SweepCategory.UNREADABLE, reason=str(exc))
        except (DecodeError, ValueError) as exc:
            return SweepEntry(
                game_id, SweepCategory.ANOMALY,
                reason=f"malformed account: {exc}", orphan=game_id not in known,
            )

        decision = evaluate_close(game, balance, allow_refund_and_close=True)
        if decision.issue is not None:
            category = SweepCategory.ANOMALY
        elif decision.state in (SettlementState.AWAITING_DEPOSITS, SettlementState.IN_PROGRESS):
            category = SweepCategory.ACTIVE
        else:
            category = _ACTION_CATEGORY[decision.action]

        return SweepEntry(
            game_id=game_id,
            category=category,
            status=game.status.name,
            escrow_balance=balance,
            rent_lamports=rent,
            orphan=game_id not in known,
            reason=decision.issue.cause if decision.issue else decision.reason,
            settled_at=unix_to_timestamp(game.settled_at),
            player_one=str(game.player_one),
            player_two=str(game.player_two),
        )

    def scan(self) -> SweepReport:
        platform = self.chain_state.fetch_platform()
        if platform is None:
            raise ConfigError(
                "Platform account not found",
                {"program_id": str(self.chain_state.addresses.program_id)},
            )

        known = self._known_game_ids()
        report = SweepReport(total_games=platform.total_games)
        logger.info("Sweeping game ids 0..%d", platform.total_games)

        for game_id in range(0, platform.total_games + 1):
            if game_id and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)
            entry = self._classify(game_id, known)
            if entry is None:
                report.already_closed += 1
                continue
            if entry.category == SweepCategory.ANOMALY:
                logger.warning("Game %d: %s", game_id, entry.reason)
            report.entries.append(entry)
        return report

    # ── Sweep ────────────────────────────────────────────────

    def sweep(self, dry_run: bool = True) -> SweepReport:
        report = self.scan()
        report.dry_run = dry_run
        if dry_run:
            return report

        known = self._known_game_ids()
        for entry in report.entries:
            if entry.category == SweepCategory.CLOSEABLE:
                result = self.composer.close_game(entry.game_id)
            elif entry.category == SweepCategory.REFUND_AND_CLOSE:
                result = self.composer.refund_and_close(
                    entry.game_id, entry.player_one, entry.player_two
                )
            else:
                continue

            entry.result = result.kind.value
            entry.signature = result.signature
            self.journal.append(
                f"sweep_{entry.category.value}",
                match_id=known.get(entry.game_id),
                game_id=entry.game_id,
                data={"result": result.kind.value, "signature": result.signature,
                      "error": result.error, "rent_lamports": entry.rent_lamports},
            )
            if result.ok and entry.category == SweepCategory.REFUND_AND_CLOSE:
                self._mark_refunded(known.get(entry.game_id))
        return report

    def _mark_refunded(self, match_id: Optional[str]) -> None:
        if match_id is None:
            return
        record = self.repository.get(match_id)
        if record is None or record.escrow_state in FINAL_ESCROW_STATES:
            return
        result = self.repository.update(
            match_id,
            {"escrow_state": EscrowState.REFUNDED, "on_chain_settled": True},
            expected_version=record.version,
        )
        if result.conflict:
            logger.warning("Match %s changed during sweep; left for the next pass", match_id)
