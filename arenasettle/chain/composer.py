"""
Builds, signs and submits program calls.

Every transaction is:

    [compute unit limit] [compute unit price] [program instruction(s)]

signed by the authority alone. The unit limit is the sum of the fixed
per-kind ceilings; the unit price comes from the fee estimator, except in
a dry run, which prices at the fixed dry_run_fee and makes no RPC call.

Public calls never raise for cluster rejections: ChainSubmissionError from
the RPC seam is converted into a tagged SubmissionResult here, and only the
reconciler decides what a RETRYABLE or FATAL result means for a match.
"""

from typing import List, Optional, Sequence

from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from arenasettle.chain.client import ChainClient
from arenasettle.chain.fees import FixedFeeEstimator
from arenasettle.chain.instructions import (
    InstructionBuilder,
    InstructionKind,
    compute_units_for,
)
from arenasettle.chain.outcome import OutcomeKind, SubmissionResult
from arenasettle.chain.pda import PubkeyLike, as_pubkey
from arenasettle.chain.state import OnChainState
from arenasettle.core.crypto import AuthorityKey
from arenasettle.core.exceptions import ChainSubmissionError, DecodeError
from arenasettle.core.log import get_logger

logger = get_logger(__name__)


def writable_accounts(instructions: Sequence[Instruction]) -> List[Pubkey]:
    seen: List[Pubkey] = []
    for ix in instructions:
        for meta in ix.accounts:
            if meta.is_writable and meta.pubkey not in seen:
                seen.append(meta.pubkey)
    return seen


class TransactionComposer:

    def __init__(
        self,
        client: ChainClient,
        state: OnChainState,
        authority: AuthorityKey,
        fee_estimator,
        dry_run_fee: int = 0,
    ):
        self.client       = client
        self.state        = state
        self.authority    = authority
        self.fees         = fee_estimator
        self.dry_run_fees = FixedFeeEstimator(dry_run_fee)
        self.builder      = InstructionBuilder(state.addresses, authority.pubkey)

    # ── Transaction assembly ─────────────────────────────────

    def budget_instructions(
        self,
        kinds: Sequence[InstructionKind],
        program_ixs: Sequence[Instruction],
        fees=None,
    ) -> List[Instruction]:
        units = compute_units_for(list(kinds))
        price = (fees or self.fees).estimate(writable_accounts(program_ixs))
        return [set_compute_unit_limit(units), set_compute_unit_price(price)]

    def build_transaction(
        self,
        kinds: Sequence[InstructionKind],
        program_ixs: Sequence[Instruction],
        blockhash: Hash,
        fees=None,
    ) -> Transaction:
        instructions = self.budget_instructions(kinds, program_ixs, fees) + list(program_ixs)
        message = Message.new_with_blockhash(
            instructions, self.authority.pubkey, blockhash
        )
        return Transaction([self.authority.keypair], message, blockhash)

    def _submit(
        self,
        kinds: Sequence[InstructionKind],
        program_ixs: Sequence[Instruction],
        dry_run: bool,
        game_id: Optional[int] = None,
    ) -> SubmissionResult:
        label = "+".join(k.value for k in kinds)

        if dry_run:
            tx = self.build_transaction(
                kinds, program_ixs, Hash.default(), fees=self.dry_run_fees
            )
            logger.info("[dry-run] %s game=%s built, not sent", label, game_id)
            return SubmissionResult(
                OutcomeKind.DRY_RUN,
                signature=str(tx.signatures[0]),
                game_id=game_id,
            )

        try:
            recent = self.client.latest_blockhash()
            tx = self.build_transaction(kinds, program_ixs, recent.blockhash)
            signature = self.client.send_and_confirm(
                tx, last_valid_block_height=recent.last_valid_block_height
            )
        except ChainSubmissionError as exc:
            result = SubmissionResult.from_error(exc)
            logger.warning(
                "%s game=%s → %s: %s", label, game_id, result.kind.value, exc.raw_error
            )
            return SubmissionResult(
                result.kind, error=result.error, code=result.code, game_id=game_id
            )

        logger.info("%s game=%s confirmed: %s", label, game_id, signature)
        return SubmissionResult.success(signature, game_id=game_id)

    # ── Program calls ────────────────────────────────────────

    def start_game(
        self,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
        bet_amount: int,
        timeframe_seconds: int,
        dry_run: bool = False,
    ) -> SubmissionResult:
        """
        Create the on-chain game. The id is predicted from the platform
        counter right before submission and checked after confirmation.
        """
        try:
            platform = self.state.fetch_platform()
        except ChainSubmissionError as exc:
            return SubmissionResult.from_error(exc)
        except DecodeError as exc:
            return SubmissionResult(OutcomeKind.FATAL, error=str(exc))
        if platform is None:
            return SubmissionResult(OutcomeKind.FATAL, error="Platform account not found")

        game_id = platform.total_games + 1
        ix = self.builder.start_game(
            game_id, player_one, player_two, bet_amount, timeframe_seconds
        )
        result = self._submit([InstructionKind.START_GAME], [ix], dry_run, game_id)
        if dry_run or not result.ok:
            return result

        try:
            game = self.state.fetch_game(game_id)
        except (ChainSubmissionError, DecodeError) as exc:
            logger.warning("start_game game=%s could not be verified: %s", game_id, exc)
            return SubmissionResult(
                OutcomeKind.RETRYABLE,
                signature=result.signature,
                error=str(exc),
                game_id=game_id,
            )
        if game is None or not game.has_players(as_pubkey(player_one), as_pubkey(player_two)):
            return SubmissionResult(
                OutcomeKind.FATAL,
                signature=result.signature,
                error=f"Game id collision: account {game_id} does not hold these players",
                game_id=game_id,
            )
        return result

    def end_game(
        self,
        game_id: int,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
        winner: Optional[PubkeyLike],
        player_one_pnl_bps: int,
        player_two_pnl_bps: int,
        is_forfeit: bool,
        dry_run: bool = False,
    ) -> SubmissionResult:
        ix = self.builder.end_game(
            game_id, player_one, player_two, winner,
            player_one_pnl_bps, player_two_pnl_bps, is_forfeit,
        )
        return self._submit([InstructionKind.END_GAME], [ix], dry_run, game_id)

    def cancel_pending_game(self, game_id: int, dry_run: bool = False) -> SubmissionResult:
        ix = self.builder.cancel_pending_game(game_id)
        return self._submit([InstructionKind.CANCEL_PENDING_GAME], [ix], dry_run, game_id)

    def refund_escrow(
        self,
        game_id: int,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
        dry_run: bool = False,
    ) -> SubmissionResult:
        ix = self.builder.refund_escrow(game_id, player_one, player_two)
        return self._submit([InstructionKind.REFUND_ESCROW], [ix], dry_run, game_id)

    def close_game(self, game_id: int, dry_run: bool = False) -> SubmissionResult:
        ix = self.builder.close_game(game_id)
        return self._submit([InstructionKind.CLOSE_GAME], [ix], dry_run, game_id)

    def refund_and_close(
        self,
        game_id: int,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
        dry_run: bool = False,
    ) -> SubmissionResult:
        """Refund then close in one transaction; both land or neither does."""
        ixs = [
            self.builder.refund_escrow(game_id, player_one, player_two),
            self.builder.close_game(game_id),
        ]
        kinds = [InstructionKind.REFUND_ESCROW, InstructionKind.CLOSE_GAME]
        return self._submit(kinds, ixs, dry_run, game_id)
