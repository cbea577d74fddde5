"""
Instruction builders for the escrow program.

Each builder returns a solders Instruction whose account metas follow the
program's #[derive(Accounts)] order exactly. Instruction data is the 8-byte
method discriminator, SHA256("global:<method>")[:8], followed by the
Borsh-encoded arguments.

Builders are pure: they never touch the network.
"""

import hashlib
import struct
from enum import Enum
from typing import List, Optional

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from arenasettle.chain.codec import encode_option_pubkey
from arenasettle.chain.pda import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    ProgramAddresses,
    PubkeyLike,
    as_pubkey,
)


def method_discriminator(method: str) -> bytes:
    return hashlib.sha256(f"global:{method}".encode()).digest()[:8]


class InstructionKind(str, Enum):
    START_GAME          = "start_game"
    END_GAME            = "end_game"
    CANCEL_PENDING_GAME = "cancel_pending_game"
    REFUND_ESCROW       = "refund_escrow"
    CLOSE_GAME          = "close_game"

    @property
    def discriminator(self) -> bytes:
        return method_discriminator(self.value)


# Conservative compute-unit ceilings, fixed per instruction kind.
COMPUTE_UNITS = {
    InstructionKind.START_GAME:          80_000,
    InstructionKind.END_GAME:            40_000,
    InstructionKind.CANCEL_PENDING_GAME: 15_000,
    InstructionKind.REFUND_ESCROW:       40_000,
    InstructionKind.CLOSE_GAME:          30_000,
}


def compute_units_for(kinds: List[InstructionKind]) -> int:
    return sum(COMPUTE_UNITS[k] for k in kinds)


def _w(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=True)


def _r(pubkey: Pubkey, signer: bool = False) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=signer, is_writable=False)


class InstructionBuilder:
    """Builds program instructions for one deployment and authority."""

    def __init__(self, addresses: ProgramAddresses, authority: Pubkey):
        self.addresses = addresses
        self.authority = authority

    @property
    def program_id(self) -> Pubkey:
        return self.addresses.program_id

    def _ix(self, kind: InstructionKind, args: bytes, accounts: List[AccountMeta]) -> Instruction:
        return Instruction(self.program_id, kind.discriminator + args, accounts)

    def start_game(
        self,
        game_id: int,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
        bet_amount: int,
        timeframe_seconds: int,
    ) -> Instruction:
        """
        game_id must be the id the program will assign, platform.total_games + 1.
        The id is not part of the instruction data; it only selects the PDA.
        """
        a = self.addresses
        game = a.game(game_id)
        accounts = [
            _w(a.platform()),
            _w(game),
            _w(a.escrow(game_id)),
            _r(a.usdc_mint),
            _w(self.authority, signer=True),
            _r(as_pubkey(player_one)),
            _r(as_pubkey(player_two)),
            _r(SYSTEM_PROGRAM_ID),
            _r(TOKEN_PROGRAM_ID),
            _r(ASSOCIATED_TOKEN_PROGRAM_ID),
        ]
        args = struct.pack("<QI", bet_amount, timeframe_seconds)
        return self._ix(InstructionKind.START_GAME, args, accounts)

    def end_game(
        self,
        game_id: int,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
        winner: Optional[PubkeyLike],
        player_one_pnl_bps: int,
        player_two_pnl_bps: int,
        is_forfeit: bool,
    ) -> Instruction:
        a = self.addresses
        accounts = [
            _r(a.platform()),
            _w(a.game(game_id)),
            _w(a.player_profile(player_one)),
            _w(a.player_profile(player_two)),
            _r(self.authority, signer=True),
        ]
        args = (
            encode_option_pubkey(None if winner is None else as_pubkey(winner))
            + struct.pack("<qq", player_one_pnl_bps, player_two_pnl_bps)
            + struct.pack("<B", 1 if is_forfeit else 0)
        )
        return self._ix(InstructionKind.END_GAME, args, accounts)

    def cancel_pending_game(self, game_id: int) -> Instruction:
        a = self.addresses
        accounts = [
            _r(a.platform()),
            _w(a.game(game_id)),
            _r(self.authority, signer=True),
        ]
        return self._ix(InstructionKind.CANCEL_PENDING_GAME, b"", accounts)

    def refund_escrow(
        self,
        game_id: int,
        player_one: PubkeyLike,
        player_two: PubkeyLike,
    ) -> Instruction:
        a = self.addresses
        accounts = [
            _w(a.game(game_id)),
            _w(a.escrow(game_id)),
            _w(a.token_account(player_one)),
            _w(a.token_account(player_two)),
            _r(self.authority, signer=True),
            _r(TOKEN_PROGRAM_ID),
        ]
        return self._ix(InstructionKind.REFUND_ESCROW, b"", accounts)

    def close_game(self, game_id: int) -> Instruction:
        a = self.addresses
        accounts = [
            _r(a.platform()),
            _w(a.game(game_id)),
            _w(a.escrow(game_id)),
            _w(self.authority, signer=True),
            _r(TOKEN_PROGRAM_ID),
        ]
        return self._ix(InstructionKind.CLOSE_GAME, b"", accounts)
