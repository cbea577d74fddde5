"""
Deterministic address derivation for the arena escrow program.

Account PDAs:
    - Platform:      ["platform"]                 → singleton config/counter
    - PlayerProfile: ["player", player_pubkey]    → one per wallet
    - Game:          ["game", game_id_le_u64]     → one per match
    - Escrow:        associated token account of the Game PDA for the mint
                     (owner is off-curve; ATA derivation allows it)

All functions are pure. No RPC.
"""

import struct
from typing import Sequence, Tuple, Union

from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string(
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)

PLATFORM_SEED = b"platform"
PLAYER_SEED   = b"player"
GAME_SEED     = b"game"

PubkeyLike = Union[Pubkey, str]


def as_pubkey(value: PubkeyLike) -> Pubkey:
    if isinstance(value, Pubkey):
        return value
    return Pubkey.from_string(value)


def game_id_seed(game_id: int) -> bytes:
    """8-byte little-endian u64 seed for a game id."""
    if game_id < 0 or game_id > 0xFFFF_FFFF_FFFF_FFFF:
        raise ValueError(f"game_id out of u64 range: {game_id}")
    return struct.pack("<Q", game_id)


def derive_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Find the canonical PDA and bump for seeds under program_id."""
    return Pubkey.find_program_address(list(seeds), program_id)


def associated_token_address(owner: PubkeyLike, mint: PubkeyLike) -> Pubkey:
    """
    Associated token account for (owner, mint).

    Seeds: [owner, token_program, mint] under the ATA program. The owner
    may be a PDA; nothing here requires it to be on the ed25519 curve.
    """
    seeds = [
        bytes(as_pubkey(owner)),
        bytes(TOKEN_PROGRAM_ID),
        bytes(as_pubkey(mint)),
    ]
    address, _ = Pubkey.find_program_address(seeds, ASSOCIATED_TOKEN_PROGRAM_ID)
    return address


class ProgramAddresses:
    """
    Address book for one deployment (program id + escrow mint).

    Pure and deterministic: the same program id and seeds always map to the
    same address. Results are cheap to recompute, so nothing is cached.
    """

    def __init__(self, program_id: PubkeyLike, usdc_mint: PubkeyLike):
        self.program_id = as_pubkey(program_id)
        self.usdc_mint  = as_pubkey(usdc_mint)

    def derive(self, seeds: Sequence[bytes]) -> Tuple[Pubkey, int]:
        return derive_address(seeds, self.program_id)

    def platform(self) -> Pubkey:
        return self.derive([PLATFORM_SEED])[0]

    def player_profile(self, player: PubkeyLike) -> Pubkey:
        return self.derive([PLAYER_SEED, bytes(as_pubkey(player))])[0]

    def game(self, game_id: int) -> Pubkey:
        return self.derive([GAME_SEED, game_id_seed(game_id)])[0]

    def escrow(self, game_id: int) -> Pubkey:
        return associated_token_address(self.game(game_id), self.usdc_mint)

    def token_account(self, owner: PubkeyLike) -> Pubkey:
        return associated_token_address(owner, self.usdc_mint)

    def __repr__(self) -> str:
        return f"ProgramAddresses(program_id={self.program_id}, mint={self.usdc_mint})"


__all__ = [
    "ASSOCIATED_TOKEN_PROGRAM_ID",
    "SYSTEM_PROGRAM_ID",
    "TOKEN_PROGRAM_ID",
    "ProgramAddresses",
    "as_pubkey",
    "associated_token_address",
    "derive_address",
    "game_id_seed",
]
