"""
arenasettle chain layer

Everything that knows the escrow program's byte layout or talks to the
cluster:
- codec / pda        pure layout and address derivation
- instructions       pure instruction builders
- client / state     RPC reads and the submission seam
- composer           fee-aware transaction assembly and submission
"""

from arenasettle.chain.codec import (
    AccountKind,
    GameAccount,
    GameStatus,
    PlatformAccount,
    decode,
    encode,
)
from arenasettle.chain.composer import TransactionComposer
from arenasettle.chain.outcome import OutcomeKind, SubmissionResult
from arenasettle.chain.pda import ProgramAddresses
from arenasettle.chain.state import ChainSnapshot, OnChainState

__all__ = [
    "AccountKind",
    "ChainSnapshot",
    "GameAccount",
    "GameStatus",
    "OnChainState",
    "OutcomeKind",
    "PlatformAccount",
    "ProgramAddresses",
    "SubmissionResult",
    "TransactionComposer",
    "decode",
    "encode",
]
