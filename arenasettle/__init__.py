"""
arenasettle/__init__.py

ArenaSettle: escrow settlement and reconciliation for head-to-head
trading matches on Solana.

The off-chain match store decides who won; the on-chain escrow program
holds the stakes. This package keeps the two consistent: it settles
decided matches on-chain, refunds ties and cancellations, closes
finished game accounts, and journals every action it takes.
"""

__version__ = "0.3.0"

from arenasettle.core.config import SettlementConfig
from arenasettle.core.crypto import AuthorityKey
from arenasettle.core.exceptions import (
    ArenaSettleError,
    ChainSubmissionError,
    ConfigError,
    DecodeError,
    KeyLoadError,
)
from arenasettle.core.models import (
    EscrowState,
    MatchRecord,
    MatchStatus,
    Position,
    SettlementIssue,
)
from arenasettle.runtime.context import SettlementContext

__all__ = [
    # Data model
    "EscrowState",
    "MatchRecord",
    "MatchStatus",
    "Position",
    "SettlementIssue",
    # Wiring
    "AuthorityKey",
    "SettlementConfig",
    "SettlementContext",
    # Errors
    "ArenaSettleError",
    "ChainSubmissionError",
    "ConfigError",
    "DecodeError",
    "KeyLoadError",
]
