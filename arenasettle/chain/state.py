"""
Typed reads of on-chain state.

OnChainState turns raw account reads into decoded accounts and builds the
ChainSnapshot the settlement state machine decides on. Absence is a value
(None), not an error: a closed game account and a closed escrow are normal
end states.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from solders.pubkey import Pubkey

from arenasettle.chain.client import ChainClient, token_amount
from arenasettle.chain.codec import (
    GameAccount,
    GameStatus,
    PlatformAccount,
    decode_game,
    decode_platform,
)
from arenasettle.chain.pda import ProgramAddresses


@dataclass(frozen=True)
class ChainSnapshot:
    """
    Fresh view of one game, read immediately before deciding.

    game:            decoded account, or None when it does not exist
    profiles:        player address → profile PDA exists
    escrow_balance:  token amount, or None when the escrow is closed
    """
    game:           Optional[GameAccount] = None
    profiles:       Dict[str, bool] = field(default_factory=dict)
    escrow_balance: Optional[int] = None

    def missing_profiles(self, players: Iterable[str]) -> List[str]:
        return [p for p in players if not self.profiles.get(p, False)]

    @property
    def escrow_empty(self) -> bool:
        return not self.escrow_balance


class OnChainState:

    def __init__(self, client: ChainClient, addresses: ProgramAddresses):
        self.client    = client
        self.addresses = addresses

    def fetch_platform(self) -> Optional[PlatformAccount]:
        info = self.client.get_account(self.addresses.platform())
        return decode_platform(info.data) if info else None

    def fetch_game(self, game_id: int) -> Optional[GameAccount]:
        info = self.client.get_account(self.addresses.game(game_id))
        return decode_game(info.data) if info else None

    def profile_exists(self, player: str) -> bool:
        return self.client.get_account(self.addresses.player_profile(player)) is not None

    def escrow_balance(self, game_id: int) -> Optional[int]:
        info = self.client.get_account(self.addresses.escrow(game_id))
        return token_amount(info.data) if info else None

    def account_lamports(self, pubkey: Pubkey) -> int:
        info = self.client.get_account(pubkey)
        return info.lamports if info else 0

    def snapshot(self, game_id: int, players: Iterable[str]) -> ChainSnapshot:
        """
        Read the game, then only what the decision needs: profiles matter
        while the game is Active, the escrow once the account exists.
        """
        game = self.fetch_game(game_id)
        if game is None:
            return ChainSnapshot()

        profiles: Dict[str, bool] = {}
        if game.status == GameStatus.ACTIVE:
            profiles = {p: self.profile_exists(p) for p in players}

        return ChainSnapshot(
            game=game,
            profiles=profiles,
            escrow_balance=self.escrow_balance(game_id),
        )
