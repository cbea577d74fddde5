"""
Binary layout of the escrow program's accounts.

Every account starts with an 8-byte Anchor discriminator,
SHA256("account:<Name>")[:8], followed by its fields in declared order,
little-endian and fixed width. An Option<Pubkey> is one tag byte
(0 = None, 1 = Some) followed by 32 key bytes only when the tag is 1.

Platform layout (after discriminator):
    32  authority
     2  fee_bps         (u16)
    32  treasury
     8  total_games     (u64)
     8  total_volume    (u64)
     1  bump

Game layout (after discriminator):
    8   game_id              (u64)
    32  player_one
    32  player_two
    8   bet_amount           (u64)
    4   timeframe_seconds    (u32)
    32  escrow_token_account
    1   status               (GameStatus)
    1+  winner               (Option<Pubkey>: 1 or 33 bytes)
    8   player_one_pnl       (i64, basis points)
    8   player_two_pnl       (i64, basis points)
    1   player_one_deposited (bool)
    1   player_two_deposited (bool)
    8   start_time           (i64)
    8   end_time             (i64)
    8   settled_at           (i64)
    1   bump

Accounts are allocated at their maximum size, so trailing bytes after the
last field are legal and ignored.
"""

import hashlib
import struct
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Optional, Tuple, Union

from solders.pubkey import Pubkey

from arenasettle.core.exceptions import DecodeError


DISCRIMINATOR_LEN = 8


def account_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"account:{name}".encode()).digest()[:DISCRIMINATOR_LEN]


class AccountKind(Enum):
    PLATFORM = "Platform"
    GAME     = "Game"

    @property
    def discriminator(self) -> bytes:
        return account_discriminator(self.value)


PLATFORM_DISC = AccountKind.PLATFORM.discriminator
GAME_DISC     = AccountKind.GAME.discriminator


class GameStatus(IntEnum):
    PENDING   = 0
    ACTIVE    = 1
    SETTLED   = 2
    CANCELLED = 3
    TIED      = 4
    FORFEITED = 5

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_refundable(self) -> bool:
        return self in REFUNDABLE_STATUSES


TERMINAL_STATUSES = frozenset({
    GameStatus.SETTLED,
    GameStatus.CANCELLED,
    GameStatus.TIED,
    GameStatus.FORFEITED,
})

# Escrow may be returned to depositors only from these.
REFUNDABLE_STATUSES = frozenset({GameStatus.TIED, GameStatus.CANCELLED})


@dataclass(frozen=True)
class PlatformAccount:
    authority:    Pubkey
    fee_bps:      int
    treasury:     Pubkey
    total_games:  int
    total_volume: int
    bump:         int


@dataclass(frozen=True)
class GameAccount:
    game_id:              int
    player_one:           Pubkey
    player_two:           Pubkey
    bet_amount:           int
    timeframe_seconds:    int
    escrow_token_account: Pubkey
    status:               GameStatus
    winner:               Optional[Pubkey]
    player_one_pnl:       int
    player_two_pnl:       int
    player_one_deposited: bool
    player_two_deposited: bool
    start_time:           int
    end_time:             int
    settled_at:           int
    bump:                 int

    @property
    def deposit_count(self) -> int:
        return int(self.player_one_deposited) + int(self.player_two_deposited)

    def has_players(self, player_one: Pubkey, player_two: Pubkey) -> bool:
        return self.player_one == player_one and self.player_two == player_two


Account = Union[PlatformAccount, GameAccount]

# Sizes with winner = None; the Some variant adds 32.
PLATFORM_SIZE = DISCRIMINATOR_LEN + 32 + 2 + 32 + 8 + 8 + 1
GAME_MIN_SIZE = (
    DISCRIMINATOR_LEN + 8 + 32 + 32 + 8 + 4 + 32 + 1 + 1
    + 8 + 8 + 1 + 1 + 8 + 8 + 8 + 1
)
GAME_MAX_SIZE = GAME_MIN_SIZE + 32


# ─────────────────────────────────────────────────────────────
# Reader
# ─────────────────────────────────────────────────────────────

class _Reader:
    """Bounds-checked cursor over an account buffer."""

    def __init__(self, data: bytes, kind: AccountKind):
        self.data   = data
        self.kind   = kind
        self.offset = 0

    def _need(self, n: int) -> None:
        if self.offset + n > len(self.data):
            raise DecodeError(
                f"{self.kind.value} account buffer too short",
                {"need": self.offset + n, "have": len(self.data)},
            )

    def take(self, n: int) -> bytes:
        self._need(n)
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def unpack(self, fmt: str) -> Tuple:
        size = struct.calcsize(fmt)
        self._need(size)
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def pubkey(self) -> Pubkey:
        return Pubkey.from_bytes(self.take(32))

    def u8(self) -> int:
        return self.unpack("<B")[0]

    def boolean(self, name: str) -> bool:
        value = self.u8()
        if value not in (0, 1):
            raise DecodeError(f"Invalid bool for {name}", {"value": value})
        return bool(value)

    def option_pubkey(self, name: str) -> Optional[Pubkey]:
        tag = self.u8()
        if tag == 0:
            return None
        if tag == 1:
            return self.pubkey()
        raise DecodeError(f"Invalid option tag for {name}", {"tag": tag})


def _check_discriminator(data: bytes, kind: AccountKind) -> None:
    if len(data) < DISCRIMINATOR_LEN:
        raise DecodeError(
            f"{kind.value} account buffer too short",
            {"need": DISCRIMINATOR_LEN, "have": len(data)},
        )
    if bytes(data[:DISCRIMINATOR_LEN]) != kind.discriminator:
        raise DecodeError(
            f"Discriminator mismatch for {kind.value}",
            {"got": bytes(data[:DISCRIMINATOR_LEN]).hex()},
        )


def decode_platform(data: bytes) -> PlatformAccount:
    data = bytes(data)
    _check_discriminator(data, AccountKind.PLATFORM)
    if len(data) < PLATFORM_SIZE:
        raise DecodeError(
            "Platform account buffer too short",
            {"need": PLATFORM_SIZE, "have": len(data)},
        )
    r = _Reader(data, AccountKind.PLATFORM)
    r.offset = DISCRIMINATOR_LEN

    authority = r.pubkey()
    (fee_bps,) = r.unpack("<H")
    treasury = r.pubkey()
    total_games, total_volume = r.unpack("<QQ")
    bump = r.u8()

    return PlatformAccount(
        authority=authority,
        fee_bps=fee_bps,
        treasury=treasury,
        total_games=total_games,
        total_volume=total_volume,
        bump=bump,
    )


def decode_game(data: bytes) -> GameAccount:
    data = bytes(data)
    _check_discriminator(data, AccountKind.GAME)
    if len(data) < GAME_MIN_SIZE:
        raise DecodeError(
            "Game account buffer too short",
            {"need": GAME_MIN_SIZE, "have": len(data)},
        )
    r = _Reader(data, AccountKind.GAME)
    r.offset = DISCRIMINATOR_LEN

    (game_id,) = r.unpack("<Q")
    player_one = r.pubkey()
    player_two = r.pubkey()
    bet_amount, timeframe_seconds = r.unpack("<QI")
    escrow = r.pubkey()

    raw_status = r.u8()
    try:
        status = GameStatus(raw_status)
    except ValueError:
        raise DecodeError("Game status out of range", {"status": raw_status})

    winner = r.option_pubkey("winner")
    player_one_pnl, player_two_pnl = r.unpack("<qq")
    p1_dep = r.boolean("player_one_deposited")
    p2_dep = r.boolean("player_two_deposited")
    start_time, end_time, settled_at = r.unpack("<qqq")
    bump = r.u8()

    return GameAccount(
        game_id=game_id,
        player_one=player_one,
        player_two=player_two,
        bet_amount=bet_amount,
        timeframe_seconds=timeframe_seconds,
        escrow_token_account=escrow,
        status=status,
        winner=winner,
        player_one_pnl=player_one_pnl,
        player_two_pnl=player_two_pnl,
        player_one_deposited=p1_dep,
        player_two_deposited=p2_dep,
        start_time=start_time,
        end_time=end_time,
        settled_at=settled_at,
        bump=bump,
    )


_DECODERS = {
    AccountKind.PLATFORM: decode_platform,
    AccountKind.GAME:     decode_game,
}


def decode(data: bytes, kind: AccountKind) -> Account:
    """Decode raw account bytes as the given kind. Raises DecodeError."""
    return _DECODERS[kind](data)


# ─────────────────────────────────────────────────────────────
# Writer
# ─────────────────────────────────────────────────────────────

def encode_option_pubkey(value: Optional[Pubkey]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + bytes(value)


def encode_platform(account: PlatformAccount) -> bytes:
    return b"".join([
        PLATFORM_DISC,
        bytes(account.authority),
        struct.pack("<H", account.fee_bps),
        bytes(account.treasury),
        struct.pack("<QQ", account.total_games, account.total_volume),
        struct.pack("<B", account.bump),
    ])


def encode_game(account: GameAccount) -> bytes:
    return b"".join([
        GAME_DISC,
        struct.pack("<Q", account.game_id),
        bytes(account.player_one),
        bytes(account.player_two),
        struct.pack("<QI", account.bet_amount, account.timeframe_seconds),
        bytes(account.escrow_token_account),
        struct.pack("<B", int(account.status)),
        encode_option_pubkey(account.winner),
        struct.pack("<qq", account.player_one_pnl, account.player_two_pnl),
        struct.pack(
            "<BB",
            int(account.player_one_deposited),
            int(account.player_two_deposited),
        ),
        struct.pack("<qqq", account.start_time, account.end_time, account.settled_at),
        struct.pack("<B", account.bump),
    ])


def encode(account: Account) -> bytes:
    if isinstance(account, PlatformAccount):
        return encode_platform(account)
    if isinstance(account, GameAccount):
        return encode_game(account)
    raise TypeError(f"Cannot encode {type(account).__name__}")
