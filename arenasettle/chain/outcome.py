"""
Classification of cluster errors and submission results.

Structured error data is consulted first:

    TransactionErrorFieldless    AlreadyProcessed        → ALREADY_PROCESSED
                                 BlockhashNotFound, ...  → RETRYABLE
    InstructionErrorCustom       stale-state codes       → RETRYABLE
                                 any other program code  → FATAL
    SolanaRpcException           transport failure       → RETRYABLE
    UnconfirmedTxError /
    TransactionExpired...        not confirmed in time   → RETRYABLE

Message substrings are consulted only when the RPC surface carried no
structured error at all.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from solana.exceptions import SolanaRpcException
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solders.transaction_status import (
    InstructionErrorCustom,
    TransactionErrorFieldless,
    TransactionErrorInstructionError,
)

from arenasettle.core.exceptions import ChainSubmissionError, SubmissionErrorKind


# Program error codes (Anchor custom errors start at 6000).
class ProgramError(int, Enum):
    INVALID_BET_AMOUNT = 6000
    GAME_NOT_ACTIVE    = 6001
    GAME_NOT_PENDING   = 6002
    NOT_A_PLAYER       = 6003
    ALREADY_SETTLED    = 6004
    ESCROW_NOT_FULL    = 6005
    UNAUTHORIZED       = 6006
    NOT_WINNER         = 6007
    ALREADY_DEPOSITED  = 6008
    GAMER_TAG_TOO_LONG = 6009
    GAMER_TAG_EMPTY    = 6010
    INVALID_FEE_BPS    = 6011
    MATH_OVERFLOW      = 6012
    NOT_REFUNDABLE     = 6013
    NOT_CLAIMABLE      = 6014
    ESCROW_NOT_EMPTY   = 6015
    GAME_NOT_SETTLED   = 6016


# The account moved on between our read and the program's check. The next
# pass re-reads and decides again.
STALE_STATE_CODES = frozenset({
    ProgramError.GAME_NOT_ACTIVE,
    ProgramError.GAME_NOT_PENDING,
    ProgramError.ALREADY_SETTLED,
    ProgramError.ESCROW_NOT_EMPTY,
})

_RETRYABLE_FIELDLESS_NAMES = (
    "BlockhashNotFound",
    "AccountInUse",
    "ClusterMaintenance",
    "InsufficientFundsForFee",
    "WouldExceedMaxBlockCostLimit",
    "WouldExceedMaxAccountCostLimit",
    "WouldExceedMaxVoteCostLimit",
    "WouldExceedAccountDataBlockLimit",
    "TooManyAccountLocks",
)

_ALREADY_PROCESSED_TEXT = (
    "already been processed",
    "alreadyprocessed",
)

_RETRYABLE_TEXT = (
    "blockhash not found",
    "block height exceeded",
    "timed out",
    "timeout",
    "too many requests",
    "429",
    "node is behind",
    "node is unhealthy",
    "connection reset",
    "service unavailable",
)


def _members(names) -> Tuple[Any, ...]:
    return tuple(
        m for m in (getattr(TransactionErrorFieldless, n, None) for n in names)
        if m is not None
    )


_ALREADY_PROCESSED = _members(("AlreadyProcessed",))
_RETRYABLE_FIELDLESS = _members(_RETRYABLE_FIELDLESS_NAMES)


def classify_transaction_error(err: Any) -> Tuple[SubmissionErrorKind, Optional[int]]:
    """Classify a solders TransactionError. Returns (kind, custom code)."""
    if isinstance(err, TransactionErrorFieldless):
        if err in _ALREADY_PROCESSED:
            return SubmissionErrorKind.ALREADY_PROCESSED, None
        if err in _RETRYABLE_FIELDLESS:
            return SubmissionErrorKind.RETRYABLE, None
        return SubmissionErrorKind.FATAL, None

    if isinstance(err, TransactionErrorInstructionError):
        inner = err.err
        if isinstance(inner, InstructionErrorCustom):
            code = int(inner.code)
            if code in STALE_STATE_CODES:
                return SubmissionErrorKind.RETRYABLE, code
            return SubmissionErrorKind.FATAL, code
        return SubmissionErrorKind.FATAL, None

    return SubmissionErrorKind.FATAL, None


def classify_message(text: str) -> SubmissionErrorKind:
    lowered = (text or "").lower()
    if any(s in lowered for s in _ALREADY_PROCESSED_TEXT):
        return SubmissionErrorKind.ALREADY_PROCESSED
    if any(s in lowered for s in _RETRYABLE_TEXT):
        return SubmissionErrorKind.RETRYABLE
    return SubmissionErrorKind.FATAL


def _structured_error(payload: Any) -> Any:
    """Dig the TransactionError out of a preflight failure, if present."""
    data = getattr(payload, "data", None)
    return getattr(data, "err", None)


def submission_error_from_exception(exc: Exception) -> ChainSubmissionError:
    """Map an exception raised by solana-py into a ChainSubmissionError."""
    if isinstance(exc, ChainSubmissionError):
        return exc

    raw = str(exc)

    if isinstance(exc, (UnconfirmedTxError, TransactionExpiredBlockheightExceededError)):
        return ChainSubmissionError(SubmissionErrorKind.RETRYABLE, raw)

    if isinstance(exc, SolanaRpcException):
        return ChainSubmissionError(SubmissionErrorKind.RETRYABLE, raw)

    if isinstance(exc, RPCException) and exc.args:
        payload = exc.args[0]
        err = _structured_error(payload)
        message = getattr(payload, "message", None) or raw
        if err is not None:
            kind, code = classify_transaction_error(err)
            return ChainSubmissionError(kind, message, code)
        return ChainSubmissionError(classify_message(message), message)

    return ChainSubmissionError(classify_message(raw), raw)


# ─────────────────────────────────────────────────────────────
# Tagged result
# ─────────────────────────────────────────────────────────────

class OutcomeKind(str, Enum):
    SUCCESS      = "success"
    ALREADY_DONE = "already_done"
    RETRYABLE    = "retryable"
    FATAL        = "fatal"
    DRY_RUN      = "dry_run"


_KIND_TO_OUTCOME = {
    SubmissionErrorKind.RETRYABLE:         OutcomeKind.RETRYABLE,
    SubmissionErrorKind.ALREADY_PROCESSED: OutcomeKind.ALREADY_DONE,
    SubmissionErrorKind.FATAL:             OutcomeKind.FATAL,
}


@dataclass(frozen=True)
class SubmissionResult:
    kind:      OutcomeKind
    signature: Optional[str] = None
    error:     Optional[str] = None
    code:      Optional[int] = None
    game_id:   Optional[int] = None

    @property
    def ok(self) -> bool:
        """Success and already-processed drive the same transition."""
        return self.kind in (OutcomeKind.SUCCESS, OutcomeKind.ALREADY_DONE)

    @classmethod
    def success(cls, signature: str, game_id: Optional[int] = None) -> "SubmissionResult":
        return cls(OutcomeKind.SUCCESS, signature=signature, game_id=game_id)

    @classmethod
    def from_error(cls, error: ChainSubmissionError) -> "SubmissionResult":
        return cls(
            _KIND_TO_OUTCOME[error.kind],
            error=error.raw_error,
            code=error.code,
        )

    def to_dict(self) -> dict:
        return {
            "kind":      self.kind.value,
            "signature": self.signature,
            "error":     self.error,
            "code":      self.code,
            "game_id":   self.game_id,
        }
