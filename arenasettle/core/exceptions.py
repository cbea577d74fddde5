"""
arenasettle exception hierarchy

All exceptions inherit from ArenaSettleError for easy catching.

Pure components (codec, calculators) raise synchronously and never retry.
The reconciler is the only place a RETRYABLE submission error is turned
into "try again next pass"; everything else is recorded against the match.
"""

from enum import Enum
from typing import Iterable, Optional


class ArenaSettleError(Exception):
    """Base exception for all arenasettle errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class DecodeError(ArenaSettleError):
    """Raised when account bytes are short or malformed"""
    pass


class ConfigError(ArenaSettleError):
    """Raised when configuration is missing or invalid"""
    pass


class KeyLoadError(ConfigError):
    """Raised when the signing authority cannot be loaded"""
    pass


class JournalError(ArenaSettleError):
    """Raised when the reconciliation journal is broken or unwritable"""
    pass


class MissingPrerequisiteError(ArenaSettleError):
    """Raised when a player profile PDA required by an instruction is absent"""

    def __init__(self, players: Iterable[str], message: str = None):
        self.players = list(players)
        super().__init__(
            message or "Missing on-chain player profile(s)",
            {"players": ",".join(self.players)},
        )


class SubmissionErrorKind(Enum):
    RETRYABLE         = "retryable"
    ALREADY_PROCESSED = "already_processed"
    FATAL             = "fatal"


class ChainSubmissionError(ArenaSettleError):
    """
    Raised at the RPC seam when the cluster rejects a call.

    raw_error carries the cluster's error text unmodified; code carries the
    structured error code when the RPC surface provided one.
    """

    def __init__(
        self,
        kind: SubmissionErrorKind,
        raw_error: str,
        code: Optional[int] = None,
    ):
        self.kind = kind
        self.raw_error = raw_error
        self.code = code
        details = {"kind": kind.value}
        if code is not None:
            details["code"] = code
        super().__init__(raw_error, details)

    @property
    def retryable(self) -> bool:
        return self.kind == SubmissionErrorKind.RETRYABLE


class RepositoryConflictError(ArenaSettleError):
    """Raised when an optimistic repository update lost a race"""

    def __init__(self, match_id: str, expected_version: Optional[int]):
        self.match_id = match_id
        self.expected_version = expected_version
        super().__init__(
            "Match record changed since it was read",
            {"match_id": match_id, "expected_version": expected_version},
        )
