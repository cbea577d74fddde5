"""
The RPC seam.

ChainClient is the only module that talks to the cluster. It wraps a
solana-py Client built once per process, applies the configured commitment
and timeout to every call, and turns any cluster rejection into
ChainSubmissionError carrying the raw error text.
"""

import struct
from dataclasses import dataclass
from typing import Optional

from solana.exceptions import SolanaRpcException
from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from arenasettle.chain.outcome import (
    classify_transaction_error,
    submission_error_from_exception,
)
from arenasettle.core.exceptions import ChainSubmissionError, SubmissionErrorKind
from arenasettle.core.log import get_logger

logger = get_logger(__name__)

# SPL token account: mint(32) owner(32) amount(u64) ...
_TOKEN_AMOUNT_OFFSET = 64
_TOKEN_ACCOUNT_MIN   = _TOKEN_AMOUNT_OFFSET + 8

_SUBMIT_ERRORS = (
    RPCException,
    SolanaRpcException,
    UnconfirmedTxError,
    TransactionExpiredBlockheightExceededError,
)


@dataclass(frozen=True)
class AccountInfo:
    data:     bytes
    lamports: int
    owner:    Pubkey


@dataclass(frozen=True)
class RecentBlockhash:
    blockhash:              Hash
    last_valid_block_height: int


def token_amount(data: bytes) -> int:
    """Amount field of a raw SPL token account."""
    if len(data) < _TOKEN_ACCOUNT_MIN:
        raise ValueError(f"Token account data too short: {len(data)} bytes")
    return struct.unpack_from("<Q", data, _TOKEN_AMOUNT_OFFSET)[0]


class ChainClient:

    def __init__(self, rpc_url: str, commitment: str = "confirmed", timeout: float = 30.0):
        self.rpc_url    = rpc_url
        self.commitment = Commitment(commitment)
        self.timeout    = timeout
        self._client    = Client(rpc_url, commitment=self.commitment, timeout=timeout)

    # ── Reads ────────────────────────────────────────────────
    # A failed read is always retryable: nothing was submitted.

    def _read(self, what: str, call, *args, **kwargs):
        try:
            return call(*args, **kwargs)
        except (RPCException, SolanaRpcException) as exc:
            raise ChainSubmissionError(
                SubmissionErrorKind.RETRYABLE, f"{what} failed: {exc}"
            ) from exc

    def get_account(self, pubkey: Pubkey) -> Optional[AccountInfo]:
        """Account data and lamports, or None when the account does not exist."""
        resp = self._read(
            "getAccountInfo", self._client.get_account_info,
            pubkey, commitment=self.commitment,
        )
        account = resp.value
        if account is None:
            return None
        return AccountInfo(
            data=bytes(account.data),
            lamports=account.lamports,
            owner=account.owner,
        )

    def latest_blockhash(self) -> RecentBlockhash:
        value = self._read(
            "getLatestBlockhash", self._client.get_latest_blockhash,
            commitment=self.commitment,
        ).value
        return RecentBlockhash(value.blockhash, value.last_valid_block_height)

    # ── Writes ───────────────────────────────────────────────

    def send_and_confirm(
        self,
        tx: Transaction,
        last_valid_block_height: Optional[int] = None,
    ) -> str:
        """
        Submit a signed transaction and block until it reaches the configured
        commitment. Returns the signature as base58.

        Raises:
            ChainSubmissionError: preflight rejection, transport failure,
                confirmation timeout, or an execution error recorded on-chain.
        """
        opts = TxOpts(
            skip_confirmation=True,
            skip_preflight=False,
            preflight_commitment=self.commitment,
            last_valid_block_height=last_valid_block_height,
        )
        try:
            signature = self._client.send_transaction(tx, opts=opts).value
            logger.debug("Submitted %s", signature)
            resp = self._client.confirm_transaction(
                signature,
                commitment=self.commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except _SUBMIT_ERRORS as exc:
            raise submission_error_from_exception(exc) from exc

        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            kind, code = classify_transaction_error(status.err)
            raise ChainSubmissionError(kind, str(status.err), code)
        return str(signature)

    def __repr__(self) -> str:
        return f"ChainClient(rpc_url={self.rpc_url!r}, commitment={self.commitment})"
