"""
Priority fee estimation.

The fee is the median of the cluster's recent prioritization fees for the
accounts a transaction writes, clamped to [min_fee, max_fee] micro-lamports
per compute unit. Any failure of the sampling call yields min_fee.

getRecentPrioritizationFees is issued as raw JSON-RPC over requests so that
a fee sample never shares a failure mode with transaction submission.
"""

import statistics
from typing import Any, Callable, List, Sequence

import requests
from solders.pubkey import Pubkey

from arenasettle.core.log import get_logger

logger = get_logger(__name__)


def median_fee(samples: Sequence[int]) -> int:
    if not samples:
        return 0
    return int(statistics.median(samples))


def clamp_fee(fee: int, min_fee: int, max_fee: int) -> int:
    return max(min_fee, min(max_fee, fee))


class PriorityFeeEstimator:

    def __init__(
        self,
        rpc_url: str,
        min_fee: int,
        max_fee: int,
        timeout: float = 10.0,
        *,
        request_post: Callable[..., Any] = requests.post,
    ):
        self.rpc_url      = rpc_url
        self.min_fee      = min_fee
        self.max_fee      = max_fee
        self.timeout      = timeout
        self._post        = request_post

    def sample(self, writable: Sequence[Pubkey]) -> List[int]:
        """Raw recent fee samples for the given writable accounts."""
        payload = {
            "jsonrpc": "2.0",
            "id":      1,
            "method":  "getRecentPrioritizationFees",
            "params":  [[str(k) for k in writable]],
        }
        resp = self._post(self.rpc_url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        body = resp.json()
        if "error" in body:
            raise ValueError(f"getRecentPrioritizationFees: {body['error']}")
        return [int(item["prioritizationFee"]) for item in body.get("result") or []]

    def estimate(self, writable: Sequence[Pubkey]) -> int:
        try:
            samples = self.sample(writable)
        except (requests.RequestException, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "Priority fee sample failed, using minimum %d: %s", self.min_fee, exc
            )
            return self.min_fee
        fee = clamp_fee(median_fee(samples), self.min_fee, self.max_fee)
        logger.debug("Priority fee %d from %d samples", fee, len(samples))
        return fee


class FixedFeeEstimator:
    """Constant fee. Used for dry runs and tests."""

    def __init__(self, fee: int):
        self.fee = fee

    def estimate(self, writable: Sequence[Pubkey]) -> int:
        return self.fee
