"""
arenasettle finance - deterministic calculators.

Pure functions only. No I/O, no clocks, no randomness.
"""

from arenasettle.finance.elo import elo
from arenasettle.finance.outcome import MatchOutcome, PayoutPlan, determine_outcome, payout_plan
from arenasettle.finance.pnl import (
    is_tie,
    liquidation_price,
    pnl,
    roi,
    roi_to_bps,
    roi_to_percent,
)

__all__ = [
    "MatchOutcome",
    "PayoutPlan",
    "determine_outcome",
    "elo",
    "is_tie",
    "liquidation_price",
    "payout_plan",
    "pnl",
    "roi",
    "roi_to_bps",
    "roi_to_percent",
]
