"""
PnL, liquidation and ROI for leveraged positions.

These are the settlement-agreement functions: client and backend compute
them independently and must arrive at the same numbers, so rounding follows
round-half-up (floor(x + 0.5)) rather than Python's banker's rounding.
"""

import math
from typing import Optional

from arenasettle.core.models import Position

DEFAULT_LIQUIDATION_THRESHOLD = 0.9
DEFAULT_TIE_TOLERANCE = 0.00001


def round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def pnl(position: Position, price_at_close: Optional[float] = None) -> float:
    """
    Signed PnL: (price_diff / entry) × size × leverage.

    position.exit_price, when set, wins over price_at_close. Losses are
    floored at -size: a position cannot lose more than its margin.
    """
    exit_price = position.exit_price if position.exit_price is not None else price_at_close
    if exit_price is None:
        raise ValueError("pnl() needs price_at_close when the position has no exit_price")
    if position.is_long:
        diff = exit_price - position.entry_price
    else:
        diff = position.entry_price - exit_price
    raw = (diff / position.entry_price) * position.size * position.leverage
    return max(raw, -position.size)


def liquidation_price(
    position: Position,
    threshold: float = DEFAULT_LIQUIDATION_THRESHOLD,
) -> float:
    """Price at which the unrealized loss equals threshold × size."""
    if position.is_long:
        return position.entry_price * (1 - threshold / position.leverage)
    return position.entry_price * (1 + threshold / position.leverage)


def roi(total_pnl: float, initial_balance: float) -> float:
    """ROI as a fraction (0.05 == 5 %). Zero for a non-positive balance."""
    if initial_balance > 0:
        return total_pnl / initial_balance
    return 0.0


def roi_to_percent(roi_fraction: float) -> float:
    """0.05 → 5.0, rounded to two decimals."""
    return round_half_up(roi_fraction * 10000) / 100


def roi_to_bps(roi_fraction: float) -> int:
    """0.0123 → 123. The unit end_game takes for player PnL."""
    return round_half_up(roi_fraction * 10000)


def is_tie(roi_a: float, roi_b: float, tolerance: float = DEFAULT_TIE_TOLERANCE) -> bool:
    return abs(roi_a - roi_b) < tolerance
