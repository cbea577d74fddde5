"""
arenasettle runtime - process-lifetime wiring.
"""

from arenasettle.runtime.context import SettlementContext

__all__ = [
    "SettlementContext",
]
