"""
arenasettle repository - the off-chain match store contract.
"""

from arenasettle.repository.base import MatchRepository, UpdateResult
from arenasettle.repository.file import JsonFileMatchRepository
from arenasettle.repository.memory import InMemoryMatchRepository

__all__ = [
    "InMemoryMatchRepository",
    "JsonFileMatchRepository",
    "MatchRepository",
    "UpdateResult",
]
