"""
arenasettle/repository/base.py

Match repository contract.

The document store that owns MatchRecords is outside this package; the
engine only needs keyed reads, a status query and per-record optimistic
updates. Every successful update bumps the record's version.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from arenasettle.core.models import MATCH_FIELDS, MatchRecord, MatchStatus

# Fields the repository itself maintains.
_PROTECTED_FIELDS = frozenset({"match_id", "version"})


@dataclass(frozen=True)
class UpdateResult:
    ok:       bool
    record:   Optional[MatchRecord] = None
    conflict: bool = False

    @classmethod
    def applied(cls, record: MatchRecord) -> "UpdateResult":
        return cls(ok=True, record=record)

    @classmethod
    def lost_race(cls, current: Optional[MatchRecord]) -> "UpdateResult":
        return cls(ok=False, record=current, conflict=True)


def check_update_fields(changes: Dict[str, Any]) -> None:
    unknown = set(changes) - MATCH_FIELDS
    if unknown:
        raise ValueError(f"Unknown match fields: {sorted(unknown)}")
    protected = set(changes) & _PROTECTED_FIELDS
    if protected:
        raise ValueError(f"Fields maintained by the repository: {sorted(protected)}")


class MatchRepository:
    """Interface. See InMemoryMatchRepository for the reference semantics."""

    def get(self, match_id: str) -> Optional[MatchRecord]:
        raise NotImplementedError

    def query_by_status(self, statuses: Iterable[MatchStatus]) -> List[MatchRecord]:
        raise NotImplementedError

    def update(
        self,
        match_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> UpdateResult:
        """
        Apply changes if the stored version equals expected_version (or
        unconditionally when it is None). Raises KeyError for an unknown id.
        """
        raise NotImplementedError

    def put(self, record: MatchRecord) -> MatchRecord:
        raise NotImplementedError

    def all(self) -> List[MatchRecord]:
        raise NotImplementedError
