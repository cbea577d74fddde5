"""In-process match repository."""

import threading
from typing import Any, Dict, Iterable, List, Optional

from arenasettle.core.models import MatchRecord, MatchStatus
from arenasettle.repository.base import MatchRepository, UpdateResult, check_update_fields


class InMemoryMatchRepository(MatchRepository):

    def __init__(self, records: Iterable[MatchRecord] = ()):
        self._lock = threading.Lock()
        self._records: Dict[str, MatchRecord] = {r.match_id: r for r in records}

    def get(self, match_id: str) -> Optional[MatchRecord]:
        with self._lock:
            return self._records.get(match_id)

    def query_by_status(self, statuses: Iterable[MatchStatus]) -> List[MatchRecord]:
        wanted = {MatchStatus(s) for s in statuses}
        with self._lock:
            return [r for r in self._records.values() if r.status in wanted]

    def update(
        self,
        match_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> UpdateResult:
        check_update_fields(changes)
        with self._lock:
            current = self._records.get(match_id)
            if current is None:
                raise KeyError(match_id)
            if expected_version is not None and current.version != expected_version:
                return UpdateResult.lost_race(current)
            updated = current.with_changes(version=current.version + 1, **changes)
            self._commit({**self._records, match_id: updated})
            return UpdateResult.applied(updated)

    def put(self, record: MatchRecord) -> MatchRecord:
        with self._lock:
            self._commit({**self._records, record.match_id: record})
            return record

    def all(self) -> List[MatchRecord]:
        with self._lock:
            return list(self._records.values())

    def _commit(self, records: Dict[str, MatchRecord]) -> None:
        """Called with the lock held. Memory changes only once storage accepts."""
        self._persist(records)
        self._records = records

    def _persist(self, records: Dict[str, MatchRecord]) -> None:
        pass

    def __len__(self) -> int:
        return len(self._records)
