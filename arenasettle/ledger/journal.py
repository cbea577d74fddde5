"""
arenasettle/ledger/journal.py

Reconciliation journal: append-only, hash-chained JSONL.

One line per settlement action attempted (or skipped) against a match.
It is an audit trail for operators, not a source of truth: the repository
and the chain are the state, the journal says how they got there.

Entry shape:
    {
      "sequence":   0, 1, 2, ...
      "timestamp":  YYYY-MM-DDTHH:MM:SS.mmmZ
      "event":      e.g. "end_game", "refund_escrow", "missing_prerequisite", "sweep_closeable"
      "match_id":   str | null
      "game_id":    int | null
      "data":       {...}
      "prev_hash":  entry_hash of the previous line, GENESIS_HASH for the first
      "entry_hash": SHA-256 of the RFC 8785 form of every other field
    }

append() MUST, in order:
  1. Acquire lock
  2. Build the entry against the in-memory chain head
  3. Write one newline-terminated line, flush, fsync
  4. Advance the chain head only after the write succeeded
"""

import json
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from arenasettle.core.canonical import digest
from arenasettle.core.exceptions import JournalError
from arenasettle.core.log import get_logger
from arenasettle.core.time import utc_timestamp

logger = get_logger(__name__)

GENESIS_HASH = "0" * 64


@dataclass(frozen=True)
class JournalEntry:
    sequence:   int
    timestamp:  str
    event:      str
    match_id:   Optional[str]
    game_id:    Optional[int]
    data:       Dict[str, Any]
    prev_hash:  str
    entry_hash: str = ""

    def hashed_fields(self) -> Dict[str, Any]:
        return {
            "sequence":  self.sequence,
            "timestamp": self.timestamp,
            "event":     self.event,
            "match_id":  self.match_id,
            "game_id":   self.game_id,
            "data":      self.data,
            "prev_hash": self.prev_hash,
        }

    def compute_hash(self) -> str:
        return digest(self.hashed_fields())

    def to_dict(self) -> Dict[str, Any]:
        out = self.hashed_fields()
        out["entry_hash"] = self.entry_hash
        return out

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "JournalEntry":
        return JournalEntry(
            sequence=data["sequence"],
            timestamp=data["timestamp"],
            event=data["event"],
            match_id=data.get("match_id"),
            game_id=data.get("game_id"),
            data=data.get("data") or {},
            prev_hash=data["prev_hash"],
            entry_hash=data.get("entry_hash", ""),
        )


@dataclass
class JournalReport:
    total_entries: int = 0
    valid:         bool = True
    violations:    List[str] = field(default_factory=list)
    head_hash:     str = GENESIS_HASH
    event_counts:  Dict[str, int] = field(default_factory=dict)


def read_entries(path: Path) -> List[JournalEntry]:
    """Parse every line. Raises JournalError on malformed JSON."""
    entries: List[JournalEntry] = []
    path = Path(path)
    if not path.exists():
        return entries
    with open(path, "r", encoding="utf-8") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entries.append(JournalEntry.from_dict(json.loads(line)))
            except (json.JSONDecodeError, KeyError, TypeError) as exc:
                raise JournalError(f"Invalid journal line {line_num}: {exc}") from exc
    return entries


def verify_entries(entries: List[JournalEntry]) -> JournalReport:
    report = JournalReport(total_entries=len(entries))
    prev_hash = GENESIS_HASH
    for i, entry in enumerate(entries):
        if entry.sequence != i:
            report.violations.append(f"seq {i}: sequence is {entry.sequence}")
        if entry.prev_hash != prev_hash:
            report.violations.append(f"seq {i}: prev_hash does not match previous entry")
        try:
            if entry.compute_hash() != entry.entry_hash:
                report.violations.append(f"seq {i}: entry_hash mismatch")
        except JournalError as exc:
            report.violations.append(f"seq {i}: {exc}")
        report.event_counts[entry.event] = report.event_counts.get(entry.event, 0) + 1
        prev_hash = entry.entry_hash
    report.valid = not report.violations
    report.head_hash = prev_hash
    return report


class ReconciliationJournal:
    """
    One writer process per file; the lock only serializes threads.
    Chain head survives restart by reading the last line on __init__.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._sequence  = 0
        self._head_hash = GENESIS_HASH
        self._restore_state()

    def append(
        self,
        event: str,
        match_id: Optional[str] = None,
        game_id: Optional[int] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> JournalEntry:
        with self._lock:
            entry = JournalEntry(
                sequence=self._sequence,
                timestamp=utc_timestamp(),
                event=event,
                match_id=match_id,
                game_id=game_id,
                data=data or {},
                prev_hash=self._head_hash,
            )
            entry = JournalEntry(**{**entry.hashed_fields(), "entry_hash": entry.compute_hash()})
            self._write(entry)
            self._sequence += 1
            self._head_hash = entry.entry_hash
            return entry

    def entries(self) -> List[JournalEntry]:
        return read_entries(self.path)

    def verify(self) -> JournalReport:
        return verify_entries(self.entries())

    @property
    def head_hash(self) -> str:
        return self._head_hash

    def _restore_state(self) -> None:
        if not self.path.exists():
            return
        last_line = None
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last_line = line.strip()
        if not last_line:
            return
        try:
            last = JournalEntry.from_dict(json.loads(last_line))
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise JournalError(
                f"Journal {self.path} has a corrupted last line: {exc}"
            ) from exc
        self._sequence  = last.sequence + 1
        self._head_hash = last.entry_hash
        logger.debug("Journal %s resumes at sequence %d", self.path, self._sequence)

    def _write(self, entry: JournalEntry) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                f.flush()
                os.fsync(f.fileno())
        except OSError as exc:
            raise JournalError(f"Journal write failed: {exc}") from exc


class NullJournal:
    """Journal that records nothing. Used when no journal path is configured."""

    def append(self, event, match_id=None, game_id=None, data=None) -> None:
        return None
