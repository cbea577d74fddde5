"""
arenasettle ledger - append-only reconciliation journal.
"""

from arenasettle.ledger.journal import (
    GENESIS_HASH,
    JournalEntry,
    JournalReport,
    NullJournal,
    ReconciliationJournal,
    read_entries,
    verify_entries,
)

__all__ = [
    "GENESIS_HASH",
    "JournalEntry",
    "JournalReport",
    "NullJournal",
    "ReconciliationJournal",
    "read_entries",
    "verify_entries",
]
