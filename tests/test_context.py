"""
tests/test_context.py

SettlementContext wiring. Construction only; nothing here reaches the
network.
"""

import pytest

from arenasettle import SettlementConfig, SettlementContext
from arenasettle.core.crypto import AuthorityKey
from arenasettle.core.exceptions import KeyLoadError
from arenasettle.ledger.journal import NullJournal, ReconciliationJournal
from arenasettle.repository.file import JsonFileMatchRepository
from arenasettle.repository.memory import InMemoryMatchRepository


def _config(tmp_path, **overrides):
    values = dict(
        repository_path=str(tmp_path / "matches.json"),
        journal_path=str(tmp_path / "journal.jsonl"),
        interval_seconds=12.0,
        sweep_delay_seconds=0.1,
        rake_percent=0.05,
        tie_tolerance=0.001,
        min_priority_fee=7,
    )
    values.update(overrides)
    return SettlementConfig(**values)


class TestFromConfig:

    def test_wires_one_of_each(self, tmp_path):
        authority = AuthorityKey.generate()
        context = SettlementContext.from_config(_config(tmp_path), authority=authority)

        assert context.authority is authority
        assert isinstance(context.repository, JsonFileMatchRepository)
        assert isinstance(context.journal, ReconciliationJournal)
        assert context.reconciler.repository is context.repository
        assert context.scheduler.reconciler is context.reconciler
        assert context.sweeper.chain_state is context.chain_state
        assert context.composer.authority is authority

    def test_config_values_reach_the_engine(self, tmp_path):
        context = SettlementContext.from_config(
            _config(tmp_path), authority=AuthorityKey.generate()
        )
        assert context.scheduler.interval_seconds == 12.0
        assert context.sweeper.delay_seconds == 0.1
        assert context.reconciler.rake_percent == 0.05
        assert context.reconciler.tie_tolerance == 0.001
        assert context.composer.dry_run_fees.fee == 7

    def test_injected_repository_is_used(self, tmp_path):
        repository = InMemoryMatchRepository()
        context = SettlementContext.from_config(
            _config(tmp_path), authority=AuthorityKey.generate(), repository=repository
        )
        assert context.repository is repository

    def test_no_journal_path(self, tmp_path):
        context = SettlementContext.from_config(
            _config(tmp_path, journal_path=None), authority=AuthorityKey.generate()
        )
        assert isinstance(context.journal, NullJournal)

    def test_authority_from_config(self, tmp_path):
        key = AuthorityKey.generate()
        config = _config(tmp_path, authority_keypair=str(key.keypair))
        assert SettlementContext.from_config(config).authority.pubkey == key.pubkey

    def test_missing_authority(self, tmp_path):
        with pytest.raises(KeyLoadError):
            SettlementContext.from_config(_config(tmp_path))
