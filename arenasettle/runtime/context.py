"""
Runtime context for arenasettle.

Everything with process lifetime is built here, once, and injected: the
authority key, the RPC client, the repository and the journal. No module
keeps a global client or keypair.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from arenasettle.chain.client import ChainClient
from arenasettle.chain.composer import TransactionComposer
from arenasettle.chain.fees import PriorityFeeEstimator
from arenasettle.chain.pda import ProgramAddresses
from arenasettle.chain.state import OnChainState
from arenasettle.core.config import SettlementConfig
from arenasettle.core.crypto import AuthorityKey
from arenasettle.ledger.journal import NullJournal, ReconciliationJournal
from arenasettle.repository.base import MatchRepository
from arenasettle.repository.file import JsonFileMatchRepository
from arenasettle.settlement.reconciler import PayoutHook, Reconciler
from arenasettle.settlement.scheduler import SettlementScheduler
from arenasettle.settlement.sweep import LedgerSweeper


@dataclass
class SettlementContext:
    """Wired settlement engine for one cluster and one repository."""

    config:      SettlementConfig
    authority:   AuthorityKey
    client:      ChainClient
    addresses:   ProgramAddresses
    chain_state: OnChainState
    composer:    TransactionComposer
    repository:  MatchRepository
    journal:     Union[ReconciliationJournal, NullJournal]
    reconciler:  Reconciler
    scheduler:   SettlementScheduler
    sweeper:     LedgerSweeper

    @classmethod
    def from_config(
        cls,
        config: SettlementConfig,
        authority: Optional[AuthorityKey] = None,
        repository: Optional[MatchRepository] = None,
        payout_hook: Optional[PayoutHook] = None,
    ) -> "SettlementContext":
        """
        Build the engine from configuration.

        Raises KeyLoadError when no authority is given and none is
        configured, ConfigError for an unreadable repository file.
        """
        if authority is None:
            authority = AuthorityKey.from_value(config.authority_keypair)

        client = ChainClient(
            config.rpc_url,
            commitment=config.commitment,
            timeout=config.rpc_timeout_seconds,
        )
        addresses   = ProgramAddresses(config.program_id, config.usdc_mint)
        chain_state = OnChainState(client, addresses)
        fees = PriorityFeeEstimator(
            config.rpc_url,
            config.min_priority_fee,
            config.max_priority_fee,
            timeout=config.rpc_timeout_seconds,
        )
        composer = TransactionComposer(
            client, chain_state, authority, fees, dry_run_fee=config.min_priority_fee
        )

        if repository is None:
            repository = JsonFileMatchRepository(Path(config.repository_path))
        journal = (
            ReconciliationJournal(Path(config.journal_path))
            if config.journal_path else NullJournal()
        )

        reconciler = Reconciler(
            repository,
            chain_state,
            composer,
            journal=journal,
            payout_hook=payout_hook,
            rake_percent=config.rake_percent,
            tie_fee_percent=config.tie_fee_percent,
            tie_tolerance=config.tie_tolerance,
            close_settled_games=config.close_settled_games,
        )
        scheduler = SettlementScheduler(
            repository, reconciler, interval_seconds=config.interval_seconds
        )
        sweeper = LedgerSweeper(
            chain_state,
            composer,
            repository,
            journal=journal,
            delay_seconds=config.sweep_delay_seconds,
        )

        return cls(
            config=config,
            authority=authority,
            client=client,
            addresses=addresses,
            chain_state=chain_state,
            composer=composer,
            repository=repository,
            journal=journal,
            reconciler=reconciler,
            scheduler=scheduler,
            sweeper=sweeper,
        )

    def __repr__(self) -> str:
        return (
            f"SettlementContext("
            f"rpc_url={self.config.rpc_url!r}, "
            f"program_id={self.config.program_id!r}, "
            f"authority={self.authority!r}, "
            f"matches={len(self.repository.all())})"
        )
