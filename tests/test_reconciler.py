"""
tests/test_reconciler.py

Reconciler and scheduler against the fake chain: one match at a time,
read → decide → submit → persist, with every failure kept local to the
match it happened on.
"""

import pytest

from arenasettle.chain.codec import GameStatus, encode_game
from arenasettle.chain.outcome import OutcomeKind, SubmissionResult
from arenasettle.chain.pda import ProgramAddresses
from arenasettle.chain.state import OnChainState
from arenasettle.core.config import DEFAULT_PROGRAM_ID, DEFAULT_USDC_MINT
from arenasettle.core.models import EscrowState, IssueKind, MatchStatus
from arenasettle.repository.memory import InMemoryMatchRepository
from arenasettle.settlement.machine import Action, SettlementState
from arenasettle.settlement.reconciler import ReconcileOutcome, Reconciler
from arenasettle.settlement.scheduler import SettlementScheduler, needs_work

from helpers.fakes import (
    BET,
    AccountsClient,
    FakeChainState,
    FakeComposer,
    RecordingJournal,
    make_game,
    make_record,
    new_player,
)


class Engine:
    """Repository, fake chain and fake composer wired into a reconciler."""

    def __init__(self, results=None, payout_hook=None, close_settled_games=True):
        self.chain      = FakeChainState()
        self.composer   = FakeComposer(self.chain, results)
        self.repository = InMemoryMatchRepository()
        self.journal    = RecordingJournal()
        self.payouts    = []
        self.reconciler = Reconciler(
            self.repository,
            self.chain,
            self.composer,
            journal=self.journal,
            payout_hook=payout_hook or (lambda record, plan: self.payouts.append(plan)),
            close_settled_games=close_settled_games,
        )
        self.scheduler = SettlementScheduler(self.repository, self.reconciler)

    def add(self, record):
        return self.repository.put(record)

    def get(self, match_id):
        return self.repository.get(match_id)


@pytest.fixture
def engine():
    return Engine()


@pytest.fixture
def players():
    return new_player(), new_player()


class TestScenarios:

    def test_two_refund_failed_ties_converge_in_one_pass(self, engine):
        for game_id, match_id in ((1, "m-1"), (2, "m-2")):
            p1, p2 = new_player(), new_player()
            engine.chain.add_game(make_game(game_id, p1, p2, status=GameStatus.TIED))
            engine.add(make_record(match_id, p1, p2, MatchStatus.TIED, game_id=game_id,
                                   escrow_state=EscrowState.REFUND_FAILED))

        summary = engine.scheduler.run_pass()

        assert summary.counts == {"applied": 2}
        for match_id in ("m-1", "m-2"):
            record = engine.get(match_id)
            assert record.escrow_state == EscrowState.REFUNDED
            assert record.on_chain_settled is True
        assert engine.composer.names() == ["refund_escrow", "refund_escrow"]

    def test_missing_profile_blocks_and_names_the_player(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        report = engine.reconciler.reconcile_id("m")

        assert report.outcome == ReconcileOutcome.BLOCKED
        assert report.state == SettlementState.BLOCKED_ON_MISSING_PROFILE
        assert report.players == (p2,)
        record = engine.get("m")
        assert record.status == MatchStatus.COMPLETED
        assert record.settlement_issue.kind == IssueKind.MISSING_PREREQUISITE
        assert record.settlement_issue.players == (p2,)
        assert engine.composer.calls == []

    def test_blocked_match_is_not_rewritten_every_pass(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        engine.reconciler.reconcile_id("m")
        version = engine.get("m").version
        engine.reconciler.reconcile_id("m")
        assert engine.get("m").version == version

    def test_blocked_match_settles_once_profile_appears(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))
        engine.reconciler.reconcile_id("m")

        engine.chain.add_profiles(p1, p2)
        report = engine.reconciler.reconcile_id("m")

        assert report.outcome == ReconcileOutcome.APPLIED
        record = engine.get("m")
        assert record.settlement_issue is None
        assert record.on_chain_settled

    def test_tie_lifecycle(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        engine.add(make_record("m", p1, p2, MatchStatus.TIED))

        engine.scheduler.run_pass()
        record = engine.get("m")
        assert record.on_chain_settled
        assert record.escrow_state == EscrowState.SETTLEMENT_PENDING

        engine.scheduler.run_pass()
        assert engine.get("m").escrow_state == EscrowState.REFUNDED

        assert engine.scheduler.candidates() == []
        assert engine.composer.names() == ["end_game", "refund_escrow"]
        assert engine.payouts == []

    def test_refund_is_idempotent(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.CANCELLED))
        engine.add(make_record("m", p1, p2, MatchStatus.CANCELLED))

        engine.reconciler.reconcile_id("m")
        engine.reconciler.reconcile_id("m")
        engine.reconciler.reconcile_id("m")

        assert engine.composer.names().count("refund_escrow") == 1
        assert engine.get("m").escrow_state == EscrowState.REFUNDED

    def test_replayed_refund_reaches_the_fresh_state(self, players):
        p1, p2 = players
        states = []
        for replay in (False, True):
            engine = Engine()
            engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.CANCELLED,
                                            p2_deposited=False))
            engine.add(make_record("m", p1, p2, MatchStatus.CANCELLED))
            if replay:
                # Refund landed on-chain but the process died before persisting.
                engine.composer.refund_escrow(1, p1, p2)
            engine.scheduler.run_pass()
            states.append(engine.get("m").escrow_state)

        assert states == [EscrowState.PARTIAL_REFUND, EscrowState.PARTIAL_REFUND]

    def test_cancelled_with_final_escrow_leaves_the_queue(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.CANCELLED), balance=0)
        engine.add(make_record("m", p1, p2, MatchStatus.CANCELLED,
                               escrow_state=EscrowState.REFUNDED))
        engine.add(make_record("n", *players, MatchStatus.CANCELLED, game_id=None))

        summary = engine.scheduler.run_pass()
        assert [r.outcome for r in summary.reports] == [ReconcileOutcome.CONVERGED]
        assert engine.get("m").on_chain_settled

        for _ in range(3):
            engine.scheduler.run_pass()
        assert engine.scheduler.candidates() == []
        assert engine.chain.snapshot_calls == 1
        assert engine.composer.calls == []


class TestSettlement:

    def test_completed_match_settles_and_pays(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p2))

        report = engine.reconciler.reconcile_id("m")

        assert report.outcome == ReconcileOutcome.APPLIED
        assert report.action == Action.END_GAME
        assert report.signature == "sig-1"
        assert engine.chain.games[1].status == GameStatus.SETTLED
        assert engine.payouts[0].transfers == {p2: 18_000_000}
        assert engine.journal.names() == ["end_game", "payout_planned"]

    def test_payout_hook_failure_does_not_undo_settlement(self, players):
        def broken(record, plan):
            raise RuntimeError("payout service down")

        engine = Engine(payout_hook=broken)
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        report = engine.reconciler.reconcile_id("m")
        assert report.outcome == ReconcileOutcome.APPLIED
        assert engine.get("m").on_chain_settled

    def test_already_processed_is_success(self, players):
        engine = Engine(results={"end_game": SubmissionResult(OutcomeKind.ALREADY_DONE)})
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        engine.add(make_record("m", p1, p2, MatchStatus.FORFEITED, winner=p1))

        report = engine.reconciler.reconcile_id("m")
        assert report.outcome == ReconcileOutcome.APPLIED
        assert engine.get("m").on_chain_settled

    def test_game_already_settled_elsewhere_converges(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.SETTLED, winner=p1), 0)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        report = engine.reconciler.reconcile_id("m")
        assert report.outcome == ReconcileOutcome.CONVERGED
        assert engine.get("m").on_chain_settled
        assert engine.composer.calls == []
        assert engine.journal.names() == ["converge"]


class TestFailures:

    def test_retryable_leaves_record_unchanged(self, players):
        retry = SubmissionResult(OutcomeKind.RETRYABLE, error="Blockhash not found")
        engine = Engine(results={"end_game": retry})
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        before = engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        report = engine.reconciler.reconcile_id("m")

        assert report.outcome == ReconcileOutcome.RETRY
        assert engine.get("m") == before
        assert engine.journal.events[0][3]["result"] == "retryable"

    def test_chain_read_failure_is_retry(self, engine, players):
        engine.add(make_record("m", *players, MatchStatus.COMPLETED, winner=players[0]))
        engine.chain.fail_reads = True

        report = engine.reconciler.reconcile_id("m")
        assert report.outcome == ReconcileOutcome.RETRY
        assert engine.get("m").version == 0

    def test_fatal_flags_and_is_skipped_afterwards(self, players):
        fatal = SubmissionResult(OutcomeKind.FATAL, error="custom program error: 0x1776", code=6006)
        engine = Engine(results={"end_game": fatal})
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        report = engine.reconciler.reconcile_id("m")
        assert report.outcome == ReconcileOutcome.FATAL
        record = engine.get("m")
        assert record.is_flagged_fatal
        assert record.status == MatchStatus.COMPLETED
        assert record.settlement_issue.detail == "custom program error: 0x1776"

        assert engine.reconciler.reconcile_id("m").outcome == ReconcileOutcome.SKIPPED
        assert not needs_work(record)
        assert engine.scheduler.candidates() == []
        assert engine.composer.names() == ["end_game"]

    def test_conflict_on_persist(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.chain.add_profiles(p1, p2)
        stale = engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))
        engine.repository.update("m", {"player1_roi": 0.01})

        report = engine.reconciler.reconcile(stale)
        assert report.outcome == ReconcileOutcome.CONFLICT
        assert engine.get("m").on_chain_settled is False

    def test_one_failing_match_does_not_stop_the_pass(self, players):
        engine = Engine()
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.add(make_record("a-blocked", p1, p2, MatchStatus.COMPLETED, winner=p1))

        q1, q2 = new_player(), new_player()
        engine.chain.add_game(make_game(2, q1, q2, status=GameStatus.CANCELLED))
        engine.add(make_record("b-refund", q1, q2, MatchStatus.CANCELLED, game_id=2))

        summary = engine.scheduler.run_pass()
        assert [r.outcome for r in summary.reports] == [
            ReconcileOutcome.BLOCKED, ReconcileOutcome.APPLIED,
        ]

    def test_invalid_wallet_is_fatal_and_the_pass_continues(self, players):
        engine = Engine()
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.add(make_record("a-bad", "not-a-wallet", p2, MatchStatus.COMPLETED, winner=p2))

        q1, q2 = new_player(), new_player()
        engine.chain.add_game(make_game(2, q1, q2, status=GameStatus.TIED))
        engine.add(make_record("b-good", q1, q2, MatchStatus.TIED, game_id=2,
                               escrow_state=EscrowState.REFUND_FAILED))

        summary = engine.scheduler.run_pass()

        assert [r.outcome for r in summary.reports] == [
            ReconcileOutcome.FATAL, ReconcileOutcome.APPLIED,
        ]
        issue = engine.get("a-bad").settlement_issue
        assert issue.kind == IssueKind.FATAL
        assert issue.cause == "Invalid wallet address in match record"
        assert issue.players == ("not-a-wallet",)
        assert engine.get("b-good").escrow_state == EscrowState.REFUNDED
        assert engine.scheduler.candidates() == []

    def test_short_escrow_account_is_fatal(self, players):
        p1, p2 = players
        addresses = ProgramAddresses(DEFAULT_PROGRAM_ID, DEFAULT_USDC_MINT)
        rpc = AccountsClient({
            addresses.game(1): encode_game(make_game(1, p1, p2, status=GameStatus.CANCELLED)),
            addresses.escrow(1): b"\x00" * 16,
        })
        repository = InMemoryMatchRepository([make_record("m", p1, p2, MatchStatus.CANCELLED)])
        reconciler = Reconciler(repository, OnChainState(rpc, addresses), FakeComposer())

        report = reconciler.reconcile_id("m")

        assert report.outcome == ReconcileOutcome.FATAL
        issue = repository.get("m").settlement_issue
        assert issue.cause == "On-chain account data is malformed"
        assert "too short" in issue.detail

    def test_unexpected_error_is_reported_and_the_pass_continues(self, players):
        engine = Engine()
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.CANCELLED))
        engine.add(make_record("a-broken", p1, p2, MatchStatus.CANCELLED))
        q1, q2 = new_player(), new_player()
        engine.chain.add_game(make_game(2, q1, q2, status=GameStatus.CANCELLED))
        engine.add(make_record("b-refund", q1, q2, MatchStatus.CANCELLED, game_id=2))

        real_snapshot = engine.chain.snapshot

        def snapshot(game_id, players):
            if game_id == 1:
                raise RuntimeError("disk on fire")
            return real_snapshot(game_id, players)

        engine.chain.snapshot = snapshot
        summary = engine.scheduler.run_pass()

        broken, refunded = summary.reports
        assert broken.outcome == ReconcileOutcome.ERROR
        assert broken.error == "RuntimeError: disk on fire"
        assert refunded.outcome == ReconcileOutcome.APPLIED
        assert engine.get("a-broken").version == 0
        assert summary.counts == {"error": 1, "applied": 1}


class TestModes:

    def test_dry_run_writes_nothing(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.CANCELLED))
        before = engine.add(make_record("m", p1, p2, MatchStatus.CANCELLED))

        summary = engine.scheduler.run_pass(dry_run=True)

        assert summary.reports[0].outcome == ReconcileOutcome.DRY_RUN
        assert summary.reports[0].action == Action.REFUND_ESCROW
        assert engine.get("m") == before
        assert engine.journal.events == []
        assert engine.chain.balances[1] == 2 * BET

    def test_dry_run_does_not_flag(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2))
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1))

        report = engine.reconciler.reconcile_id("m", dry_run=True)
        assert report.outcome == ReconcileOutcome.BLOCKED
        assert engine.get("m").settlement_issue is None

    def test_close_after_convergence(self, engine, players):
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.SETTLED, winner=p1), 0)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1,
                               on_chain_settled=True, escrow_state=EscrowState.PAYOUT_SENT))

        report = engine.reconciler.reconcile_id("m")
        assert report.action == Action.CLOSE_GAME
        assert report.outcome == ReconcileOutcome.APPLIED
        assert 1 not in engine.chain.games

    def test_close_disabled(self, players):
        engine = Engine(close_settled_games=False)
        p1, p2 = players
        engine.chain.add_game(make_game(1, p1, p2, status=GameStatus.SETTLED, winner=p1), 0)
        engine.add(make_record("m", p1, p2, MatchStatus.COMPLETED, winner=p1,
                               on_chain_settled=True, escrow_state=EscrowState.PAYOUT_SENT))

        assert engine.reconciler.reconcile_id("m").outcome == ReconcileOutcome.NOOP
        assert engine.composer.calls == []

    def test_no_game_id_is_noop(self, engine, players):
        engine.add(make_record("m", *players, MatchStatus.COMPLETED, game_id=None))
        report = engine.reconciler.reconcile_id("m")
        assert report.outcome == ReconcileOutcome.NOOP
        assert report.state == SettlementState.NEEDS_ON_CHAIN_CREATION

    def test_unknown_match(self, engine):
        with pytest.raises(KeyError):
            engine.reconciler.reconcile_id("nope")
