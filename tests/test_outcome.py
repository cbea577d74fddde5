"""
tests/test_outcome.py

Cluster error classification and the tagged submission result.
"""

from types import SimpleNamespace

import pytest
from solana.exceptions import SolanaRpcException
from solana.rpc.core import RPCException, UnconfirmedTxError
from solders.transaction_status import (
    InstructionErrorCustom,
    TransactionErrorFieldless,
    TransactionErrorInstructionError,
)

from arenasettle.chain.outcome import (
    OutcomeKind,
    ProgramError,
    SubmissionResult,
    classify_message,
    classify_transaction_error,
    submission_error_from_exception,
)
from arenasettle.core.exceptions import ChainSubmissionError, SubmissionErrorKind


def custom(code: int) -> TransactionErrorInstructionError:
    return TransactionErrorInstructionError(0, InstructionErrorCustom(code))


def preflight_failure(err, message="Transaction simulation failed"):
    return RPCException(SimpleNamespace(message=message, data=SimpleNamespace(err=err)))


class TestClassifyTransactionError:

    def test_already_processed(self):
        kind, code = classify_transaction_error(TransactionErrorFieldless.AlreadyProcessed)
        assert kind == SubmissionErrorKind.ALREADY_PROCESSED
        assert code is None

    def test_blockhash_not_found_retryable(self):
        kind, _ = classify_transaction_error(TransactionErrorFieldless.BlockhashNotFound)
        assert kind == SubmissionErrorKind.RETRYABLE

    def test_other_fieldless_fatal(self):
        kind, _ = classify_transaction_error(TransactionErrorFieldless.AccountNotFound)
        assert kind == SubmissionErrorKind.FATAL

    @pytest.mark.parametrize("code", [
        ProgramError.GAME_NOT_ACTIVE,
        ProgramError.GAME_NOT_PENDING,
        ProgramError.ALREADY_SETTLED,
        ProgramError.ESCROW_NOT_EMPTY,
    ])
    def test_stale_state_codes_retryable(self, code):
        kind, got = classify_transaction_error(custom(int(code)))
        assert kind == SubmissionErrorKind.RETRYABLE
        assert got == int(code)

    @pytest.mark.parametrize("code", [6000, 6003, 6006, 6013, 6016])
    def test_other_program_codes_fatal(self, code):
        kind, got = classify_transaction_error(custom(code))
        assert kind == SubmissionErrorKind.FATAL
        assert got == code


class TestClassifyMessage:

    @pytest.mark.parametrize("text,kind", [
        ("This transaction has already been processed", SubmissionErrorKind.ALREADY_PROCESSED),
        ("Blockhash not found", SubmissionErrorKind.RETRYABLE),
        ("HTTP 429 Too Many Requests", SubmissionErrorKind.RETRYABLE),
        ("request timed out", SubmissionErrorKind.RETRYABLE),
        ("invalid account data for instruction", SubmissionErrorKind.FATAL),
        ("", SubmissionErrorKind.FATAL),
    ])
    def test_fallback_substrings(self, text, kind):
        assert classify_message(text) == kind


class TestFromException:

    def test_structured_preflight_error_wins_over_text(self):
        exc = preflight_failure(custom(6006), message="already been processed")
        err = submission_error_from_exception(exc)
        assert err.kind == SubmissionErrorKind.FATAL
        assert err.code == 6006

    def test_preflight_already_processed(self):
        err = submission_error_from_exception(
            preflight_failure(TransactionErrorFieldless.AlreadyProcessed)
        )
        assert err.kind == SubmissionErrorKind.ALREADY_PROCESSED

    def test_rpc_exception_without_structure_uses_message(self):
        exc = RPCException(SimpleNamespace(message="Node is behind by 120 slots", data=None))
        err = submission_error_from_exception(exc)
        assert err.kind == SubmissionErrorKind.RETRYABLE

    def test_transport_failure_retryable(self):
        err = submission_error_from_exception(SolanaRpcException("connection refused"))
        assert err.kind == SubmissionErrorKind.RETRYABLE

    def test_unconfirmed_retryable(self):
        err = submission_error_from_exception(UnconfirmedTxError("not confirmed"))
        assert err.kind == SubmissionErrorKind.RETRYABLE

    def test_passthrough(self):
        original = ChainSubmissionError(SubmissionErrorKind.FATAL, "boom", 6003)
        assert submission_error_from_exception(original) is original


class TestSubmissionResult:

    def test_ok_covers_success_and_already_done(self):
        assert SubmissionResult.success("sig").ok
        assert SubmissionResult(OutcomeKind.ALREADY_DONE).ok
        assert not SubmissionResult(OutcomeKind.RETRYABLE).ok
        assert not SubmissionResult(OutcomeKind.FATAL).ok
        assert not SubmissionResult(OutcomeKind.DRY_RUN).ok

    def test_from_error(self):
        err = ChainSubmissionError(SubmissionErrorKind.ALREADY_PROCESSED, "dup")
        result = SubmissionResult.from_error(err)
        assert result.kind == OutcomeKind.ALREADY_DONE
        assert result.error == "dup"

    def test_to_dict(self):
        result = SubmissionResult(OutcomeKind.FATAL, error="x", code=6006, game_id=3)
        assert result.to_dict() == {
            "kind": "fatal", "signature": None, "error": "x", "code": 6006, "game_id": 3,
        }
