"""Tests for the domain error taxonomy."""

from __future__ import annotations

from agent_escrow.domain.enums import ErrorKind
from agent_escrow.domain.exceptions import (
    EscrowError,
    InvalidTransitionError,
    JobNotFoundError,
    LedgerError,
    LedgerNotFoundError,
    SequencerStuckError,
    SubmittedButUnconfirmedError,
    TransitionRejectedExternallyError,
    ValidationError,
)


class TestEscrowErrors:
    def test_code_defaults_to_kind(self) -> None:
        exc = JobNotFoundError(7)
        assert exc.code == ErrorKind.JOB_NOT_FOUND
        assert exc.job_id == 7
        assert "7" in exc.message

    def test_validation_error_carries_field(self) -> None:
        exc = ValidationError("bad amount", field="amount")
        assert exc.field == "amount"
        assert exc.kind == ErrorKind.VALIDATION_ERROR

    def test_invalid_transition_message(self) -> None:
        exc = InvalidTransitionError("cancelJob", "Created", "deadline not reached")
        assert exc.current_status == "Created"
        assert "cancelJob" in exc.message
        assert "deadline not reached" in exc.message

    def test_rejected_externally_is_distinct_from_invalid_transition(self) -> None:
        exc = TransitionRejectedExternallyError("approveWork", "execution reverted")
        assert not isinstance(exc, InvalidTransitionError)
        assert exc.code == ErrorKind.TRANSITION_REJECTED_EXTERNALLY

    def test_unconfirmed_keeps_tx_hash(self) -> None:
        exc = SubmittedButUnconfirmedError("createJob", "0xabc", job_id=None)
        assert exc.tx_hash == "0xabc"
        assert "re-query" in exc.message

    def test_sequencer_stuck(self) -> None:
        exc = SequencerStuckError(3, 601.0, tx_hash="0xdef")
        assert exc.code == ErrorKind.SEQUENCER_STUCK
        assert exc.tx_hash == "0xdef"

    def test_all_escrow_errors_share_base(self) -> None:
        assert issubclass(JobNotFoundError, EscrowError)
        assert issubclass(SubmittedButUnconfirmedError, EscrowError)


class TestLedgerErrors:
    def test_ledger_errors_are_not_escrow_errors(self) -> None:
        assert not issubclass(LedgerError, EscrowError)

    def test_not_found(self) -> None:
        exc = LedgerNotFoundError(4)
        assert exc.job_id == 4
        assert exc.tx_hash is None
