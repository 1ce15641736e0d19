"""Domain exceptions for Agent Escrow.

Two families live here:

    EscrowError   — the taxonomy front doors see. Every failure that leaves
                    the orchestrator is one of these, with a stable ErrorKind.
    LedgerError   — raised by LedgerClient adapters. The orchestrator catches
                    and re-classifies them; they never reach a front door.
"""

from __future__ import annotations

from agent_escrow.domain.enums import ErrorKind


class EscrowError(Exception):
    """Base exception for all domain errors."""

    kind: ErrorKind = ErrorKind.INTERNAL_ERROR

    def __init__(self, message: str, code: ErrorKind | None = None) -> None:
        self.message = message
        self.code = code or self.kind
        super().__init__(self.message)


# --- Caller errors ---


class ValidationError(EscrowError):
    """Malformed request. Fixable by the caller, never retried."""

    kind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class JobNotFoundError(EscrowError):
    """Raised when a job id does not exist on the ledger."""

    kind = ErrorKind.JOB_NOT_FOUND

    def __init__(self, job_id: int) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidTransitionError(EscrowError):
    """The requested action's precondition fails against last-known state.

    Example: cancelJob one second before the deadline.
    """

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, action: str, current_status: str | None, reason: str) -> None:
        super().__init__(f"Cannot {action} (status {current_status}): {reason}")
        self.action = action
        self.current_status = current_status
        self.reason = reason


# --- Ledger-facing outcomes ---


class TransitionRejectedExternallyError(EscrowError):
    """The ledger refused a transition that passed local checks.

    State most likely changed underneath the caller: re-query and retry.
    """

    kind = ErrorKind.TRANSITION_REJECTED_EXTERNALLY

    def __init__(self, action: str, reason: str, tx_hash: str | None = None) -> None:
        super().__init__(f"Ledger rejected {action}: {reason}")
        self.action = action
        self.reason = reason
        self.tx_hash = tx_hash


class TransientNetworkError(EscrowError):
    """Connectivity failure talking to the ledger."""

    kind = ErrorKind.TRANSIENT_NETWORK_ERROR

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class SubmittedButUnconfirmedError(EscrowError):
    """A transaction was broadcast but its confirmation was not observed.

    The outcome is ambiguous. Callers must re-query by job id instead of
    resubmitting.
    """

    kind = ErrorKind.SUBMITTED_BUT_UNCONFIRMED

    def __init__(self, action: str, tx_hash: str, job_id: int | None = None) -> None:
        super().__init__(
            f"{action} submitted as {tx_hash} but not confirmed; "
            "re-query the job before retrying"
        )
        self.action = action
        self.tx_hash = tx_hash
        self.job_id = job_id


class RequestTimeoutError(EscrowError):
    """The caller's deadline passed before anything was submitted."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, action: str, waited_seconds: float) -> None:
        super().__init__(
            f"{action} timed out after {waited_seconds:.1f}s before submission"
        )
        self.action = action


class SequencerStuckError(EscrowError):
    """The watchdog force-released a signing ticket held past its bound."""

    kind = ErrorKind.SEQUENCER_STUCK

    def __init__(self, ticket_id: int, held_seconds: float, tx_hash: str | None = None) -> None:
        super().__init__(
            f"Signing ticket {ticket_id} force-released after {held_seconds:.1f}s"
        )
        self.ticket_id = ticket_id
        self.tx_hash = tx_hash


# --- Ledger adapter errors (internal) ---


class LedgerError(Exception):
    """Base for failures raised by LedgerClient implementations."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        self.message = message
        self.tx_hash = tx_hash
        super().__init__(message)


class LedgerNotFoundError(LedgerError):
    """The ledger has no record for the requested job id."""

    def __init__(self, job_id: int) -> None:
        super().__init__(f"No job {job_id} on ledger")
        self.job_id = job_id


class LedgerRejectedError(LedgerError):
    """The submitter refused the transaction (e.g. simulation reverted)."""


class LedgerInsufficientFundsError(LedgerError):
    """The signing identity cannot cover value plus gas."""


class LedgerTransientError(LedgerError):
    """Connectivity or RPC availability failure."""
