"""Domain enumerations for Agent Escrow.

These enums define the canonical states, actions and error codes used
throughout the system. They are framework-agnostic (no web3, no FastAPI
imports).
"""

import enum


class JobStatus(enum.StrEnum):
    """Lifecycle states of an escrow job.

    State transitions are enforced by the JobStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    CREATED = "Created"
    WORK_SUBMITTED = "WorkSubmitted"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    DISPUTED = "Disputed"

    # Projection of a status code the ledger returned but we do not know.
    UNKNOWN = "Unknown"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED})


class EscrowAction(enum.StrEnum):
    """The closed set of mutating actions.

    Values are the escrow contract's function names.
    """

    CREATE_JOB = "createJob"
    SUBMIT_WORK = "submitWork"
    APPROVE_WORK = "approveWork"
    CANCEL_JOB = "cancelJob"
    DISPUTE_JOB = "disputeJob"
    RESOLVE_DISPUTE = "resolveDispute"


class ConfirmationStatus(enum.StrEnum):
    """Outcome of one bounded wait for a transaction receipt."""

    CONFIRMED = "CONFIRMED"
    TIMED_OUT = "TIMED_OUT"
    REVERTED = "REVERTED"


class ErrorKind(enum.StrEnum):
    """Stable error codes surfaced by both front doors."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    TRANSITION_REJECTED_EXTERNALLY = "TRANSITION_REJECTED_EXTERNALLY"
    TRANSIENT_NETWORK_ERROR = "TRANSIENT_NETWORK_ERROR"
    SUBMITTED_BUT_UNCONFIRMED = "SUBMITTED_BUT_UNCONFIRMED"
    TIMEOUT = "TIMEOUT"
    SEQUENCER_STUCK = "SEQUENCER_STUCK"
    INTERNAL_ERROR = "INTERNAL_ERROR"
