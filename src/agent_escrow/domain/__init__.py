"""Domain layer — pure business logic with zero framework dependencies."""

from agent_escrow.domain.enums import (
    ConfirmationStatus,
    ErrorKind,
    EscrowAction,
    JobStatus,
)
from agent_escrow.domain.exceptions import (
    EscrowError,
    InvalidTransitionError,
    JobNotFoundError,
    LedgerError,
    ValidationError,
)
from agent_escrow.domain.ledger_protocol import LedgerClient
from agent_escrow.domain.models import (
    ExecutionOutcome,
    Job,
    JobSnapshot,
    TransitionRequest,
)
from agent_escrow.domain.state_machine import (
    JobStateMachine,
    validate_transition,
)

__all__ = [
    "ConfirmationStatus",
    "ErrorKind",
    "EscrowAction",
    "JobStatus",
    "EscrowError",
    "InvalidTransitionError",
    "JobNotFoundError",
    "LedgerError",
    "ValidationError",
    "LedgerClient",
    "ExecutionOutcome",
    "Job",
    "JobSnapshot",
    "TransitionRequest",
    "JobStateMachine",
    "validate_transition",
]
