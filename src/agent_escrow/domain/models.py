"""Domain value objects for escrow jobs and ledger transactions.

Everything here is immutable. Jobs are never mutated in place: every
transition re-reads the ledger and projects a fresh Job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import ClassVar

from agent_escrow.domain.enums import (
    TERMINAL_STATUSES,
    ConfirmationStatus,
    EscrowAction,
    JobStatus,
)


@dataclass(frozen=True)
class JobSnapshot:
    """A job exactly as the ledger encodes it.

    Attributes:
        employer: Address that created and funded the job.
        worker: Address allowed to submit work.
        amount_wei: Escrowed value in the smallest native unit.
        deadline: Seconds since epoch.
        status_code: Raw status enum ordinal.
        deliverable: Reference submitted by the worker ("" until submitted).
        dispute_time: Seconds since epoch, 0 if never disputed.
    """

    employer: str
    worker: str
    amount_wei: int
    deadline: int
    status_code: int
    deliverable: str
    dispute_time: int = 0


@dataclass(frozen=True)
class Job:
    """Canonical escrow job."""

    job_id: int
    employer: str
    worker: str
    amount: Decimal
    amount_wei: int
    deadline: datetime
    status: JobStatus
    status_code: int
    deliverable: str
    dispute_time: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# Action parameter payloads (one per EscrowAction)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateJobParams:
    action: ClassVar[EscrowAction] = EscrowAction.CREATE_JOB

    worker: str
    amount: Decimal
    deadline: datetime


@dataclass(frozen=True)
class SubmitWorkParams:
    action: ClassVar[EscrowAction] = EscrowAction.SUBMIT_WORK

    deliverable: str


@dataclass(frozen=True)
class ApproveWorkParams:
    action: ClassVar[EscrowAction] = EscrowAction.APPROVE_WORK


@dataclass(frozen=True)
class CancelJobParams:
    action: ClassVar[EscrowAction] = EscrowAction.CANCEL_JOB


@dataclass(frozen=True)
class DisputeJobParams:
    action: ClassVar[EscrowAction] = EscrowAction.DISPUTE_JOB


@dataclass(frozen=True)
class ResolveDisputeParams:
    action: ClassVar[EscrowAction] = EscrowAction.RESOLVE_DISPUTE


ActionParams = (
    CreateJobParams
    | SubmitWorkParams
    | ApproveWorkParams
    | CancelJobParams
    | DisputeJobParams
    | ResolveDisputeParams
)


@dataclass(frozen=True)
class TransitionRequest:
    """A requested mutation. Ephemeral, owned by the call that builds it."""

    params: ActionParams
    job_id: int | None = None

    @property
    def action(self) -> EscrowAction:
        return self.params.action


# ---------------------------------------------------------------------------
# Ledger transaction artefacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionHandle:
    """Returned by LedgerClient.submit once a transaction is broadcast."""

    tx_hash: str
    action: EscrowAction
    job_id: int | None
    submitted_at: datetime


@dataclass(frozen=True)
class ConfirmationResult:
    """Result of one bounded wait for a transaction receipt."""

    status: ConfirmationStatus
    tx_hash: str
    block_number: int | None = None
    emitted_job_id: int | None = None

    @property
    def confirmed(self) -> bool:
        return self.status is ConfirmationStatus.CONFIRMED


@dataclass(frozen=True)
class SubmissionReceipt:
    """Surfaced to the caller after a confirmed write."""

    tx_hash: str
    job_id: int | None
    status: ConfirmationStatus
    block_number: int | None = None
    explorer_url: str = ""


@dataclass(frozen=True)
class ExecutionOutcome:
    """What EscrowOrchestrator.execute hands back after a confirmed write.

    Failures are raised as EscrowError subclasses instead.

    Attributes:
        action: The action that was executed.
        job: Authoritative post-transition job, None if the re-read failed.
        receipt: Transaction details.
        worker_payout: For approveWork, the amount the worker receives after fee.
    """

    action: EscrowAction
    job: Job | None = None
    receipt: SubmissionReceipt | None = None
    worker_payout: Decimal | None = None

    @property
    def transaction_ref(self) -> str | None:
        return self.receipt.tx_hash if self.receipt else None
