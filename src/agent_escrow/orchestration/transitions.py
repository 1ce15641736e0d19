"""Transition table and local precondition checks.

Every EscrowAction has exactly one TransitionRule. Status edges are
delegated to the JobStateMachine guard; the time and role preconditions
the ledger also enforces are checked here so that requests which would
obviously revert never consume a signing slot.

    Action          Requires                  Result
    createJob       —                         Created
    submitWork      Created                   WorkSubmitted
    approveWork     WorkSubmitted             Completed
    cancelJob       Created                   Cancelled
    disputeJob      Created | WorkSubmitted   Disputed
    resolveDispute  Disputed                  Completed | Cancelled
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from agent_escrow.domain.enums import EscrowAction, JobStatus
from agent_escrow.domain.exceptions import InvalidTransitionError, ValidationError
from agent_escrow.domain.state_machine import can_fire
from agent_escrow.services.projector import to_wei

if TYPE_CHECKING:
    from collections.abc import Callable

    from agent_escrow.domain.models import Job, TransitionRequest

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Job ids are uint256 on the ledger.
MAX_JOB_ID = 2**256 - 1


@dataclass(frozen=True)
class TransitionRule:
    """One row of the transition table."""

    action: EscrowAction
    requires: frozenset[JobStatus]
    results: frozenset[JobStatus]
    events: tuple[str, ...]


@dataclass(frozen=True)
class TransitionContext:
    """What the local checks compare against: who signs, and when."""

    signer: str
    now: datetime
    dispute_window: timedelta


TRANSITIONS: dict[EscrowAction, TransitionRule] = {
    EscrowAction.CREATE_JOB: TransitionRule(
        action=EscrowAction.CREATE_JOB,
        requires=frozenset(),
        results=frozenset({JobStatus.CREATED}),
        events=(),
    ),
    EscrowAction.SUBMIT_WORK: TransitionRule(
        action=EscrowAction.SUBMIT_WORK,
        requires=frozenset({JobStatus.CREATED}),
        results=frozenset({JobStatus.WORK_SUBMITTED}),
        events=("submit_work",),
    ),
    EscrowAction.APPROVE_WORK: TransitionRule(
        action=EscrowAction.APPROVE_WORK,
        requires=frozenset({JobStatus.WORK_SUBMITTED}),
        results=frozenset({JobStatus.COMPLETED}),
        events=("approve_work",),
    ),
    EscrowAction.CANCEL_JOB: TransitionRule(
        action=EscrowAction.CANCEL_JOB,
        requires=frozenset({JobStatus.CREATED}),
        results=frozenset({JobStatus.CANCELLED}),
        events=("cancel_job",),
    ),
    EscrowAction.DISPUTE_JOB: TransitionRule(
        action=EscrowAction.DISPUTE_JOB,
        requires=frozenset({JobStatus.CREATED, JobStatus.WORK_SUBMITTED}),
        results=frozenset({JobStatus.DISPUTED}),
        events=("dispute_job",),
    ),
    EscrowAction.RESOLVE_DISPUTE: TransitionRule(
        action=EscrowAction.RESOLVE_DISPUTE,
        requires=frozenset({JobStatus.DISPUTED}),
        results=frozenset({JobStatus.COMPLETED, JobStatus.CANCELLED}),
        events=("resolve_for_worker", "resolve_for_employer"),
    ),
}

_unmapped = set(EscrowAction) - TRANSITIONS.keys()
if _unmapped:
    raise RuntimeError(f"No transition rule for {sorted(_unmapped)}")


def _same(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Request validation (malformed input -> ValidationError)
# ---------------------------------------------------------------------------


def is_valid_job_id(job_id: int | None) -> bool:
    return job_id is not None and 0 <= job_id <= MAX_JOB_ID


def validate_request(request: TransitionRequest) -> None:
    """Reject malformed requests before any ledger access."""
    params = request.params
    if request.action is EscrowAction.CREATE_JOB:
        if request.job_id is not None:
            raise ValidationError("createJob must not carry a job id", field="job_id")
        if not ADDRESS_PATTERN.match(params.worker or ""):
            raise ValidationError(f"Invalid worker address: {params.worker!r}", field="worker")
        if to_wei(params.amount) <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        return

    if not is_valid_job_id(request.job_id):
        raise ValidationError(f"{request.action} requires a valid job id", field="job_id")
    if request.action is EscrowAction.SUBMIT_WORK and not params.deliverable.strip():
        raise ValidationError("Deliverable must not be empty", field="deliverable")


# ---------------------------------------------------------------------------
# Preconditions against last-known state (-> InvalidTransitionError)
# ---------------------------------------------------------------------------


def check_preconditions(
    request: TransitionRequest,
    job: Job | None,
    ctx: TransitionContext,
) -> TransitionRule:
    """Validate the request against the projected job and return its rule.

    Raises:
        InvalidTransitionError: The transition is illegal from the job's
            current status, or a time/role precondition fails.
    """
    rule = TRANSITIONS[request.action]
    action = request.action.value

    if request.action is EscrowAction.CREATE_JOB:
        _check_create(request, ctx)
        return rule

    if job is None:
        raise InvalidTransitionError(action, None, "job state unknown")
    if job.status is JobStatus.UNKNOWN:
        raise InvalidTransitionError(
            action, job.status.value, f"unrecognized ledger status code {job.status_code}"
        )
    if not any(can_fire(job.status.value, event) for event in rule.events):
        required = " or ".join(sorted(s.value for s in rule.requires))
        raise InvalidTransitionError(action, job.status.value, f"requires status {required}")

    _CHECKS[request.action](request, job, ctx)
    return rule


def _check_create(request: TransitionRequest, ctx: TransitionContext) -> None:
    params = request.params
    if _aware(params.deadline) <= ctx.now:
        raise InvalidTransitionError(
            EscrowAction.CREATE_JOB.value, None, "deadline must be in the future"
        )
    if _same(params.worker, ctx.signer):
        raise InvalidTransitionError(
            EscrowAction.CREATE_JOB.value, None, "worker must differ from employer"
        )


def _check_submit(request: TransitionRequest, job: Job, ctx: TransitionContext) -> None:
    if not _same(ctx.signer, job.worker):
        raise InvalidTransitionError(request.action.value, job.status.value, "caller is not the worker")
    if ctx.now >= job.deadline:
        raise InvalidTransitionError(
            request.action.value, job.status.value, f"deadline {job.deadline.isoformat()} has passed"
        )


def _check_approve(request: TransitionRequest, job: Job, ctx: TransitionContext) -> None:
    if not _same(ctx.signer, job.employer):
        raise InvalidTransitionError(request.action.value, job.status.value, "caller is not the employer")


def _check_cancel(request: TransitionRequest, job: Job, ctx: TransitionContext) -> None:
    if ctx.now < job.deadline:
        raise InvalidTransitionError(
            request.action.value,
            job.status.value,
            f"deadline {job.deadline.isoformat()} not reached",
        )


def _check_dispute(request: TransitionRequest, job: Job, ctx: TransitionContext) -> None:
    if not (_same(ctx.signer, job.employer) or _same(ctx.signer, job.worker)):
        raise InvalidTransitionError(
            request.action.value, job.status.value, "caller is neither employer nor worker"
        )


def _check_resolve(request: TransitionRequest, job: Job, ctx: TransitionContext) -> None:
    if job.dispute_time is None:
        raise InvalidTransitionError(request.action.value, job.status.value, "no dispute time recorded")
    resolvable_at = job.dispute_time + ctx.dispute_window
    if ctx.now < resolvable_at:
        raise InvalidTransitionError(
            request.action.value,
            job.status.value,
            f"resolution window open until {resolvable_at.isoformat()}",
        )


_CHECKS: dict[EscrowAction, Callable[[TransitionRequest, Job, TransitionContext], None]] = {
    EscrowAction.SUBMIT_WORK: _check_submit,
    EscrowAction.APPROVE_WORK: _check_approve,
    EscrowAction.CANCEL_JOB: _check_cancel,
    EscrowAction.DISPUTE_JOB: _check_dispute,
    EscrowAction.RESOLVE_DISPUTE: _check_resolve,
}
