"""JobStateProjector — maps raw ledger records onto the canonical Job.

Single source of truth for:
    - status code <-> JobStatus
    - wei <-> Decimal display units (18 decimals, exact)
    - epoch seconds <-> aware UTC datetimes

Status encoding (matches the deployed contract's `Status` enum order):
    0 Created, 1 WorkSubmitted, 2 Completed, 3 Cancelled, 4 Disputed
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation, localcontext

from agent_escrow.domain.enums import JobStatus
from agent_escrow.domain.exceptions import ValidationError
from agent_escrow.domain.models import Job, JobSnapshot

DECIMALS = 18
# Enough digits for any uint256.
_PRECISION = 80

STATUS_BY_CODE: dict[int, JobStatus] = {
    0: JobStatus.CREATED,
    1: JobStatus.WORK_SUBMITTED,
    2: JobStatus.COMPLETED,
    3: JobStatus.CANCELLED,
    4: JobStatus.DISPUTED,
}
CODE_BY_STATUS: dict[JobStatus, int] = {status: code for code, status in STATUS_BY_CODE.items()}


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


def to_wei(amount: Decimal | str | int) -> int:
    """Convert a display amount ("0.01") to wei.

    Raises:
        ValidationError: Not a finite number, negative, or more precise
            than the ledger can represent.
    """
    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {amount!r}", field="amount")
    if value < 0:
        raise ValidationError("Amount must not be negative", field="amount")

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        scaled = value.scaleb(DECIMALS)
        if scaled != scaled.to_integral_value():
            raise ValidationError(
                f"Amount {amount} has more than {DECIMALS} decimal places",
                field="amount",
            )
        return int(scaled)


def from_wei(amount_wei: int) -> Decimal:
    """Convert wei to a Decimal in display units, without rounding."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return Decimal(amount_wei).scaleb(-DECIMALS)


def format_amount(amount: Decimal) -> str:
    """Render an amount the way the ledger's ether formatter does ("0.01", "1")."""
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        return format(amount.normalize(), "f")


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------


def from_timestamp(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=UTC)


def to_timestamp(moment: datetime) -> int:
    """Seconds since epoch, flooring sub-second precision. Naive means UTC."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return math.floor(moment.timestamp())


# ---------------------------------------------------------------------------
# Projector
# ---------------------------------------------------------------------------


class JobStateProjector:
    """Pure mapping between JobSnapshot (ledger encoding) and Job."""

    def status_for(self, code: int) -> JobStatus:
        """Unrecognized codes degrade to JobStatus.UNKNOWN instead of failing."""
        return STATUS_BY_CODE.get(code, JobStatus.UNKNOWN)

    def code_for(self, status: JobStatus) -> int:
        try:
            return CODE_BY_STATUS[status]
        except KeyError:
            raise ValueError(f"Status {status} has no ledger encoding") from None

    def project(self, job_id: int, snapshot: JobSnapshot) -> Job:
        return Job(
            job_id=job_id,
            employer=snapshot.employer,
            worker=snapshot.worker,
            amount=from_wei(snapshot.amount_wei),
            amount_wei=snapshot.amount_wei,
            deadline=from_timestamp(snapshot.deadline),
            status=self.status_for(snapshot.status_code),
            status_code=snapshot.status_code,
            deliverable=snapshot.deliverable,
            dispute_time=from_timestamp(snapshot.dispute_time) if snapshot.dispute_time else None,
        )

    def to_snapshot(self, job: Job) -> JobSnapshot:
        """Inverse of project(). Keeps the raw status code of UNKNOWN jobs."""
        return JobSnapshot(
            employer=job.employer,
            worker=job.worker,
            amount_wei=to_wei(job.amount),
            deadline=to_timestamp(job.deadline),
            status_code=job.status_code,
            deliverable=job.deliverable,
            dispute_time=to_timestamp(job.dispute_time) if job.dispute_time else 0,
        )
