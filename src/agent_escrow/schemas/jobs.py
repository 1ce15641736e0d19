"""Pydantic schemas for the escrow job API.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the domain dataclasses so that the
wire format (decimal amounts as strings, ISO timestamps) can evolve
without touching the core.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from agent_escrow.domain.models import ExecutionOutcome, Job
from agent_escrow.services.projector import format_amount

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateJobRequest(BaseModel):
    """Request body for creating and funding a new escrow job."""

    worker: str = Field(
        ...,
        pattern=r"^0x[0-9a-fA-F]{40}$",
        description="Address of the worker agent (0x-prefixed, 42 chars)",
        examples=["0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"],
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Escrow amount in ETH, at most 18 decimal places",
        examples=["0.01"],
    )
    deadline: datetime = Field(
        ...,
        description="Absolute deadline (ISO 8601). Naive values are read as UTC.",
        examples=["2026-01-01T00:00:00Z"],
    )


class SubmitWorkRequest(BaseModel):
    """Request body for submitting a deliverable."""

    deliverable: str = Field(
        ...,
        min_length=1,
        max_length=10_000,
        description="Reference to the delivered work (URL, IPFS hash, ...)",
        examples=["ipfs://QmExample"],
    )


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class JobResponse(BaseModel):
    """Response schema for an escrow job."""

    job_id: int
    employer: str
    worker: str
    amount: str
    deadline: datetime
    status: str
    deliverable: str
    dispute_time: datetime | None = None

    @classmethod
    def from_job(cls, job: Job) -> JobResponse:
        return cls(
            job_id=job.job_id,
            employer=job.employer,
            worker=job.worker,
            amount=format_amount(job.amount),
            deadline=job.deadline,
            status=job.status.value,
            deliverable=job.deliverable,
            dispute_time=job.dispute_time,
        )


class TransactionResponse(BaseModel):
    """Response for a confirmed mutating call."""

    success: bool = True
    action: str
    job_id: int | None
    tx_hash: str | None
    explorer: str | None = None
    block_number: int | None = None
    job: JobResponse | None = None
    worker_payout: str | None = None

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome) -> TransactionResponse:
        receipt = outcome.receipt
        return cls(
            action=outcome.action.value,
            job_id=receipt.job_id if receipt else None,
            tx_hash=receipt.tx_hash if receipt else None,
            explorer=receipt.explorer_url if receipt else None,
            block_number=receipt.block_number if receipt else None,
            job=JobResponse.from_job(outcome.job) if outcome.job else None,
            worker_payout=(
                format_amount(outcome.worker_payout)
                if outcome.worker_payout is not None
                else None
            ),
        )


class JobCountResponse(BaseModel):
    """Total number of jobs created on the ledger."""

    count: int


class ServiceInfoResponse(BaseModel):
    """Static service description served at the root path."""

    name: str
    version: str
    contract: str
    network: str
    chain_id: int
    ledger_backend: str
    signer: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    ledger: str
    job_count: int | None = None


class ErrorResponse(BaseModel):
    """Shape of every error body returned by the API."""

    error: str
    message: str
    tx_hash: str | None = None
