"""Escrow job REST API routes.

Every mutating endpoint builds a TransitionRequest and hands it to the
shared EscrowOrchestrator; the MCP tools in mcp_server/tools.py go
through the same orchestrator, so both doors share one signing sequencer.

Routes:
    POST   /api/v1/jobs                — Create and fund a new job
    GET    /api/v1/jobs/count          — Total jobs created
    GET    /api/v1/jobs/{id}           — Job details
    POST   /api/v1/jobs/{id}/submit    — Worker submits a deliverable
    POST   /api/v1/jobs/{id}/approve   — Employer approves, funds released
    POST   /api/v1/jobs/{id}/cancel    — Refund after an expired deadline
    POST   /api/v1/jobs/{id}/dispute   — Either party raises a dispute
    POST   /api/v1/jobs/{id}/resolve   — Settle a dispute after the window
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from agent_escrow.api.deps import get_orchestrator
from agent_escrow.domain.models import (
    ApproveWorkParams,
    CancelJobParams,
    CreateJobParams,
    DisputeJobParams,
    ResolveDisputeParams,
    SubmitWorkParams,
    TransitionRequest,
)
from agent_escrow.logging_config import get_logger
from agent_escrow.orchestration.orchestrator import EscrowOrchestrator
from agent_escrow.schemas.jobs import (
    CreateJobRequest,
    ErrorResponse,
    JobCountResponse,
    JobResponse,
    SubmitWorkRequest,
    TransactionResponse,
)

# Mirrors STATUS_BY_KIND in api/middleware.py.
ERROR_RESPONSES: dict[int | str, dict] = {
    400: {"model": ErrorResponse, "description": "Malformed request"},
    404: {"model": ErrorResponse, "description": "Job not found"},
    409: {"model": ErrorResponse, "description": "Transition not allowed in the current state"},
    500: {"model": ErrorResponse, "description": "Internal error"},
    502: {"model": ErrorResponse, "description": "Ledger rejected the transaction or is unreachable"},
    504: {"model": ErrorResponse, "description": "Submitted but unconfirmed, or timed out"},
}

router = APIRouter(prefix="/api/v1/jobs", tags=["Jobs"], responses=ERROR_RESPONSES)
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=TransactionResponse,
    status_code=201,
    summary="Create and fund a new escrow job",
)
async def create_job(
    request: CreateJobRequest,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    """Escrow `amount` for `worker` until `deadline`. The signer becomes the employer."""
    outcome = await orchestrator.execute(
        TransitionRequest(
            params=CreateJobParams(
                worker=request.worker,
                amount=request.amount,
                deadline=request.deadline,
            )
        )
    )
    return TransactionResponse.from_outcome(outcome)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@router.get(
    "/count",
    response_model=JobCountResponse,
    summary="Total number of jobs",
)
async def get_job_count(
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> JobCountResponse:
    return JobCountResponse(count=await orchestrator.job_count())


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
)
async def get_job(
    job_id: int,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> JobResponse:
    job = await orchestrator.query(job_id)
    return JobResponse.from_job(job)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


@router.post(
    "/{job_id}/submit",
    response_model=TransactionResponse,
    summary="Submit work",
)
async def submit_work(
    job_id: int,
    request: SubmitWorkRequest,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    """Created -> WorkSubmitted. Only the worker, only before the deadline."""
    outcome = await orchestrator.execute(
        TransitionRequest(params=SubmitWorkParams(deliverable=request.deliverable), job_id=job_id)
    )
    return TransactionResponse.from_outcome(outcome)


@router.post(
    "/{job_id}/approve",
    response_model=TransactionResponse,
    summary="Approve work and release payment",
)
async def approve_work(
    job_id: int,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    """WorkSubmitted -> Completed. The worker receives the amount minus the service fee."""
    outcome = await orchestrator.execute(
        TransitionRequest(params=ApproveWorkParams(), job_id=job_id)
    )
    return TransactionResponse.from_outcome(outcome)


@router.post(
    "/{job_id}/cancel",
    response_model=TransactionResponse,
    summary="Cancel an expired job",
)
async def cancel_job(
    job_id: int,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    """Created -> Cancelled once the deadline has passed. Refunds the employer."""
    outcome = await orchestrator.execute(
        TransitionRequest(params=CancelJobParams(), job_id=job_id)
    )
    return TransactionResponse.from_outcome(outcome)


@router.post(
    "/{job_id}/dispute",
    response_model=TransactionResponse,
    summary="Raise a dispute",
)
async def dispute_job(
    job_id: int,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    """Created | WorkSubmitted -> Disputed. Starts the resolution window."""
    outcome = await orchestrator.execute(
        TransitionRequest(params=DisputeJobParams(), job_id=job_id)
    )
    return TransactionResponse.from_outcome(outcome)


@router.post(
    "/{job_id}/resolve",
    response_model=TransactionResponse,
    summary="Resolve a dispute",
)
async def resolve_dispute(
    job_id: int,
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> TransactionResponse:
    """Disputed -> Completed | Cancelled, after the resolution window."""
    outcome = await orchestrator.execute(
        TransitionRequest(params=ResolveDisputeParams(), job_id=job_id)
    )
    return TransactionResponse.from_outcome(outcome)
