"""Service info and health check endpoints.

Health verifies the ledger answers a cheap view call. Used by Docker
healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from agent_escrow.api.deps import get_orchestrator
from agent_escrow.config import VERSION
from agent_escrow.domain.exceptions import EscrowError
from agent_escrow.logging_config import get_logger
from agent_escrow.orchestration.orchestrator import EscrowOrchestrator
from agent_escrow.schemas.jobs import HealthResponse, ServiceInfoResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/",
    response_model=ServiceInfoResponse,
    summary="Service info",
)
async def service_info(
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> ServiceInfoResponse:
    settings = orchestrator.settings
    return ServiceInfoResponse(
        name="agent-escrow",
        version=VERSION,
        contract=settings.contract_address,
        network=settings.network_name,
        chain_id=settings.chain_id,
        ledger_backend=settings.ledger_backend,
        signer=orchestrator.signer_address,
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its ledger connection.",
)
async def health_check(
    orchestrator: EscrowOrchestrator = Depends(get_orchestrator),
) -> HealthResponse:
    """Check that the ledger answers jobCount."""
    try:
        count = await orchestrator.job_count()
    except EscrowError as exc:
        logger.error("health.ledger_check_failed", error=exc.message)
        return HealthResponse(status="degraded", version=VERSION, ledger=f"unhealthy: {exc.message}")

    return HealthResponse(status="ok", version=VERSION, ledger="healthy", job_count=count)
