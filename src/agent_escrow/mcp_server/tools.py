"""MCP Tool definitions for Agent Escrow.

These tools expose the escrow lifecycle via the Model Context Protocol,
allowing AI agents to discover and call them programmatically.

Tools:
    - create_escrow: Create and fund a job for a worker
    - submit_work: Worker submits a deliverable reference
    - approve_work: Employer approves and releases payment
    - cancel_job: Refund an expired job that got no work
    - dispute_job: Either party raises a dispute
    - resolve_dispute: Settle a dispute after the resolution window
    - get_job_status: Current status and details of a job
    - get_job_count: Total number of jobs

The server is mounted into FastAPI at /mcp and shares the REST API's
orchestrator, so both doors submit through one signing sequencer. Run
standalone (stdio by default) with `agent-escrow-mcp`.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from mcp.server.fastmcp import FastMCP

from agent_escrow.config import get_settings
from agent_escrow.domain.enums import ErrorKind
from agent_escrow.domain.exceptions import EscrowError, ValidationError
from agent_escrow.domain.models import (
    ApproveWorkParams,
    CancelJobParams,
    CreateJobParams,
    DisputeJobParams,
    ResolveDisputeParams,
    SubmitWorkParams,
    TransitionRequest,
)
from agent_escrow.logging_config import get_logger, setup_logging
from agent_escrow.orchestration.orchestrator import EscrowOrchestrator
from agent_escrow.schemas.jobs import JobResponse, TransactionResponse

if TYPE_CHECKING:
    from agent_escrow.domain.models import ExecutionOutcome

logger = get_logger(__name__)


def _error(exc: EscrowError) -> dict:
    result = {"success": False, "error": str(exc.code), "message": exc.message}
    tx_hash = getattr(exc, "tx_hash", None)
    if tx_hash:
        result["tx_hash"] = tx_hash
    return result


def _internal_error() -> dict:
    return {
        "success": False,
        "error": ErrorKind.INTERNAL_ERROR.value,
        "message": "An unexpected error occurred",
    }


def _parse_amount(amount_eth: str) -> Decimal:
    try:
        return Decimal(str(amount_eth).strip())
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid amount: {amount_eth!r}", field="amount_eth") from exc


class EscrowTools:
    """Tool handlers bound to one EscrowOrchestrator."""

    def __init__(self, orchestrator: EscrowOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def _execute(self, tool: str, request: TransitionRequest, message: str) -> dict:
        try:
            outcome = await self._orchestrator.execute(request)
        except EscrowError as exc:
            logger.warning(f"mcp.{tool}.failed", kind=str(exc.code), error=exc.message)
            return _error(exc)
        except Exception:
            logger.exception(f"mcp.{tool}.error")
            return _internal_error()
        return self._describe(outcome, message)

    @staticmethod
    def _describe(outcome: ExecutionOutcome, message: str) -> dict:
        result = TransactionResponse.from_outcome(outcome).model_dump(mode="json")
        result["message"] = message
        return result

    # ------------------------------------------------------------------
    # Mutating tools
    # ------------------------------------------------------------------

    async def create_escrow(
        self,
        worker_address: str,
        amount_eth: str,
        deadline_hours: float = 24,
    ) -> dict:
        """Create a new escrow job. Deposits the payment and creates a job for the worker.

        Args:
            worker_address: Address of the worker who will perform the job (0x...).
            amount_eth: Payment amount in ETH (e.g. "0.01").
            deadline_hours: Hours from now until the job expires (e.g. 24 for 1 day).

        Returns:
            Transaction details including the job_id needed for later calls.
        """
        try:
            params = CreateJobParams(
                worker=worker_address,
                amount=_parse_amount(amount_eth),
                deadline=self._deadline(deadline_hours),
            )
        except ValidationError as exc:
            return _error(exc)
        return await self._execute(
            "create_escrow",
            TransitionRequest(params=params),
            "Job created and funded. The worker can now submit work.",
        )

    def _deadline(self, hours: float) -> datetime:
        if not math.isfinite(hours) or hours <= 0:
            raise ValidationError("deadline_hours must be a positive number", field="deadline_hours")
        try:
            return self._orchestrator.now() + timedelta(hours=hours)
        except OverflowError as exc:
            raise ValidationError(
                f"deadline_hours out of range: {hours}", field="deadline_hours"
            ) from exc

    async def submit_work(self, job_id: int, deliverable: str) -> dict:
        """Submit completed work for an escrow job.

        Args:
            job_id: The escrow job ID.
            deliverable: Reference to the completed work (IPFS hash, GitHub URL, ...).
        """
        return await self._execute(
            "submit_work",
            TransitionRequest(params=SubmitWorkParams(deliverable=deliverable), job_id=job_id),
            "Work submitted. Waiting for the employer to approve.",
        )

    async def approve_work(self, job_id: int) -> dict:
        """Approve submitted work and release payment to the worker, minus the service fee.

        Args:
            job_id: The escrow job ID to approve.
        """
        return await self._execute(
            "approve_work",
            TransitionRequest(params=ApproveWorkParams(), job_id=job_id),
            "Payment released to worker.",
        )

    async def cancel_job(self, job_id: int) -> dict:
        """Cancel an expired job and refund the employer.

        Only works once the deadline has passed and no work was submitted.

        Args:
            job_id: The escrow job ID to cancel.
        """
        return await self._execute(
            "cancel_job",
            TransitionRequest(params=CancelJobParams(), job_id=job_id),
            "Job cancelled, refund issued.",
        )

    async def dispute_job(self, job_id: int) -> dict:
        """Raise a dispute for a job. Starts the dispute resolution window.

        Args:
            job_id: The escrow job ID to dispute.
        """
        window_days = self._orchestrator.settings.dispute_resolution_window_seconds / 86_400
        return await self._execute(
            "dispute_job",
            TransitionRequest(params=DisputeJobParams(), job_id=job_id),
            f"Dispute raised. Resolution possible after {window_days:g} days.",
        )

    async def resolve_dispute(self, job_id: int) -> dict:
        """Resolve a disputed job once the resolution window has elapsed.

        Args:
            job_id: The disputed job ID to resolve.
        """
        return await self._execute(
            "resolve_dispute",
            TransitionRequest(params=ResolveDisputeParams(), job_id=job_id),
            "Dispute resolved.",
        )

    # ------------------------------------------------------------------
    # Read-only tools
    # ------------------------------------------------------------------

    async def get_job_status(self, job_id: int) -> dict:
        """Get the current status and details of an escrow job.

        Args:
            job_id: The escrow job ID to query.
        """
        try:
            job = await self._orchestrator.query(job_id)
        except EscrowError as exc:
            return _error(exc)
        except Exception:
            logger.exception("mcp.get_job_status.error")
            return _internal_error()
        return JobResponse.from_job(job).model_dump(mode="json")

    async def get_job_count(self) -> dict:
        """Get the total number of escrow jobs ever created."""
        try:
            count = await self._orchestrator.job_count()
        except EscrowError as exc:
            return _error(exc)
        except Exception:
            logger.exception("mcp.get_job_count.error")
            return _internal_error()
        return {"count": count}

    def handlers(self) -> list:
        return [
            self.create_escrow,
            self.submit_work,
            self.approve_work,
            self.cancel_job,
            self.dispute_job,
            self.resolve_dispute,
            self.get_job_status,
            self.get_job_count,
        ]


def create_mcp_server(orchestrator: EscrowOrchestrator) -> FastMCP:
    """Build a FastMCP server whose tools call `orchestrator`."""
    mcp = FastMCP("Agent Escrow", json_response=True)
    for tool in EscrowTools(orchestrator).handlers():
        mcp.add_tool(tool)
    return mcp


def main() -> None:
    """Run the MCP server standalone (console script `agent-escrow-mcp`)."""
    settings = get_settings()
    setup_logging(log_level=settings.app_log_level, json_logs=not settings.is_development)
    orchestrator = EscrowOrchestrator.from_settings(settings)
    logger.info(
        "mcp.starting",
        transport=settings.mcp_transport,
        signer=orchestrator.signer_address,
        ledger=settings.ledger_backend,
    )
    create_mcp_server(orchestrator).run(transport=settings.mcp_transport)


if __name__ == "__main__":
    main()
