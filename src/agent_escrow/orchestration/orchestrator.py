"""EscrowOrchestrator — drives a job through the escrow state machine.

This is the application layer both front doors (REST routes and MCP
tools) call into. One execute() call runs the whole protocol:

    1. read + project the current job
    2. validate the action locally (table + time/role preconditions)
    3. acquire the signing ticket
    4. submit the transaction
    5. wait for confirmation (bounded, polled with backoff)
    6. re-read the authoritative post-transition job
    7. release the ticket on every exit path
    8. return an ExecutionOutcome or raise a typed EscrowError

Ledger adapter errors never escape: they are re-classified into the
EscrowError taxonomy here.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from structlog.contextvars import bound_contextvars
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from agent_escrow.config import Settings, get_settings
from agent_escrow.domain.enums import ConfirmationStatus, EscrowAction, JobStatus
from agent_escrow.domain.exceptions import (
    JobNotFoundError,
    LedgerInsufficientFundsError,
    LedgerNotFoundError,
    LedgerRejectedError,
    LedgerTransientError,
    RequestTimeoutError,
    SequencerStuckError,
    SubmittedButUnconfirmedError,
    TransientNetworkError,
    TransitionRejectedExternallyError,
    ValidationError,
)
from agent_escrow.domain.models import ExecutionOutcome, SubmissionReceipt
from agent_escrow.ledger import create_ledger_client
from agent_escrow.logging_config import get_logger
from agent_escrow.orchestration.transitions import (
    TransitionContext,
    check_preconditions,
    is_valid_job_id,
    validate_request,
)
from agent_escrow.services.projector import JobStateProjector, from_wei, to_wei
from agent_escrow.services.sequencer import SigningSequencer

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from decimal import Decimal

    from agent_escrow.domain.ledger_protocol import LedgerClient
    from agent_escrow.domain.models import (
        ConfirmationResult,
        Job,
        TransactionHandle,
        TransitionRequest,
    )
    from agent_escrow.orchestration.transitions import TransitionRule

logger = get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _log_retry(retry_state: RetryCallState) -> None:
    outcome = retry_state.outcome
    logger.warning(
        "orchestrator.retrying",
        call=getattr(retry_state.fn, "__name__", str(retry_state.fn)),
        attempt=retry_state.attempt_number,
        error=str(outcome.exception()) if outcome is not None and outcome.failed else None,
    )


def _timed_out(result: ConfirmationResult) -> bool:
    return result.status is ConfirmationStatus.TIMED_OUT


class EscrowOrchestrator:
    """Validates, sequences, submits and confirms escrow transitions."""

    def __init__(
        self,
        ledger: LedgerClient,
        sequencer: SigningSequencer,
        projector: JobStateProjector | None = None,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ledger = ledger
        self._sequencer = sequencer
        self._projector = projector or JobStateProjector()
        self._settings = settings or get_settings()
        self._clock = clock or _utc_now
        # Broadcast transactions whose confirmation wait was cancelled, by tx hash.
        self._abandoned: dict[str, TransactionHandle] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        ledger: LedgerClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> EscrowOrchestrator:
        """Wire ledger client, signing sequencer and projector from settings."""
        ledger = ledger or create_ledger_client(settings, clock=clock)
        sequencer = SigningSequencer(
            identity=ledger.signer_address,
            watchdog_seconds=settings.sequencer_watchdog_seconds,
        )
        return cls(ledger, sequencer, settings=settings, clock=clock)

    @property
    def signer_address(self) -> str:
        return self._ledger.signer_address

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def abandoned_transactions(self) -> dict[str, TransactionHandle]:
        """Submitted transactions whose caller was cancelled before confirmation."""
        return dict(self._abandoned)

    def now(self) -> datetime:
        """Current time as seen by the precondition checks."""
        return self._clock()

    async def close(self) -> None:
        await self._ledger.close()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def query(self, job_id: int) -> Job:
        """Read and project one job. Reads retry with backoff on transient errors.

        Raises:
            ValidationError: Job id outside the uint256 range.
            JobNotFoundError: No such job on the ledger.
            TransientNetworkError: The ledger stayed unreachable.
        """
        if not is_valid_job_id(job_id):
            raise ValidationError(f"Invalid job id: {job_id}", field="job_id")
        try:
            snapshot = await self._read(self._ledger.read_job, job_id)
        except (LedgerNotFoundError, LedgerRejectedError) as exc:
            raise JobNotFoundError(job_id) from exc
        except LedgerTransientError as exc:
            raise TransientNetworkError(f"Could not read job {job_id}: {exc.message}") from exc
        return self._projector.project(job_id, snapshot)

    async def job_count(self) -> int:
        """Total number of jobs ever created on the ledger."""
        try:
            return await self._read(self._ledger.job_count)
        except LedgerTransientError as exc:
            raise TransientNetworkError(f"Could not read job count: {exc.message}") from exc

    async def _read(self, fn: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.read_max_attempts),
            wait=wait_exponential(multiplier=self._settings.read_backoff_seconds, max=10),
            retry=retry_if_exception_type(LedgerTransientError),
            before_sleep=_log_retry,
            reraise=True,
        )
        return await retrying(fn, *args)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def execute(
        self,
        request: TransitionRequest,
        timeout: float | None = None,
    ) -> ExecutionOutcome:
        """Run one transition end to end.

        Args:
            request: The action, its typed params and the target job id.
            timeout: Caller deadline in seconds; defaults to
                settings.request_timeout_seconds. Once a transaction is
                submitted the deadline can only produce
                SubmittedButUnconfirmedError, never a silent drop.

        Returns:
            ExecutionOutcome with the re-read job and the receipt.

        Raises:
            ValidationError, JobNotFoundError, InvalidTransitionError,
            TransitionRejectedExternallyError, TransientNetworkError,
            SubmittedButUnconfirmedError, RequestTimeoutError,
            SequencerStuckError.
        """
        action = request.action
        with bound_contextvars(action=action.value, job_id=request.job_id):
            validate_request(request)

            current = None
            if action is not EscrowAction.CREATE_JOB:
                current = await self.query(request.job_id)

            ctx = TransitionContext(
                signer=self.signer_address,
                now=self.now(),
                dispute_window=timedelta(seconds=self._settings.dispute_resolution_window_seconds),
            )
            rule = check_preconditions(request, current, ctx)
            value_wei = to_wei(request.params.amount) if action is EscrowAction.CREATE_JOB else 0
            logger.debug("orchestrator.validated", status=current.status.value if current else None)

            return await self._submit_and_confirm(request, rule, value_wei, timeout)

    async def _submit_and_confirm(
        self,
        request: TransitionRequest,
        rule: TransitionRule,
        value_wei: int,
        timeout: float | None,
    ) -> ExecutionOutcome:
        action = request.action
        loop = asyncio.get_running_loop()
        budget = timeout if timeout is not None else self._settings.request_timeout_seconds
        started = loop.time()
        deadline = started + budget
        label = f"{action.value}:{request.job_id if request.job_id is not None else 'new'}"

        try:
            async with asyncio.timeout(budget):
                ticket = await self._sequencer.acquire(label)
        except TimeoutError as exc:
            logger.warning("orchestrator.sequencer_wait_timeout", queue_depth=self._sequencer.queue_depth)
            raise RequestTimeoutError(action.value, loop.time() - started) from exc

        handle: TransactionHandle | None = None
        try:
            handle = await self._submit(request, value_wei)
            confirmation = await self._confirm(handle, deadline)
            job_id = (
                confirmation.emitted_job_id
                if action is EscrowAction.CREATE_JOB
                else request.job_id
            )
            job = await self._reread(job_id, rule, confirmation.tx_hash)
        except asyncio.CancelledError:
            if handle is not None:
                self._abandoned[handle.tx_hash] = handle
                logger.error("orchestrator.cancelled_after_submit", tx_hash=handle.tx_hash)
            raise
        finally:
            self._sequencer.release(ticket)

        if ticket.force_released:
            raise SequencerStuckError(
                ticket.ticket_id, loop.time() - ticket.acquired_at, tx_hash=handle.tx_hash
            )

        receipt = SubmissionReceipt(
            tx_hash=confirmation.tx_hash,
            job_id=job_id,
            status=confirmation.status,
            block_number=confirmation.block_number,
            explorer_url=self._settings.explorer_url(confirmation.tx_hash),
        )
        payout = None
        if job is not None and job.status is JobStatus.COMPLETED:
            payout = self.worker_payout(job.amount_wei)

        logger.info(
            "orchestrator.completed",
            job_id=job_id,
            tx_hash=receipt.tx_hash,
            status=job.status.value if job else None,
        )
        return ExecutionOutcome(action=action, job=job, receipt=receipt, worker_payout=payout)

    async def _submit(self, request: TransitionRequest, value_wei: int) -> TransactionHandle:
        action = request.action
        try:
            handle = await self._ledger.submit(action, request.job_id, request.params, value_wei)
        except (LedgerRejectedError, LedgerInsufficientFundsError) as exc:
            logger.warning("orchestrator.rejected", reason=exc.message)
            raise TransitionRejectedExternallyError(action.value, exc.message) from exc
        except LedgerTransientError as exc:
            if exc.tx_hash:
                logger.error("orchestrator.broadcast_ambiguous", tx_hash=exc.tx_hash)
                raise SubmittedButUnconfirmedError(action.value, exc.tx_hash, request.job_id) from exc
            raise TransientNetworkError(f"{action.value} not submitted: {exc.message}") from exc

        logger.info("orchestrator.submitted", tx_hash=handle.tx_hash)
        return handle

    async def _confirm(self, handle: TransactionHandle, deadline: float) -> ConfirmationResult:
        action = handle.action.value
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise SubmittedButUnconfirmedError(action, handle.tx_hash, handle.job_id)

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.confirmation_max_attempts),
            wait=wait_exponential(multiplier=self._settings.confirmation_poll_interval_seconds, max=30),
            retry=retry_if_exception_type(LedgerTransientError) | retry_if_result(_timed_out),
            before_sleep=_log_retry,
        )
        try:
            async with asyncio.timeout(remaining):
                result = await retrying(
                    self._ledger.await_confirmation,
                    handle,
                    min(self._settings.confirmation_timeout_seconds, remaining),
                )
        except (RetryError, TimeoutError) as exc:
            logger.error("orchestrator.unconfirmed", tx_hash=handle.tx_hash)
            raise SubmittedButUnconfirmedError(action, handle.tx_hash, handle.job_id) from exc

        if result.status is ConfirmationStatus.REVERTED:
            logger.warning("orchestrator.reverted", tx_hash=handle.tx_hash, block=result.block_number)
            raise TransitionRejectedExternallyError(action, "transaction reverted", handle.tx_hash)

        logger.info("orchestrator.confirmed", tx_hash=handle.tx_hash, block=result.block_number)
        return result

    async def _reread(self, job_id: int | None, rule: TransitionRule, tx_hash: str) -> Job | None:
        """Fetch the authoritative job after confirmation. Never raises."""
        if job_id is None:
            logger.warning("orchestrator.job_id_unknown", tx_hash=tx_hash)
            return None
        try:
            job = await self.query(job_id)
        except (JobNotFoundError, TransientNetworkError) as exc:
            logger.warning("orchestrator.reread_failed", job_id=job_id, tx_hash=tx_hash, error=exc.message)
            return None

        if job.status not in rule.results:
            logger.error(
                "orchestrator.state_diverged",
                job_id=job_id,
                expected=sorted(s.value for s in rule.results),
                observed=job.status.value,
            )
        return job

    def worker_payout(self, amount_wei: int) -> Decimal:
        """Amount the worker receives once funds are released, after the service fee."""
        fee = amount_wei * self._settings.service_fee_bps // 10_000
        return from_wei(amount_wei - fee)
