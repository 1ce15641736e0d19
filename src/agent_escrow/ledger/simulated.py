"""In-memory escrow ledger for development, dry-run simulations and tests.

Mirrors the deployed contract's observable behaviour closely enough to
drive the orchestrator end to end without a chain:

    - jobs are numbered from 1 and never deleted
    - value is debited from the sender on createJob and paid out on
      approve / cancel / resolve (approve pays worker minus the service fee)
    - every rule the contract enforces reverts with LedgerRejectedError

One SimulatedEscrowContract holds the shared state; each signing identity
talks to it through its own SimulatedLedgerClient, the same way several
wallets talk to one deployed contract.
"""

from __future__ import annotations

import asyncio
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from agent_escrow.domain.enums import ConfirmationStatus, EscrowAction, JobStatus
from agent_escrow.domain.exceptions import (
    LedgerInsufficientFundsError,
    LedgerNotFoundError,
    LedgerRejectedError,
    LedgerTransientError,
)
from agent_escrow.domain.models import (
    ConfirmationResult,
    CreateJobParams,
    JobSnapshot,
    SubmitWorkParams,
    TransactionHandle,
)
from agent_escrow.ledger.abi import ZERO_ADDRESS
from agent_escrow.logging_config import get_logger
from agent_escrow.services.projector import CODE_BY_STATUS, to_timestamp

if TYPE_CHECKING:
    from collections.abc import Callable

    from agent_escrow.domain.models import ActionParams

logger = get_logger(__name__)

FEE_COLLECTOR = "0x000000000000000000000000000000000000fEe5"


def _utc_now() -> datetime:
    return datetime.now(UTC)


def _same(a: str, b: str) -> bool:
    return a.lower() == b.lower()


@dataclass
class _JobRecord:
    employer: str
    worker: str
    amount_wei: int
    deadline: int
    status: JobStatus
    deliverable: str = ""
    dispute_time: int = 0

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            employer=self.employer,
            worker=self.worker,
            amount_wei=self.amount_wei,
            deadline=self.deadline,
            status_code=CODE_BY_STATUS[self.status],
            deliverable=self.deliverable,
            dispute_time=self.dispute_time,
        )


class SimulatedEscrowContract:
    """Shared in-memory contract state."""

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        service_fee_bps: int = 100,
        dispute_window_seconds: int = 7 * 24 * 3600,
        fee_collector: str = FEE_COLLECTOR,
    ) -> None:
        self._clock = clock or _utc_now
        self.service_fee_bps = service_fee_bps
        self.dispute_window_seconds = dispute_window_seconds
        self.fee_collector = fee_collector
        self.balances: dict[str, int] = defaultdict(int)
        self._jobs: dict[int, _JobRecord] = {}
        self._receipts: dict[str, ConfirmationResult] = {}
        self._block_number = 0

        # Knobs for exercising failure paths.
        self.confirmation_delay: float = 0.0
        self.fail_reads: int = 0

        # (sender, action, job_id) in the order transactions were accepted.
        self.transactions: list[tuple[str, EscrowAction, int | None]] = []

    # --- Balances ---

    def fund(self, address: str, amount_wei: int) -> None:
        self.balances[address.lower()] += amount_wei

    def balance_of(self, address: str) -> int:
        return self.balances[address.lower()]

    def _pay(self, address: str, amount_wei: int) -> None:
        self.balances[address.lower()] += amount_wei

    # --- Views ---

    def now(self) -> int:
        return to_timestamp(self._clock())

    def job_count(self) -> int:
        return len(self._jobs)

    def read(self, job_id: int) -> JobSnapshot:
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise LedgerTransientError("simulated RPC outage")
        record = self._jobs.get(job_id)
        if record is None:
            raise LedgerNotFoundError(job_id)
        return record.snapshot()

    def receipt(self, tx_hash: str) -> ConfirmationResult | None:
        return self._receipts.get(tx_hash)

    # --- Mutations ---

    def apply(
        self,
        sender: str,
        action: EscrowAction,
        job_id: int | None,
        params: ActionParams,
        value_wei: int = 0,
    ) -> ConfirmationResult:
        """Execute one transaction atomically and record its receipt."""
        emitted: int | None = None
        if action is EscrowAction.CREATE_JOB:
            emitted = self._create_job(sender, params, value_wei)
        else:
            record = self._record(job_id)
            handler = {
                EscrowAction.SUBMIT_WORK: self._submit_work,
                EscrowAction.APPROVE_WORK: self._approve_work,
                EscrowAction.CANCEL_JOB: self._cancel_job,
                EscrowAction.DISPUTE_JOB: self._dispute_job,
                EscrowAction.RESOLVE_DISPUTE: self._resolve_dispute,
            }[action]
            handler(sender, record, params)

        self._block_number += 1
        tx_hash = "0x" + uuid.uuid4().hex + uuid.uuid4().hex
        result = ConfirmationResult(
            status=ConfirmationStatus.CONFIRMED,
            tx_hash=tx_hash,
            block_number=self._block_number,
            emitted_job_id=emitted,
        )
        self._receipts[tx_hash] = result
        self.transactions.append((sender, action, emitted if emitted is not None else job_id))
        logger.debug(
            "ledger.simulated.mined",
            action=action.value,
            job_id=emitted if emitted is not None else job_id,
            block=self._block_number,
        )
        return result

    def _record(self, job_id: int | None) -> _JobRecord:
        record = self._jobs.get(job_id) if job_id is not None else None
        if record is None:
            raise LedgerRejectedError(f"execution reverted: job {job_id} does not exist")
        return record

    def _create_job(self, sender: str, params: CreateJobParams, value_wei: int) -> int:
        deadline = to_timestamp(params.deadline)
        if value_wei <= 0:
            raise LedgerRejectedError("execution reverted: payment required")
        if deadline <= self.now():
            raise LedgerRejectedError("execution reverted: deadline in the past")
        if _same(params.worker, ZERO_ADDRESS) or _same(params.worker, sender):
            raise LedgerRejectedError("execution reverted: invalid worker")
        if self.balance_of(sender) < value_wei:
            raise LedgerInsufficientFundsError(
                f"insufficient funds for transfer: have {self.balance_of(sender)} want {value_wei}"
            )

        self.balances[sender.lower()] -= value_wei
        job_id = len(self._jobs) + 1
        self._jobs[job_id] = _JobRecord(
            employer=sender,
            worker=params.worker,
            amount_wei=value_wei,
            deadline=deadline,
            status=JobStatus.CREATED,
        )
        return job_id

    def _submit_work(self, sender: str, record: _JobRecord, params: SubmitWorkParams) -> None:
        if record.status is not JobStatus.CREATED:
            raise LedgerRejectedError("execution reverted: job not open")
        if not _same(sender, record.worker):
            raise LedgerRejectedError("execution reverted: only worker")
        if self.now() >= record.deadline:
            raise LedgerRejectedError("execution reverted: deadline passed")
        if not params.deliverable:
            raise LedgerRejectedError("execution reverted: empty deliverable")
        record.deliverable = params.deliverable
        record.status = JobStatus.WORK_SUBMITTED

    def _approve_work(self, sender: str, record: _JobRecord, _params: ActionParams) -> None:
        if record.status is not JobStatus.WORK_SUBMITTED:
            raise LedgerRejectedError("execution reverted: no work submitted")
        if not _same(sender, record.employer):
            raise LedgerRejectedError("execution reverted: only employer")
        self._release_to_worker(record)
        record.status = JobStatus.COMPLETED

    def _cancel_job(self, _sender: str, record: _JobRecord, _params: ActionParams) -> None:
        if record.status is not JobStatus.CREATED:
            raise LedgerRejectedError("execution reverted: job not open")
        if self.now() < record.deadline:
            raise LedgerRejectedError("execution reverted: deadline not reached")
        self._pay(record.employer, record.amount_wei)
        record.status = JobStatus.CANCELLED

    def _dispute_job(self, sender: str, record: _JobRecord, _params: ActionParams) -> None:
        if record.status not in (JobStatus.CREATED, JobStatus.WORK_SUBMITTED):
            raise LedgerRejectedError("execution reverted: cannot dispute")
        if not (_same(sender, record.employer) or _same(sender, record.worker)):
            raise LedgerRejectedError("execution reverted: not a party")
        record.dispute_time = self.now()
        record.status = JobStatus.DISPUTED

    def _resolve_dispute(self, _sender: str, record: _JobRecord, _params: ActionParams) -> None:
        if record.status is not JobStatus.DISPUTED:
            raise LedgerRejectedError("execution reverted: not disputed")
        if self.now() < record.dispute_time + self.dispute_window_seconds:
            raise LedgerRejectedError("execution reverted: resolution window open")
        # Delivered work is paid out; otherwise the employer is refunded.
        if record.deliverable:
            self._release_to_worker(record)
            record.status = JobStatus.COMPLETED
        else:
            self._pay(record.employer, record.amount_wei)
            record.status = JobStatus.CANCELLED

    def _release_to_worker(self, record: _JobRecord) -> None:
        fee = record.amount_wei * self.service_fee_bps // 10_000
        self._pay(record.worker, record.amount_wei - fee)
        self._pay(self.fee_collector, fee)


class SimulatedLedgerClient:
    """LedgerClient for one signing identity against a SimulatedEscrowContract."""

    def __init__(self, contract: SimulatedEscrowContract, signer_address: str) -> None:
        self._contract = contract
        self._signer = signer_address

    @property
    def signer_address(self) -> str:
        return self._signer

    @property
    def contract(self) -> SimulatedEscrowContract:
        return self._contract

    async def read_job(self, job_id: int) -> JobSnapshot:
        await asyncio.sleep(0)
        return self._contract.read(job_id)

    async def job_count(self) -> int:
        await asyncio.sleep(0)
        return self._contract.job_count()

    async def submit(
        self,
        action: EscrowAction,
        job_id: int | None,
        params: ActionParams,
        value_wei: int = 0,
    ) -> TransactionHandle:
        await asyncio.sleep(0)
        result = self._contract.apply(self._signer, action, job_id, params, value_wei)
        return TransactionHandle(
            tx_hash=result.tx_hash,
            action=action,
            job_id=job_id,
            submitted_at=datetime.now(UTC),
        )

    async def await_confirmation(
        self, handle: TransactionHandle, timeout: float
    ) -> ConfirmationResult:
        delay = self._contract.confirmation_delay
        if delay > timeout:
            await asyncio.sleep(timeout)
            return ConfirmationResult(status=ConfirmationStatus.TIMED_OUT, tx_hash=handle.tx_hash)
        await asyncio.sleep(delay)
        result = self._contract.receipt(handle.tx_hash)
        if result is None:
            return ConfirmationResult(status=ConfirmationStatus.TIMED_OUT, tx_hash=handle.tx_hash)
        return result

    async def close(self) -> None:
        return None
