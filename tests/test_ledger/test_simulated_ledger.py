"""Tests for the in-memory escrow contract and its LedgerClient."""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from agent_escrow.config import Settings
from agent_escrow.domain.enums import ConfirmationStatus, EscrowAction, JobStatus
from agent_escrow.domain.exceptions import (
    LedgerInsufficientFundsError,
    LedgerNotFoundError,
    LedgerRejectedError,
    LedgerTransientError,
)
from agent_escrow.domain.ledger_protocol import LedgerClient
from agent_escrow.domain.models import (
    ApproveWorkParams,
    CancelJobParams,
    CreateJobParams,
    DisputeJobParams,
    ResolveDisputeParams,
    SubmitWorkParams,
)
from agent_escrow.ledger import DEV_SIGNER_ADDRESS, create_ledger_client
from agent_escrow.ledger.simulated import FEE_COLLECTOR, SimulatedLedgerClient
from agent_escrow.services.projector import CODE_BY_STATUS, to_wei

EMPLOYER = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
WORKER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OUTSIDER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


def _create(contract, clock, amount: str = "0.01", hours: float = 24, sender: str = EMPLOYER) -> int:
    params = CreateJobParams(
        worker=WORKER, amount=Decimal(amount), deadline=clock() + timedelta(hours=hours)
    )
    result = contract.apply(sender, EscrowAction.CREATE_JOB, None, params, to_wei(amount))
    return result.emitted_job_id


class TestCreate:
    def test_ids_start_at_one(self, contract, clock) -> None:
        assert _create(contract, clock) == 1
        assert _create(contract, clock) == 2
        assert contract.job_count() == 2

    def test_escrow_debits_employer(self, contract, clock) -> None:
        before = contract.balance_of(EMPLOYER)
        job_id = _create(contract, clock, amount="0.5")
        assert contract.balance_of(EMPLOYER) == before - to_wei("0.5")

        snapshot = contract.read(job_id)
        assert snapshot.status_code == CODE_BY_STATUS[JobStatus.CREATED]
        assert snapshot.deliverable == ""
        assert snapshot.dispute_time == 0

    def test_insufficient_funds(self, contract, clock) -> None:
        with pytest.raises(LedgerInsufficientFundsError):
            _create(contract, clock, amount="100")

    def test_past_deadline_reverts(self, contract, clock) -> None:
        with pytest.raises(LedgerRejectedError, match="deadline"):
            _create(contract, clock, hours=-1)

    def test_read_missing_job(self, contract) -> None:
        with pytest.raises(LedgerNotFoundError):
            contract.read(99)


class TestLifecycle:
    def test_approve_pays_worker_minus_fee(self, contract, clock) -> None:
        job_id = _create(contract, clock, amount="1")
        worker_before = contract.balance_of(WORKER)

        contract.apply(WORKER, EscrowAction.SUBMIT_WORK, job_id, SubmitWorkParams("ipfs://abc"))
        contract.apply(EMPLOYER, EscrowAction.APPROVE_WORK, job_id, ApproveWorkParams())

        assert contract.balance_of(WORKER) - worker_before == to_wei("0.99")
        assert contract.balance_of(FEE_COLLECTOR) == to_wei("0.01")
        assert contract.read(job_id).status_code == CODE_BY_STATUS[JobStatus.COMPLETED]

    def test_only_worker_submits(self, contract, clock) -> None:
        job_id = _create(contract, clock)
        with pytest.raises(LedgerRejectedError, match="only worker"):
            contract.apply(OUTSIDER, EscrowAction.SUBMIT_WORK, job_id, SubmitWorkParams("x"))

    def test_only_employer_approves(self, contract, clock) -> None:
        job_id = _create(contract, clock)
        contract.apply(WORKER, EscrowAction.SUBMIT_WORK, job_id, SubmitWorkParams("x"))
        with pytest.raises(LedgerRejectedError, match="only employer"):
            contract.apply(WORKER, EscrowAction.APPROVE_WORK, job_id, ApproveWorkParams())

    def test_cancel_refunds_after_deadline(self, contract, clock) -> None:
        before = contract.balance_of(EMPLOYER)
        job_id = _create(contract, clock, amount="0.2", hours=1)

        with pytest.raises(LedgerRejectedError, match="deadline not reached"):
            contract.apply(EMPLOYER, EscrowAction.CANCEL_JOB, job_id, CancelJobParams())

        clock.advance(hours=1)
        contract.apply(EMPLOYER, EscrowAction.CANCEL_JOB, job_id, CancelJobParams())
        assert contract.balance_of(EMPLOYER) == before
        assert contract.read(job_id).status_code == CODE_BY_STATUS[JobStatus.CANCELLED]

    def test_dispute_records_time(self, contract, clock) -> None:
        job_id = _create(contract, clock)
        contract.apply(WORKER, EscrowAction.DISPUTE_JOB, job_id, DisputeJobParams())
        snapshot = contract.read(job_id)
        assert snapshot.status_code == CODE_BY_STATUS[JobStatus.DISPUTED]
        assert snapshot.dispute_time == contract.now()

    def test_outsider_cannot_dispute(self, contract, clock) -> None:
        job_id = _create(contract, clock)
        with pytest.raises(LedgerRejectedError, match="not a party"):
            contract.apply(OUTSIDER, EscrowAction.DISPUTE_JOB, job_id, DisputeJobParams())

    def test_resolve_with_deliverable_pays_worker(self, contract, clock) -> None:
        job_id = _create(contract, clock, amount="1")
        contract.apply(WORKER, EscrowAction.SUBMIT_WORK, job_id, SubmitWorkParams("ipfs://abc"))
        contract.apply(EMPLOYER, EscrowAction.DISPUTE_JOB, job_id, DisputeJobParams())

        with pytest.raises(LedgerRejectedError, match="window"):
            contract.apply(EMPLOYER, EscrowAction.RESOLVE_DISPUTE, job_id, ResolveDisputeParams())

        clock.advance(seconds=contract.dispute_window_seconds)
        contract.apply(EMPLOYER, EscrowAction.RESOLVE_DISPUTE, job_id, ResolveDisputeParams())
        assert contract.read(job_id).status_code == CODE_BY_STATUS[JobStatus.COMPLETED]

    def test_resolve_without_deliverable_refunds(self, contract, clock) -> None:
        before = contract.balance_of(EMPLOYER)
        job_id = _create(contract, clock, amount="1")
        contract.apply(EMPLOYER, EscrowAction.DISPUTE_JOB, job_id, DisputeJobParams())

        clock.advance(seconds=contract.dispute_window_seconds)
        contract.apply(WORKER, EscrowAction.RESOLVE_DISPUTE, job_id, ResolveDisputeParams())
        assert contract.read(job_id).status_code == CODE_BY_STATUS[JobStatus.CANCELLED]
        assert contract.balance_of(EMPLOYER) == before

    def test_transactions_recorded_in_order(self, contract, clock) -> None:
        job_id = _create(contract, clock)
        contract.apply(WORKER, EscrowAction.SUBMIT_WORK, job_id, SubmitWorkParams("x"))
        assert contract.transactions == [
            (EMPLOYER, EscrowAction.CREATE_JOB, job_id),
            (WORKER, EscrowAction.SUBMIT_WORK, job_id),
        ]


class TestSimulatedClient:
    def test_satisfies_protocol(self, contract) -> None:
        assert isinstance(SimulatedLedgerClient(contract, EMPLOYER), LedgerClient)

    @pytest.mark.asyncio
    async def test_submit_and_confirm(self, contract, clock) -> None:
        client = SimulatedLedgerClient(contract, EMPLOYER)
        params = CreateJobParams(
            worker=WORKER, amount=Decimal("0.01"), deadline=clock() + timedelta(days=1)
        )
        handle = await client.submit(EscrowAction.CREATE_JOB, None, params, to_wei("0.01"))
        result = await client.await_confirmation(handle, timeout=1)

        assert result.status is ConfirmationStatus.CONFIRMED
        assert result.confirmed
        assert result.emitted_job_id == 1
        assert len(result.tx_hash) == 66

    @pytest.mark.asyncio
    async def test_confirmation_times_out(self, contract, clock) -> None:
        client = SimulatedLedgerClient(contract, EMPLOYER)
        job_id = _create(contract, clock)
        handle = await client.submit(EscrowAction.DISPUTE_JOB, job_id, DisputeJobParams())

        contract.confirmation_delay = 10
        result = await client.await_confirmation(handle, timeout=0.01)
        assert result.status is ConfirmationStatus.TIMED_OUT

    @pytest.mark.asyncio
    async def test_transient_read_failures(self, contract, clock) -> None:
        client = SimulatedLedgerClient(contract, EMPLOYER)
        job_id = _create(contract, clock)
        contract.fail_reads = 1

        with pytest.raises(LedgerTransientError):
            await client.read_job(job_id)
        snapshot = await client.read_job(job_id)
        assert snapshot.employer == EMPLOYER


class TestFactory:
    def test_simulated_backend_uses_dev_signer(self) -> None:
        settings = Settings(_env_file=None, ledger_backend="simulated", private_key="")
        client = create_ledger_client(settings)
        assert isinstance(client, SimulatedLedgerClient)
        assert client.signer_address == DEV_SIGNER_ADDRESS
        assert client.contract.balance_of(DEV_SIGNER_ADDRESS) > 0

    def test_web3_backend_requires_key(self) -> None:
        settings = Settings(_env_file=None, ledger_backend="web3", private_key="")
        with pytest.raises(ValueError, match="PRIVATE_KEY"):
            create_ledger_client(settings)
