#!/usr/bin/env python3
"""Agent Escrow — End-to-End Simulation.

Runs three scenarios with EmployerBot and WorkerBot agents against the
in-memory ledger. Each bot signs with its own identity through its own
orchestrator; both talk to one shared simulated contract. Time is driven
by a controllable clock, so deadlines and dispute windows pass instantly.

    Scenario 1: Happy Path
        - Employer escrows 0.01 ETH, deadline +24h
        - Worker submits "ipfs://abc" -> WorkSubmitted
        - Employer approves -> Completed, worker paid amount minus fee

    Scenario 2: Expiry Refund
        - Employer escrows 0.05 ETH, deadline +1h
        - Cancel one second early is refused (InvalidTransition)
        - Clock passes the deadline -> cancel -> Cancelled, full refund

    Scenario 3: Dispute
        - Worker submits, employer disputes -> Disputed
        - Resolving before the window closes is refused
        - Clock jumps past the window -> resolve -> Completed

Usage:
    python simulation.py
    python simulation.py --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from agent_escrow.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from agent_escrow.config import Settings  # noqa: E402
from agent_escrow.domain.exceptions import EscrowError  # noqa: E402
from agent_escrow.domain.models import (  # noqa: E402
    ApproveWorkParams,
    CancelJobParams,
    CreateJobParams,
    DisputeJobParams,
    ExecutionOutcome,
    ResolveDisputeParams,
    SubmitWorkParams,
    TransitionRequest,
)
from agent_escrow.ledger import SimulatedEscrowContract, SimulatedLedgerClient  # noqa: E402
from agent_escrow.orchestration.orchestrator import EscrowOrchestrator  # noqa: E402
from agent_escrow.services.projector import format_amount, from_wei, to_wei  # noqa: E402

EMPLOYER = "0x" + "E" * 40
WORKER = "0x" + "A" * 40


class SimClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now += delta
        logger.info("⏩ CLOCK: advanced", by=str(delta), now=self._now.isoformat())


@dataclass
class World:
    """Shared simulated ledger plus one orchestrator per signing identity."""

    clock: SimClock
    contract: SimulatedEscrowContract
    settings: Settings

    def orchestrator_for(self, address: str) -> EscrowOrchestrator:
        ledger = SimulatedLedgerClient(self.contract, address)
        return EscrowOrchestrator.from_settings(self.settings, ledger=ledger, clock=self.clock)

    def balance(self, address: str) -> str:
        return format_amount(from_wei(self.contract.balance_of(address)))


def build_world() -> World:
    settings = Settings(ledger_backend="simulated", confirmation_poll_interval_seconds=0)
    clock = SimClock()
    contract = SimulatedEscrowContract(
        clock=clock,
        service_fee_bps=settings.service_fee_bps,
        dispute_window_seconds=settings.dispute_resolution_window_seconds,
    )
    contract.fund(EMPLOYER, to_wei("10"))
    contract.fund(WORKER, to_wei("1"))
    return World(clock=clock, contract=contract, settings=settings)


# ---------------------------------------------------------------------------
# Bot Agents
# ---------------------------------------------------------------------------
class EmployerBot:
    """Simulated employer agent that creates, approves, cancels and disputes jobs."""

    def __init__(self, world: World) -> None:
        self._orchestrator = world.orchestrator_for(EMPLOYER)
        self._clock = world.clock

    async def create_job(self, worker: str, amount: str, deadline_in: timedelta) -> int:
        outcome = await self._orchestrator.execute(
            TransitionRequest(
                params=CreateJobParams(
                    worker=worker,
                    amount=Decimal(amount),
                    deadline=self._clock() + deadline_in,
                )
            )
        )
        logger.info("🔵 EMPLOYER: Job created", job_id=outcome.receipt.job_id, amount=amount)
        return outcome.receipt.job_id

    async def approve(self, job_id: int) -> ExecutionOutcome:
        outcome = await self._orchestrator.execute(
            TransitionRequest(params=ApproveWorkParams(), job_id=job_id)
        )
        logger.info("🔵 EMPLOYER: Work approved", job_id=job_id, payout=str(outcome.worker_payout))
        return outcome

    async def cancel(self, job_id: int) -> ExecutionOutcome:
        return await self._orchestrator.execute(
            TransitionRequest(params=CancelJobParams(), job_id=job_id)
        )

    async def dispute(self, job_id: int) -> ExecutionOutcome:
        outcome = await self._orchestrator.execute(
            TransitionRequest(params=DisputeJobParams(), job_id=job_id)
        )
        logger.info("🔵 EMPLOYER: Dispute raised", job_id=job_id)
        return outcome

    async def resolve(self, job_id: int) -> ExecutionOutcome:
        return await self._orchestrator.execute(
            TransitionRequest(params=ResolveDisputeParams(), job_id=job_id)
        )

    async def status(self, job_id: int) -> str:
        job = await self._orchestrator.query(job_id)
        logger.info("🔵 EMPLOYER: Status check", job_id=job_id, status=job.status.value)
        return job.status.value


class WorkerBot:
    """Simulated worker agent that submits deliverables."""

    def __init__(self, world: World) -> None:
        self._orchestrator = world.orchestrator_for(WORKER)

    async def submit(self, job_id: int, deliverable: str) -> ExecutionOutcome:
        outcome = await self._orchestrator.execute(
            TransitionRequest(params=SubmitWorkParams(deliverable=deliverable), job_id=job_id)
        )
        logger.info("🟢 WORKER: Work submitted", job_id=job_id, deliverable=deliverable)
        return outcome


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    """Print a section header."""
    print(f"\n--- {text} ---\n")


def print_outcome(outcome: ExecutionOutcome) -> None:
    job = outcome.job
    print(f"  ✅ {outcome.action.value}: {job.status.value if job else 'unknown'}")
    print(f"  TX: {outcome.transaction_ref}")
    if outcome.worker_payout is not None:
        print(f"  Worker payout: {format_amount(outcome.worker_payout)} ETH")


def print_refusal(exc: EscrowError) -> None:
    print(f"  ❌ {exc.code}: {exc.message}")


def print_balances(world: World) -> None:
    print(f"  Employer balance: {world.balance(EMPLOYER)} ETH")
    print(f"  Worker balance:   {world.balance(WORKER)} ETH")


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path() -> None:
    banner("SCENARIO 1: Happy Path — create, submit, approve")
    world = build_world()
    employer, worker = EmployerBot(world), WorkerBot(world)

    section("Step 1: Employer escrows 0.01 ETH")
    job_id = await employer.create_job(WORKER, "0.01", timedelta(hours=24))
    await employer.status(job_id)

    section("Step 2: Worker submits deliverable")
    print_outcome(await worker.submit(job_id, "ipfs://abc"))

    section("Step 3: Employer approves")
    print_outcome(await employer.approve(job_id))
    print_balances(world)


# ===========================================================================
# Scenario 2: Expiry Refund
# ===========================================================================
async def scenario_2_expiry_refund() -> None:
    banner("SCENARIO 2: Expiry Refund — no work before the deadline")
    world = build_world()
    employer = EmployerBot(world)

    section("Step 1: Employer escrows 0.05 ETH, deadline in 1 hour")
    job_id = await employer.create_job(WORKER, "0.05", timedelta(hours=1))
    print_balances(world)

    section("Step 2: Cancel one second before the deadline")
    world.clock.advance(timedelta(hours=1) - timedelta(seconds=1))
    try:
        await employer.cancel(job_id)
    except EscrowError as exc:
        print_refusal(exc)

    section("Step 3: Cancel once the deadline has passed")
    world.clock.advance(timedelta(seconds=1))
    print_outcome(await employer.cancel(job_id))
    print_balances(world)


# ===========================================================================
# Scenario 3: Dispute
# ===========================================================================
async def scenario_3_dispute() -> None:
    banner("SCENARIO 3: Dispute — resolution after the window")
    world = build_world()
    employer, worker = EmployerBot(world), WorkerBot(world)
    window = timedelta(seconds=world.settings.dispute_resolution_window_seconds)

    section("Step 1: Create job and submit work")
    job_id = await employer.create_job(WORKER, "0.2", timedelta(hours=48))
    await worker.submit(job_id, "https://github.com/example/deliverable")

    section("Step 2: Employer disputes")
    print_outcome(await employer.dispute(job_id))

    section("Step 3: Resolve too early")
    world.clock.advance(window - timedelta(seconds=1))
    try:
        await employer.resolve(job_id)
    except EscrowError as exc:
        print_refusal(exc)

    section("Step 4: Resolve once the window closes")
    world.clock.advance(timedelta(seconds=1))
    print_outcome(await employer.resolve(job_id))
    print_balances(world)


SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_expiry_refund,
    3: scenario_3_dispute,
}


async def main(scenario: int | None = None) -> None:
    for number, run in SCENARIOS.items():
        if scenario is None or scenario == number:
            await run()
    banner("Simulation complete")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Agent Escrow end-to-end simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        choices=sorted(SCENARIOS),
        help="Run only one scenario (default: all)",
    )
    args = parser.parse_args()
    asyncio.run(main(args.scenario))
