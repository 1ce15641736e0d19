"""Shared test fixtures for the Agent Escrow test suite.

Provides:
    - A controllable clock
    - Settings tuned for fast tests (no backoff sleeps, short timeouts)
    - One shared SimulatedEscrowContract with an employer and a worker
      orchestrator, each signing with its own identity
    - A job factory fixture
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from agent_escrow.config import Settings
from agent_escrow.domain.models import CreateJobParams, TransitionRequest
from agent_escrow.ledger.simulated import SimulatedEscrowContract, SimulatedLedgerClient
from agent_escrow.orchestration.orchestrator import EscrowOrchestrator
from agent_escrow.services.projector import to_wei

EMPLOYER = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
WORKER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
OUTSIDER = "0xfB6916095ca1df60bB79Ce92cE3Ea74c37c5d359"


class FakeClock:
    """Callable clock that only moves when advanced."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


# ---------------------------------------------------------------------------
# Core Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def settings() -> Settings:
    """Settings for tests: simulated ledger, zero backoff, short waits."""
    return Settings(
        _env_file=None,
        app_env="development",
        ledger_backend="simulated",
        private_key="",
        confirmation_timeout_seconds=0.5,
        confirmation_max_attempts=3,
        confirmation_poll_interval_seconds=0,
        read_max_attempts=3,
        read_backoff_seconds=0,
        request_timeout_seconds=5,
        sequencer_watchdog_seconds=60,
    )


@pytest.fixture
def contract(clock: FakeClock, settings: Settings) -> SimulatedEscrowContract:
    contract = SimulatedEscrowContract(
        clock=clock,
        service_fee_bps=settings.service_fee_bps,
        dispute_window_seconds=settings.dispute_resolution_window_seconds,
    )
    contract.fund(EMPLOYER, to_wei("10"))
    contract.fund(WORKER, to_wei("1"))
    return contract


def _orchestrator(
    contract: SimulatedEscrowContract, address: str, settings: Settings, clock: FakeClock
) -> EscrowOrchestrator:
    ledger = SimulatedLedgerClient(contract, address)
    return EscrowOrchestrator.from_settings(settings, ledger=ledger, clock=clock)


@pytest.fixture
def employer(contract, settings, clock) -> EscrowOrchestrator:
    """Orchestrator signing as the employer."""
    return _orchestrator(contract, EMPLOYER, settings, clock)


@pytest.fixture
def worker(contract, settings, clock) -> EscrowOrchestrator:
    """Orchestrator signing as the worker."""
    return _orchestrator(contract, WORKER, settings, clock)


@pytest.fixture
def outsider(contract, settings, clock) -> EscrowOrchestrator:
    """Orchestrator signing as an address that is party to no job."""
    return _orchestrator(contract, OUTSIDER, settings, clock)


@pytest.fixture
def create_job(employer: EscrowOrchestrator, clock: FakeClock):
    """Return an async factory that creates a job as the employer and returns its id."""

    async def _create(amount: str = "0.01", hours: float = 24, worker: str = WORKER) -> int:
        outcome = await employer.execute(
            TransitionRequest(
                params=CreateJobParams(
                    worker=worker,
                    amount=Decimal(amount),
                    deadline=clock() + timedelta(hours=hours),
                )
            )
        )
        return outcome.receipt.job_id

    return _create
