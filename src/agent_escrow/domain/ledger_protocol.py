"""LedgerClient Protocol.

Defines the interface every escrow ledger adapter must implement. This is a
Protocol (structural subtyping) so concrete clients don't need to inherit
from a base class — they just need to match the shape.

The domain layer has ZERO imports from web3 or any transport library.

Contract:
    read_job / job_count   idempotent, safe to retry
    submit                 broadcasts one mutation; NEVER retried here
    await_confirmation     one bounded wait, outcome as a result type
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from agent_escrow.domain.enums import EscrowAction
    from agent_escrow.domain.models import (
        ActionParams,
        ConfirmationResult,
        JobSnapshot,
        TransactionHandle,
    )


@runtime_checkable
class LedgerClient(Protocol):
    """Protocol that all ledger adapters must satisfy.

    Concrete implementations:
        - ledger/web3_client.py  (EVM chain via web3.py)
        - ledger/simulated.py    (in-memory contract for dev and tests)
    """

    @property
    def signer_address(self) -> str:
        """Address of the signing identity used for submissions."""
        ...

    async def read_job(self, job_id: int) -> JobSnapshot:
        """Read a job's raw record.

        Raises:
            LedgerNotFoundError: No such job.
            LedgerTransientError: Connectivity failure.
        """
        ...

    async def job_count(self) -> int:
        """Return how many jobs the ledger has ever created."""
        ...

    async def submit(
        self,
        action: EscrowAction,
        job_id: int | None,
        params: ActionParams,
        value_wei: int = 0,
    ) -> TransactionHandle:
        """Sign and broadcast a mutating call.

        Raises:
            LedgerRejectedError: The submitter refused the call.
            LedgerInsufficientFundsError: Signer cannot cover value + gas.
            LedgerTransientError: Connectivity failure.
        """
        ...

    async def await_confirmation(
        self, handle: TransactionHandle, timeout: float
    ) -> ConfirmationResult:
        """Wait up to `timeout` seconds for the transaction's receipt.

        Returns CONFIRMED, REVERTED or TIMED_OUT. Raises
        LedgerTransientError only for connectivity failures.
        """
        ...

    async def close(self) -> None:
        """Release transport resources."""
        ...
