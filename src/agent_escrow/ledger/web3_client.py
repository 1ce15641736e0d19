"""Web3LedgerClient — talks to the deployed escrow contract over JSON-RPC.

Reads go through `eth_call`; writes are built with the contract ABI,
signed locally with the custodial key (eth_account) and broadcast as raw
transactions. Nothing here retries a submission: the orchestrator owns
retry policy, and blind resubmission of a mutating call risks duplicate
effects.

Error classification:
    ContractLogicError            -> LedgerRejectedError (simulation reverted)
    unencodable arguments         -> LedgerRejectedError
    "insufficient funds" RPC error -> LedgerInsufficientFundsError
    aiohttp / timeout / connection -> LedgerTransientError
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiohttp
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from agent_escrow.domain.enums import ConfirmationStatus, EscrowAction
from agent_escrow.domain.exceptions import (
    LedgerInsufficientFundsError,
    LedgerNotFoundError,
    LedgerRejectedError,
    LedgerTransientError,
)
from agent_escrow.domain.models import ConfirmationResult, JobSnapshot, TransactionHandle
from agent_escrow.ledger.abi import ESCROW_ABI, FUNCTION_NAMES, ZERO_ADDRESS
from agent_escrow.logging_config import get_logger
from agent_escrow.services.projector import to_timestamp

if TYPE_CHECKING:
    from agent_escrow.domain.models import ActionParams

logger = get_logger(__name__)

_TRANSIENT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError)


class Web3LedgerClient:
    """LedgerClient backed by an EVM JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str,
        chain_id: int,
        request_timeout: float = 30.0,
        poll_latency: float = 1.0,
    ) -> None:
        if not private_key:
            raise ValueError("PRIVATE_KEY is required for the web3 ledger backend")
        self._w3 = AsyncWeb3(
            AsyncHTTPProvider(
                rpc_url,
                request_kwargs={"timeout": aiohttp.ClientTimeout(total=request_timeout)},
            )
        )
        self._account = Account.from_key(private_key)
        self._chain_id = chain_id
        self._poll_latency = poll_latency
        self._contract = self._w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=ESCROW_ABI,
        )

    @property
    def signer_address(self) -> str:
        return self._account.address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read_job(self, job_id: int) -> JobSnapshot:
        try:
            raw = await self._contract.functions.jobs(job_id).call()
        except ContractLogicError as exc:
            raise LedgerNotFoundError(job_id) from exc
        except _TRANSIENT_ERRORS as exc:
            raise LedgerTransientError(f"jobs({job_id}) read failed: {exc}") from exc
        except (Web3Exception, ValueError) as exc:
            # Arguments the ABI cannot encode, e.g. ids outside uint256.
            raise LedgerRejectedError(f"jobs({job_id}) refused: {exc}") from exc

        employer, worker, amount, deadline, status, deliverable, dispute_time = raw
        if str(employer).lower() == ZERO_ADDRESS:
            raise LedgerNotFoundError(job_id)
        return JobSnapshot(
            employer=employer,
            worker=worker,
            amount_wei=int(amount),
            deadline=int(deadline),
            status_code=int(status),
            deliverable=deliverable,
            dispute_time=int(dispute_time),
        )

    async def job_count(self) -> int:
        try:
            return int(await self._contract.functions.jobCount().call())
        except _TRANSIENT_ERRORS as exc:
            raise LedgerTransientError(f"jobCount read failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def submit(
        self,
        action: EscrowAction,
        job_id: int | None,
        params: ActionParams,
        value_wei: int = 0,
    ) -> TransactionHandle:
        sender = self._account.address
        try:
            call = self._contract_call(action, job_id, params)
            nonce = await self._w3.eth.get_transaction_count(sender, "pending")
            tx = await call.build_transaction(
                {
                    "from": sender,
                    "value": value_wei,
                    "nonce": nonce,
                    "chainId": self._chain_id,
                }
            )
        except ContractLogicError as exc:
            raise LedgerRejectedError(str(exc)) from exc
        except _TRANSIENT_ERRORS as exc:
            raise LedgerTransientError(f"{action} build failed: {exc}") from exc
        except (Web3Exception, ValueError) as exc:
            raise self._classify_rpc_error(action, exc) from exc

        signed = self._account.sign_transaction(tx)
        local_hash = AsyncWeb3.to_hex(signed.hash)
        try:
            tx_hash = await self._w3.eth.send_raw_transaction(signed.raw_transaction)
        except _TRANSIENT_ERRORS as exc:
            # The node may or may not have accepted it.
            raise LedgerTransientError(f"{action} broadcast failed: {exc}", tx_hash=local_hash) from exc
        except (Web3Exception, ValueError) as exc:
            raise self._classify_rpc_error(action, exc) from exc

        handle = TransactionHandle(
            tx_hash=AsyncWeb3.to_hex(tx_hash),
            action=action,
            job_id=job_id,
            submitted_at=datetime.now(UTC),
        )
        logger.info(
            "ledger.web3.broadcast",
            action=action.value,
            job_id=job_id,
            tx_hash=handle.tx_hash,
            nonce=nonce,
        )
        return handle

    async def await_confirmation(
        self, handle: TransactionHandle, timeout: float
    ) -> ConfirmationResult:
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                handle.tx_hash, timeout=timeout, poll_latency=self._poll_latency
            )
        except TimeExhausted:
            return ConfirmationResult(status=ConfirmationStatus.TIMED_OUT, tx_hash=handle.tx_hash)
        except _TRANSIENT_ERRORS as exc:
            raise LedgerTransientError(
                f"receipt poll failed: {exc}", tx_hash=handle.tx_hash
            ) from exc

        block_number = receipt.get("blockNumber")
        if receipt.get("status") != 1:
            return ConfirmationResult(
                status=ConfirmationStatus.REVERTED,
                tx_hash=handle.tx_hash,
                block_number=block_number,
            )

        emitted = None
        if handle.action is EscrowAction.CREATE_JOB:
            emitted = self._emitted_job_id(receipt)
        return ConfirmationResult(
            status=ConfirmationStatus.CONFIRMED,
            tx_hash=handle.tx_hash,
            block_number=block_number,
            emitted_job_id=emitted,
        )

    async def close(self) -> None:
        await self._w3.provider.disconnect()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _contract_call(self, action: EscrowAction, job_id: int | None, params: ActionParams) -> Any:
        fn = getattr(self._contract.functions, FUNCTION_NAMES[action])
        if action is EscrowAction.CREATE_JOB:
            return fn(
                AsyncWeb3.to_checksum_address(params.worker),
                to_timestamp(params.deadline),
            )
        if action is EscrowAction.SUBMIT_WORK:
            return fn(job_id, params.deliverable)
        return fn(job_id)

    def _emitted_job_id(self, receipt: Any) -> int | None:
        """The creation event carries the job id as its first indexed topic, else in data."""
        contract_address = self._contract.address.lower()
        for log in receipt.get("logs", []):
            if str(log.get("address", "")).lower() != contract_address:
                continue
            topics = log.get("topics", [])
            if len(topics) > 1:
                return int.from_bytes(bytes(topics[1]), "big")
            data = bytes(log.get("data", b""))
            if len(data) >= 32:
                return int.from_bytes(data[:32], "big")
        logger.warning("ledger.web3.job_id_not_emitted", tx_hash=receipt.get("transactionHash"))
        return None

    @staticmethod
    def _classify_rpc_error(action: EscrowAction, exc: Exception) -> Exception:
        message = str(exc)
        if "insufficient funds" in message.lower():
            return LedgerInsufficientFundsError(message)
        return LedgerRejectedError(f"{action} refused: {message}")
