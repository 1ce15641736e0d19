"""Unit tests for Web3LedgerClient with the RPC layer mocked out.

No network access: the contract functions and the eth namespace are
replaced with mocks, so only our decoding and error classification runs.
"""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from web3.exceptions import ContractLogicError, TimeExhausted

from agent_escrow.domain.enums import ConfirmationStatus, EscrowAction
from agent_escrow.domain.exceptions import (
    LedgerInsufficientFundsError,
    LedgerNotFoundError,
    LedgerRejectedError,
    LedgerTransientError,
)
from agent_escrow.domain.ledger_protocol import LedgerClient
from agent_escrow.domain.models import ApproveWorkParams, TransactionHandle
from agent_escrow.ledger.abi import ZERO_ADDRESS
from agent_escrow.ledger.web3_client import Web3LedgerClient

CONTRACT = "0x9d249bB490348fAEd301a22Fe150959D21bC53eB"
EMPLOYER = "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD18"
WORKER = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
TEST_KEY = "0x" + "11" * 32
TX_HASH = "0x" + "ab" * 32


@pytest.fixture
def client() -> Web3LedgerClient:
    return Web3LedgerClient(
        rpc_url="http://127.0.0.1:8545",
        contract_address=CONTRACT,
        private_key=TEST_KEY,
        chain_id=8453,
    )


def _handle(action: EscrowAction = EscrowAction.CREATE_JOB) -> TransactionHandle:
    return TransactionHandle(
        tx_hash=TX_HASH, action=action, job_id=None, submitted_at=datetime.now(UTC)
    )


def _mock_view(client: Web3LedgerClient, name: str, **call_kwargs) -> None:
    contract = MagicMock()
    getattr(contract.functions, name).return_value.call = AsyncMock(**call_kwargs)
    client._contract = contract


class TestConstruction:
    def test_requires_private_key(self) -> None:
        with pytest.raises(ValueError, match="PRIVATE_KEY"):
            Web3LedgerClient("http://127.0.0.1:8545", CONTRACT, "", 8453)

    def test_signer_derived_from_key(self, client: Web3LedgerClient) -> None:
        assert client.signer_address.startswith("0x")
        assert len(client.signer_address) == 42

    def test_satisfies_protocol(self, client: Web3LedgerClient) -> None:
        assert isinstance(client, LedgerClient)


class TestReads:
    @pytest.mark.asyncio
    async def test_read_job_decodes_tuple(self, client: Web3LedgerClient) -> None:
        raw = (EMPLOYER, WORKER, 10**16, 1_767_312_000, 1, "ipfs://abc", 0)
        _mock_view(client, "jobs", return_value=raw)

        snapshot = await client.read_job(3)
        assert snapshot.employer == EMPLOYER
        assert snapshot.amount_wei == 10**16
        assert snapshot.status_code == 1
        assert snapshot.deliverable == "ipfs://abc"
        assert snapshot.dispute_time == 0

    @pytest.mark.asyncio
    async def test_zero_employer_means_not_found(self, client: Web3LedgerClient) -> None:
        _mock_view(client, "jobs", return_value=(ZERO_ADDRESS, ZERO_ADDRESS, 0, 0, 0, "", 0))
        with pytest.raises(LedgerNotFoundError):
            await client.read_job(99)

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self, client: Web3LedgerClient) -> None:
        _mock_view(client, "jobs", side_effect=aiohttp.ClientConnectionError("refused"))
        with pytest.raises(LedgerTransientError):
            await client.read_job(1)

    @pytest.mark.asyncio
    async def test_unencodable_job_id_is_rejected(self, client: Web3LedgerClient) -> None:
        with pytest.raises(LedgerRejectedError):
            await client.read_job(2**256)

    @pytest.mark.asyncio
    async def test_job_count(self, client: Web3LedgerClient) -> None:
        _mock_view(client, "jobCount", return_value=12)
        assert await client.job_count() == 12


class TestSubmit:
    @pytest.mark.asyncio
    async def test_simulation_revert_is_rejected(self, client: Web3LedgerClient) -> None:
        contract = MagicMock()
        contract.functions.approveWork.return_value.build_transaction = AsyncMock(
            side_effect=ContractLogicError("execution reverted: only employer")
        )
        client._contract = contract
        client._w3 = MagicMock()
        client._w3.eth.get_transaction_count = AsyncMock(return_value=0)

        with pytest.raises(LedgerRejectedError):
            await client.submit(EscrowAction.APPROVE_WORK, 1, ApproveWorkParams())
        contract.functions.approveWork.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_nonce_fetch_failure_is_transient_without_hash(
        self, client: Web3LedgerClient
    ) -> None:
        client._contract = MagicMock()
        client._w3 = MagicMock()
        client._w3.eth.get_transaction_count = AsyncMock(
            side_effect=aiohttp.ClientConnectionError("refused")
        )

        with pytest.raises(LedgerTransientError) as exc_info:
            await client.submit(EscrowAction.APPROVE_WORK, 1, ApproveWorkParams())
        assert exc_info.value.tx_hash is None

    @pytest.mark.asyncio
    async def test_unencodable_job_id_is_rejected(self, client: Web3LedgerClient) -> None:
        client._w3 = MagicMock()
        client._w3.eth.get_transaction_count = AsyncMock(return_value=0)

        with pytest.raises(LedgerRejectedError):
            await client.submit(EscrowAction.APPROVE_WORK, 2**256, ApproveWorkParams())
        client._w3.eth.get_transaction_count.assert_not_called()

    def test_insufficient_funds_classified(self) -> None:
        exc = Web3LedgerClient._classify_rpc_error(
            EscrowAction.CREATE_JOB, ValueError("insufficient funds for gas * price + value")
        )
        assert isinstance(exc, LedgerInsufficientFundsError)

    def test_other_rpc_errors_rejected(self) -> None:
        exc = Web3LedgerClient._classify_rpc_error(
            EscrowAction.CREATE_JOB, ValueError("nonce too low")
        )
        assert isinstance(exc, LedgerRejectedError)


class TestConfirmation:
    @pytest.mark.asyncio
    async def test_time_exhausted_is_timed_out(self, client: Web3LedgerClient) -> None:
        client._w3 = MagicMock()
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted())

        result = await client.await_confirmation(_handle(), timeout=1)
        assert result.status is ConfirmationStatus.TIMED_OUT
        assert result.tx_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_failed_status_is_reverted(self, client: Web3LedgerClient) -> None:
        client._w3 = MagicMock()
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 0, "blockNumber": 10, "logs": []}
        )

        result = await client.await_confirmation(_handle(), timeout=1)
        assert result.status is ConfirmationStatus.REVERTED
        assert result.block_number == 10

    @pytest.mark.asyncio
    async def test_job_id_from_indexed_topic(self, client: Web3LedgerClient) -> None:
        receipt = {
            "status": 1,
            "blockNumber": 11,
            "logs": [
                {
                    "address": CONTRACT,
                    "topics": [b"\x01" * 32, (7).to_bytes(32, "big")],
                    "data": b"",
                }
            ],
        }
        client._w3 = MagicMock()
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=receipt)

        result = await client.await_confirmation(_handle(), timeout=1)
        assert result.confirmed
        assert result.emitted_job_id == 7

    @pytest.mark.asyncio
    async def test_foreign_logs_ignored(self, client: Web3LedgerClient) -> None:
        receipt = {
            "status": 1,
            "blockNumber": 12,
            "logs": [
                {
                    "address": WORKER,
                    "topics": [b"\x01" * 32, (5).to_bytes(32, "big")],
                    "data": b"",
                }
            ],
        }
        client._w3 = MagicMock()
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=receipt)

        result = await client.await_confirmation(_handle(), timeout=1)
        assert result.confirmed
        assert result.emitted_job_id is None

    @pytest.mark.asyncio
    async def test_non_create_actions_skip_log_parsing(self, client: Web3LedgerClient) -> None:
        client._w3 = MagicMock()
        client._w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 1, "blockNumber": 13, "logs": []}
        )

        result = await client.await_confirmation(_handle(EscrowAction.APPROVE_WORK), timeout=1)
        assert result.confirmed
        assert result.emitted_job_id is None
