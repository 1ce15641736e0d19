"""Ledger adapters and factory.

Two LedgerClient implementations:
    - Web3LedgerClient:     the deployed escrow contract over JSON-RPC
    - SimulatedLedgerClient: in-memory contract for development and dry-runs

The factory picks one from Settings.ledger_backend.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from eth_account import Account

from agent_escrow.domain.ledger_protocol import LedgerClient
from agent_escrow.ledger.simulated import SimulatedEscrowContract, SimulatedLedgerClient
from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from agent_escrow.config import Settings

logger = get_logger(__name__)

# Signer used by the simulated backend when no PRIVATE_KEY is configured.
DEV_SIGNER_ADDRESS = "0x00000000000000000000000000000000000E5C00"
DEV_SIGNER_BALANCE_WEI = 1_000 * 10**18


def create_ledger_client(
    settings: Settings,
    clock: Callable[[], datetime] | None = None,
) -> LedgerClient:
    """Create the LedgerClient selected by settings.ledger_backend.

    Raises:
        ValueError: If the web3 backend is selected without a private key.
    """
    if settings.ledger_backend == "web3":
        from agent_escrow.ledger.web3_client import Web3LedgerClient

        client = Web3LedgerClient(
            rpc_url=settings.rpc_url,
            contract_address=settings.contract_address,
            private_key=settings.private_key,
            chain_id=settings.chain_id,
            request_timeout=settings.rpc_request_timeout_seconds,
            poll_latency=settings.confirmation_poll_interval_seconds,
        )
        logger.info(
            "ledger.web3.configured",
            rpc_url=settings.rpc_url,
            contract=settings.contract_address,
            signer=client.signer_address,
        )
        return client

    signer = (
        Account.from_key(settings.private_key).address
        if settings.private_key
        else DEV_SIGNER_ADDRESS
    )
    contract = SimulatedEscrowContract(
        clock=clock,
        service_fee_bps=settings.service_fee_bps,
        dispute_window_seconds=settings.dispute_resolution_window_seconds,
    )
    contract.fund(signer, DEV_SIGNER_BALANCE_WEI)
    logger.info("ledger.simulated.configured", signer=signer)
    return SimulatedLedgerClient(contract, signer)


__all__ = [
    "LedgerClient",
    "SimulatedEscrowContract",
    "SimulatedLedgerClient",
    "create_ledger_client",
]
