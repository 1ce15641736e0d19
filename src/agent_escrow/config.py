"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup — if a setting is malformed, the app fails fast with a clear
error message.

Usage:
    from agent_escrow.config import get_settings
    settings = get_settings()
    print(settings.rpc_url)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

VERSION = "0.1.0"


class Settings(BaseSettings):
    """Central configuration for the Agent Escrow service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 3402

    # --- Ledger ---
    # "simulated" keeps the whole escrow contract in memory (dev / dry-run).
    ledger_backend: Literal["web3", "simulated"] = "simulated"
    rpc_url: str = "https://mainnet.base.org"
    contract_address: str = "0x9d249bB490348fAEd301a22Fe150959D21bC53eB"
    chain_id: int = 8453
    network_name: str = "Base Mainnet"
    explorer_tx_url: str = "https://basescan.org/tx/"
    rpc_request_timeout_seconds: float = 30.0

    # --- Signing identity ---
    private_key: str = ""

    # --- Confirmation & retry ---
    confirmation_timeout_seconds: float = Field(default=60.0, gt=0)
    confirmation_max_attempts: int = Field(default=3, ge=1)
    confirmation_poll_interval_seconds: float = Field(default=2.0, ge=0)
    read_max_attempts: int = Field(default=3, ge=1)
    read_backoff_seconds: float = Field(default=0.5, ge=0)
    request_timeout_seconds: float = Field(default=300.0, gt=0)

    # --- Escrow rules ---
    dispute_resolution_window_seconds: int = 7 * 24 * 3600
    service_fee_bps: int = Field(default=100, ge=0, le=10_000)  # 1%

    # --- Sequencer ---
    sequencer_watchdog_seconds: float = Field(default=600.0, gt=0)

    # --- MCP ---
    mcp_transport: Literal["stdio", "sse", "streamable-http"] = "stdio"

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    def explorer_url(self, tx_hash: str) -> str:
        """Build a block-explorer link for a transaction hash."""
        return f"{self.explorer_tx_url}{tx_hash}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
