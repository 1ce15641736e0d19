"""FastAPI application entry point for Agent Escrow.

Lifecycle:
    1. Build: the factory wires one ledger client, one signing sequencer
       and one orchestrator, shared by the REST routes and the MCP tools.
    2. Startup: initialize logging.
    3. Shutdown: close the ledger connection.

The MCP server is mounted at /mcp so AI agents can discover tools
alongside the REST API at /api/v1/*.

Run with:
    uvicorn agent_escrow.main:app --reload --host 0.0.0.0 --port 3402
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from agent_escrow.config import VERSION, Settings, get_settings
from agent_escrow.logging_config import get_logger, setup_logging
from agent_escrow.orchestration.orchestrator import EscrowOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from datetime import datetime

    from agent_escrow.domain.ledger_protocol import LedgerClient


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    orchestrator: EscrowOrchestrator = app.state.orchestrator
    settings = orchestrator.settings

    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.started",
        env=settings.app_env,
        ledger=settings.ledger_backend,
        signer=orchestrator.signer_address,
        host=settings.app_host,
        port=settings.app_port,
    )

    yield

    logger.info("app.shutting_down")
    await orchestrator.close()
    logger.info("app.stopped")


def create_app(
    settings: Settings | None = None,
    ledger: LedgerClient | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = settings or get_settings()

    app = FastAPI(
        title="Agent Escrow",
        description="Trustless escrow for agent-to-agent work, settled on-chain.",
        version=VERSION,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    orchestrator = EscrowOrchestrator.from_settings(settings, ledger=ledger, clock=clock)
    app.state.orchestrator = orchestrator

    # --- Middleware ---
    from agent_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from agent_escrow.api.routes.health import router as health_router
    from agent_escrow.api.routes.jobs import router as jobs_router

    app.include_router(health_router)
    app.include_router(jobs_router)

    # --- MCP Server (mounted as sub-application) ---
    from agent_escrow.mcp_server.tools import create_mcp_server

    app.mount("/mcp", create_mcp_server(orchestrator).sse_app())

    return app


# The app instance used by Uvicorn
app = create_app()
