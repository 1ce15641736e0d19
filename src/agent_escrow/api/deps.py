"""FastAPI dependency injection providers.

The orchestrator (with its ledger client and signing sequencer) is built
once by the application factory and stored on app.state; handlers pull it
from there instead of touching module-level globals.
"""

from __future__ import annotations

from fastapi import Request

from agent_escrow.orchestration.orchestrator import EscrowOrchestrator


def get_orchestrator(request: Request) -> EscrowOrchestrator:
    """Provide the application's EscrowOrchestrator."""
    return request.app.state.orchestrator

