"""Orchestration layer — transition table and the escrow orchestrator."""

from agent_escrow.orchestration.orchestrator import EscrowOrchestrator
from agent_escrow.orchestration.transitions import (
    TRANSITIONS,
    TransitionContext,
    TransitionRule,
    check_preconditions,
    validate_request,
)

__all__ = [
    "TRANSITIONS",
    "EscrowOrchestrator",
    "TransitionContext",
    "TransitionRule",
    "check_preconditions",
    "validate_request",
]
