"""Application services — signing sequencer and ledger projection."""

from agent_escrow.services.projector import JobStateProjector
from agent_escrow.services.sequencer import SigningSequencer, Ticket

__all__ = ["JobStateProjector", "SigningSequencer", "Ticket"]
