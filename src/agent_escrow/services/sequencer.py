"""SigningSequencer — one in-flight mutating submission per signing identity.

EVM-style ledgers require a strictly increasing nonce per account. The REST
API and the MCP server share one custodial key, so two concurrent writes
would race for the same nonce. Every submission therefore runs while holding
the identity's single ticket.

Guarantees:
    - At most one outstanding ticket at a time.
    - Strict FIFO: tickets are granted in the order acquire() was called.
      Cancelled waiters are skipped.
    - Not reentrant: a task holding the ticket cannot acquire it again.
    - Watchdog: a ticket held longer than `watchdog_seconds` is
      force-released with a critical log and handed to the next waiter.

Usage:
    async with sequencer.slot("approveWork:7") as ticket:
        ...  # submit + confirm
"""

from __future__ import annotations

import asyncio
import itertools
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from agent_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)


@dataclass
class Ticket:
    """Exclusive right to submit under one signing identity."""

    ticket_id: int
    identity: str
    label: str
    acquired_at: float
    released: bool = False
    force_released: bool = False
    owner: asyncio.Task | None = field(default=None, repr=False)
    _watchdog: asyncio.TimerHandle | None = field(default=None, repr=False)


class SigningSequencer:
    """FIFO mutual exclusion for submissions under one signing identity."""

    def __init__(self, identity: str, watchdog_seconds: float = 600.0) -> None:
        self._identity = identity
        self._watchdog_seconds = watchdog_seconds
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._current: Ticket | None = None
        # True between waking a waiter and that waiter taking the ticket.
        self._handoff = False
        self._ids = itertools.count(1)

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def locked(self) -> bool:
        return self._current is not None

    @property
    def queue_depth(self) -> int:
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self, label: str = "") -> Ticket:
        """Wait for the ticket. Blocks until no other ticket is outstanding."""
        held = self._current
        if held is not None and held.owner is not None and held.owner is asyncio.current_task():
            raise RuntimeError(
                f"Signing ticket {held.ticket_id} is not reentrant "
                f"(held for '{held.label}', requested for '{label}')"
            )

        idle = self._current is None and not self._handoff
        if idle and all(w.cancelled() for w in self._waiters):
            return self._grant(label)

        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()
        self._waiters.append(waiter)
        logger.debug(
            "sequencer.waiting",
            identity=self._identity,
            label=label,
            queue_depth=self.queue_depth,
        )
        try:
            await waiter
        except asyncio.CancelledError:
            # Only a waiter that was handed the slot passes it on.
            if waiter.done() and not waiter.cancelled():
                self._handoff = False
                self._wake_next()
            raise
        finally:
            self._waiters.remove(waiter)

        return self._grant(label)

    def release(self, ticket: Ticket) -> None:
        """Return the ticket. Must be called exactly once per acquire()."""
        if ticket.released:
            raise RuntimeError(f"Signing ticket {ticket.ticket_id} released twice")
        ticket.released = True
        if ticket._watchdog is not None:
            ticket._watchdog.cancel()

        if ticket.force_released:
            logger.warning(
                "sequencer.release_after_force",
                identity=self._identity,
                ticket_id=ticket.ticket_id,
                label=ticket.label,
            )
            return

        if self._current is not ticket:
            raise RuntimeError(f"Signing ticket {ticket.ticket_id} is not the current holder")

        self._current = None
        logger.debug(
            "sequencer.released",
            identity=self._identity,
            ticket_id=ticket.ticket_id,
            held_seconds=round(asyncio.get_running_loop().time() - ticket.acquired_at, 3),
        )
        self._wake_next()

    @asynccontextmanager
    async def slot(self, label: str = "") -> AsyncIterator[Ticket]:
        """Scoped acquisition: the ticket is released on every exit path."""
        ticket = await self.acquire(label)
        try:
            yield ticket
        finally:
            self.release(ticket)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _grant(self, label: str) -> Ticket:
        loop = asyncio.get_running_loop()
        ticket = Ticket(
            ticket_id=next(self._ids),
            identity=self._identity,
            label=label,
            acquired_at=loop.time(),
            owner=asyncio.current_task(),
        )
        ticket._watchdog = loop.call_later(self._watchdog_seconds, self._force_release, ticket)
        self._current = ticket
        self._handoff = False
        logger.debug(
            "sequencer.acquired",
            identity=self._identity,
            ticket_id=ticket.ticket_id,
            label=label,
        )
        return ticket

    def _wake_next(self) -> None:
        if self._handoff:
            return
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
                self._handoff = True
                return

    def _force_release(self, ticket: Ticket) -> None:
        if ticket.released or self._current is not ticket:
            return
        held_for = asyncio.get_running_loop().time() - ticket.acquired_at
        ticket.force_released = True
        self._current = None
        logger.critical(
            "sequencer.ticket_force_released",
            identity=self._identity,
            ticket_id=ticket.ticket_id,
            label=ticket.label,
            held_seconds=round(held_for, 3),
            waiting=self.queue_depth,
        )
        self._wake_next()
