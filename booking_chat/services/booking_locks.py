# booking_chat/services/booking_locks.py
"""
Per-booking serialization for read-modify-write sections.

The booking record is the only shared mutable state between the two parties of
a negotiation. Every operation that reads it and writes it back (or that must
be ordered against such a write, like chat fan-out and history replay on join)
runs inside ``async with locks.hold(booking_id, reason=...)``.

- asyncio.Lock wakes waiters in FIFO order, so operations on one booking apply
  strictly in arrival order.
- Locks are process-local. Several uvicorn workers do not share them.
- Not re-entrant: code running inside the lock must call the unlocked variants
  of router/engine helpers.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

logger = logging.getLogger(__name__)


class BookingLocks:
    """Lazily created ``asyncio.Lock`` per booking id, dropped again once idle."""

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}
        self._holders: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, booking_id: int, *, reason: str = "") -> AsyncIterator[None]:
        """
        Serialize a critical section for one booking.

        Args:
            booking_id: Booking whose record / room is being touched
            reason: Debug label included in log lines

        Usage:
            async with locks.hold(42, reason="propose_price"):
                ...  # read booking, write booking, broadcast
        """
        lock = self._locks.get(booking_id)
        if lock is None:
            lock = self._locks[booking_id] = asyncio.Lock()
        # Count waiters too, so the lock is not dropped while someone queues on it
        self._holders[booking_id] = self._holders.get(booking_id, 0) + 1

        try:
            if lock.locked():
                logger.debug("booking %s busy, queueing %s", booking_id, reason or "operation")
            async with lock:
                yield
        finally:
            remaining = self._holders[booking_id] - 1
            if remaining:
                self._holders[booking_id] = remaining
            else:
                del self._holders[booking_id]
                del self._locks[booking_id]

    def active(self) -> int:
        """Number of bookings with an operation running or queued."""
        return len(self._locks)
