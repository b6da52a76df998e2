# booking_chat/services/negotiation_engine.py
"""
Price negotiation state machine for a booking.

    Pending --propose--> Negotiating --propose--> Negotiating
    Negotiating --agree (one side)--> Negotiating
    Negotiating --agree (second side)--> Confirmed

Confirmed, Cancelled, Paid and Completed are terminal here: any proposal or
agreement against them fails with NegotiationLocked. A new proposal always
clears both agreement flags, so an agreement never carries over to a price
nobody agreed to.

Each transition is one serialized unit per booking id: read the canonical
record, validate, write it back, broadcast the result to the room.
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from booking_chat.core.errors import (
    InvalidAmount,
    NegotiationLocked,
    NoPriceSet,
    StoreUnavailable,
)
from booking_chat.models.models import Booking, BookingStatus, ChatMessage, Identity, Role
from booking_chat.services.booking_locks import BookingLocks
from booking_chat.services.booking_store import BookingStore
from booking_chat.services.broadcast_router import BroadcastRouter

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def parse_amount(amount: Any) -> Decimal:
    """
    Turn a proposed price into a positive Decimal rounded to cents.

    Raises:
        InvalidAmount: for None, booleans, non-numeric strings, NaN/infinity
            and anything that is not > 0 after rounding
    """
    if amount is None or isinstance(amount, bool):
        raise InvalidAmount(amount)
    try:
        value = Decimal(str(amount).strip())
        if not value.is_finite():
            raise InvalidAmount(amount)
        value = value.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise InvalidAmount(amount) from None
    if value <= 0:
        raise InvalidAmount(amount)
    return value


def ensure_negotiable(booking: Booking) -> None:
    if booking.fully_agreed or not booking.is_open:
        raise NegotiationLocked(booking.id, booking.status.value)


class NegotiationEngine:
    def __init__(
        self,
        booking_store: BookingStore,
        router: BroadcastRouter,
        locks: BookingLocks,
        announce: bool = True,
    ) -> None:
        self.booking_store = booking_store
        self.router = router
        self.locks = locks
        self.announce = announce

    async def get_booking(self, booking_id: int) -> Booking:
        """Plain read. Terminal bookings (e.g. Cancelled) are returned, not rejected."""
        return await self.booking_store.get_booking(booking_id)

    async def propose_price(
        self,
        booking_id: int,
        proposer_role: Role,
        amount: Any,
        *,
        actor: Optional[Identity] = None,
        origin: Optional[str] = None,
    ) -> Booking:
        """
        Set a new price and reopen agreement.

        Args:
            booking_id: Booking being negotiated
            proposer_role: Side making the proposal
            amount: Proposed price (number or numeric string)
            actor: Identity of the proposer, used to attribute the chat announcement
            origin: Connection that sent the proposal, excluded from the announcement

        Returns:
            The canonical booking after the write: status Negotiating, new
            price, both agreement flags false

        Raises:
            InvalidAmount, NegotiationLocked, NotFound, StoreUnavailable
        """
        price = parse_amount(amount)

        async with self.locks.hold(booking_id, reason="propose_price"):
            booking = await self.booking_store.get_booking(booking_id)
            ensure_negotiable(booking)

            updated = await self.booking_store.update_booking_price(
                booking_id, price, BookingStatus.NEGOTIATING
            )
            logger.info(
                "💬 %s proposed %s for booking %s (was %s)",
                proposer_role.value, price, booking_id, booking.price,
            )
            await self._publish(
                updated, actor, origin,
                f"💬 {proposer_role.label} proposed a new price: ${price}",
            )
            return updated

    async def agree_to_price(
        self,
        booking_id: int,
        role: Role,
        *,
        actor: Optional[Identity] = None,
        origin: Optional[str] = None,
    ) -> Booking:
        """
        Record one side's agreement to the current price.

        The second agreement confirms the booking. Agreeing again on an
        already Confirmed booking is rejected rather than ignored.

        Raises:
            NoPriceSet, NegotiationLocked, NotFound, StoreUnavailable
        """
        async with self.locks.hold(booking_id, reason="agree_price"):
            booking = await self.booking_store.get_booking(booking_id)
            ensure_negotiable(booking)
            if booking.price is None:
                raise NoPriceSet(booking_id)

            other = Role.PROVIDER if role is Role.CLIENT else Role.CLIENT
            status = BookingStatus.CONFIRMED if booking.has_agreed(other) else booking.status

            updated = await self.booking_store.set_agreement(booking_id, role, status)
            if updated.status is BookingStatus.CONFIRMED:
                logger.info("🤝 Booking %s confirmed at %s", booking_id, updated.price)
            else:
                logger.info("✓ %s agreed to %s for booking %s", role.value, updated.price, booking_id)

            await self._publish(updated, actor, origin, f"✅ {role.label} agreed to the price.")
            return updated

    async def _publish(
        self,
        booking: Booking,
        actor: Optional[Identity],
        origin: Optional[str],
        announcement: str,
    ) -> None:
        await self.router.broadcast_booking_update(booking.id, booking)

        if not (self.announce and actor):
            return
        message = ChatMessage(
            booking_id=booking.id,
            sender_id=actor.user_id,
            sender_role=actor.role,
            message=announcement,
        )
        try:
            await self.router.publish_message(message, origin=origin)
        except StoreUnavailable as e:
            # The booking write already happened; only the chat line is lost
            logger.error("Could not store announcement for booking %s: %s", booking.id, e)
