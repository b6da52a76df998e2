# booking_chat/api/routes/bookings.py

from fastapi import APIRouter, Depends

from booking_chat.core import state
from booking_chat.core.errors import NotConfirmed, Unauthorized
from booking_chat.models.models import (
    AgreeRequest,
    BookingStatus,
    Identity,
    PriceUpdateRequest,
    Role,
)
from booking_chat.services.auth_service import ensure_party, get_current_identity

router = APIRouter(tags=["Bookings"])

# ============================================================================
# BOOKING NEGOTIATION ENDPOINTS
# ============================================================================

@router.get("/bookings/{booking_id}")
async def get_booking(booking_id: int, identity: Identity = Depends(get_current_identity)):
    """
    Get the canonical booking record.

    Raises:
        401 if the caller is not the booking's client / provider, 404 if unknown
    """
    booking = await state.engine.get_booking(booking_id)
    ensure_party(booking, identity)
    return booking.to_wire()


@router.put("/bookings/{booking_id}/price")
async def propose_price(
    booking_id: int,
    request: PriceUpdateRequest,
    identity: Identity = Depends(get_current_identity),
):
    """
    Propose a new price as the caller's role.

    Goes through the same engine as the websocket "propose_price" event, so
    every member of the booking's room receives "booking_updated".

    Returns:
        dict: {"booking": <updated booking>}

    Raises:
        409 NegotiationLocked, 422 InvalidAmount
    """
    booking = await state.engine.get_booking(booking_id)
    ensure_party(booking, identity)
    updated = await state.engine.propose_price(booking_id, identity.role, request.price, actor=identity)
    return {"booking": updated.to_wire()}


@router.put("/bookings/{booking_id}/agree")
async def agree_price(
    booking_id: int,
    request: AgreeRequest,
    identity: Identity = Depends(get_current_identity),
):
    """
    Agree to the current price as the caller's role.

    Raises:
        409 NegotiationLocked, 422 NoPriceSet
    """
    if request.role is not None and request.role is not identity.role:
        raise Unauthorized("role does not match session token")
    booking = await state.engine.get_booking(booking_id)
    ensure_party(booking, identity)
    updated = await state.engine.agree_to_price(booking_id, identity.role, actor=identity)
    return {"booking": updated.to_wire()}


@router.post("/payments/create-intent/{booking_id}")
async def create_payment_intent(booking_id: int, identity: Identity = Depends(get_current_identity)):
    """
    Start checkout for a confirmed booking. Client only.

    Returns:
        dict: {"url": "<checkout url>"}
    """
    if identity.role is not Role.CLIENT:
        raise Unauthorized("Only the client can pay for a booking")
    booking = await state.engine.get_booking(booking_id)
    ensure_party(booking, identity)
    if booking.status is not BookingStatus.CONFIRMED:
        raise NotConfirmed(booking_id, booking.status.value)

    intent = await state.payments.create_payment_intent(booking_id)
    return intent.model_dump()
