# booking_chat/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Booking Chat - negotiation rooms",
        "version": "1.0",
        "transport": "websocket, {\"event\": ..., \"data\": ...} JSON frames",
        "features": ["booking_rooms", "chat_history", "price_negotiation", "payment_handoff"],
        "endpoints": {
            "websocket": "/ws",
            "booking": "/bookings/{id}",
            "propose_price": "/bookings/{id}/price",
            "agree_price": "/bookings/{id}/agree",
            "payment": "/payments/create-intent/{id}",
            "health": "/health",
        },
    }
