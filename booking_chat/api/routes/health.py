# booking_chat/api/routes/health.py
from datetime import datetime, timezone

from fastapi import APIRouter

from booking_chat.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, connection counts and room counts.
    Used by container health probes and monitoring.

    Returns:
        dict: Status, connection count, active room count, members and roles
              per room, bookings with an operation in flight, chat messages
              routed since start
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        "connections": len(state.gateway.sessions),
        "active_rooms_with_members": len(state.room_registry.rooms),
        "rooms": state.room_registry.get_rooms_info(),
        "bookings_in_flight": state.locks.active(),
        "messages_routed": state.router.messages_routed,
        "uptime_hours": round(uptime_seconds / 3600, 2),
    }
