# booking_chat/api/websocket.py

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from booking_chat.core import state

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
    """
    WebSocket endpoint for booking chat and price negotiation.

    Protocol:
    =========
    Every frame is {"event": "<name>", "data": {...}}. See SessionGateway for
    the full event list.

    Lifecycle:
    ==========
    1. Client connects, optionally with ?token=<session token>
    2. Client sends "join_room" for its booking and receives "load_messages"
    3. Chat / negotiation events are routed to the booking's room
    4. On disconnect the connection leaves its room

    Args:
        websocket: WebSocket connection object
        token: Optional session token, same as sending an "authenticate" event
    """
    gateway = state.gateway
    session = await gateway.open(websocket)
    if token:
        await gateway.dispatch(session, "authenticate", {"token": token})

    try:
        while True:
            data = await websocket.receive_text()
            await gateway.handle_frame(session, data)

    except WebSocketDisconnect:
        gateway.close(session.connection_id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", session.connection_id, e)
        gateway.close(session.connection_id)
