# booking_chat/services/broadcast_router.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from booking_chat.models.models import Booking, ChatMessage, Role
from booking_chat.services.booking_locks import BookingLocks
from booking_chat.services.message_store import MessageStore
from booking_chat.services.room_registry import RoomRegistry

logger = logging.getLogger(__name__)

# Server -> client event names
RECEIVE_MESSAGE = "receive_message"
BOOKING_UPDATED = "booking_updated"
LOAD_MESSAGES = "load_messages"

# ============================================================================
# BROADCAST ROUTER
# ============================================================================

class BroadcastRouter:
    """
    Fans chat messages and booking updates out to the connections in a room.

    Outbound frames all share one envelope:
        {"event": "<name>", "data": <payload>}

    Delivery Rules:
        - receive_message goes to every member except the sender's connection,
          which already shows the message optimistically
        - booking_updated goes to every member, the actor included, because
          clients replace their whole booking view with it
        - load_messages goes to the joining connection only

    Error Handling:
        Delivery is best-effort. A connection whose send fails is handed to
        ``on_unreachable`` (the gateway's close) and is not retried.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        message_store: MessageStore,
        locks: BookingLocks,
    ) -> None:
        self.registry = registry
        self.message_store = message_store
        self.locks = locks

        # Map: connection id -> websocket-like object with ``send_json``
        self.connections: Dict[str, Any] = {}
        self.on_unreachable: Optional[Callable[[str], None]] = None

        # Map: booking_id -> (sender_id, sender_role) -> latest timestamp seen.
        # Only kept while the booking's room has members.
        self._last_timestamps: Dict[int, Dict[Tuple[int, Role], datetime]] = {}
        self.messages_routed: int = 0

    # ------------------------------------------------------------------
    # connection directory
    # ------------------------------------------------------------------

    def attach(self, connection_id: str, websocket: Any) -> None:
        self.connections[connection_id] = websocket

    def detach(self, connection_id: str) -> None:
        self.connections.pop(connection_id, None)

    async def send_to(self, connection_id: str, event: str, data: Any) -> bool:
        """
        Send one event to one connection.

        Returns:
            True if the frame was handed to the transport
        """
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return False

        try:
            await websocket.send_json({"event": event, "data": data})
            return True
        except Exception as e:
            logger.error("Send error to %s (%s): %s", connection_id, event, e)
            self._drop(connection_id)
            return False

    def _drop(self, connection_id: str) -> None:
        if self.on_unreachable is not None:
            self.on_unreachable(connection_id)
            return
        self.detach(connection_id)
        for booking_id in self.registry.rooms_of(connection_id):
            self.registry.leave(booking_id, None, connection_id)
            self.release_room(booking_id)

    async def fan_out(
        self,
        booking_id: int,
        event: str,
        data: Any,
        exclude: Iterable[str] = (),
    ) -> int:
        """
        Push an event to every member of a booking's room.

        Returns:
            Number of connections the frame was delivered to
        """
        skip = set(exclude)
        recipients = sorted(self.registry.members_of(booking_id) - skip)
        if not recipients:
            logger.info("[routing] Skipped %s: booking=%s has no other members", event, booking_id)
            return 0

        logger.info("📨 %s to booking %s: %d clients", event, booking_id, len(recipients))
        delivered = 0
        for connection_id in recipients:
            if await self.send_to(connection_id, event, data):
                delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # chat
    # ------------------------------------------------------------------

    def _stamp(self, message: ChatMessage) -> ChatMessage:
        """Keep timestamps non-decreasing per sender within a booking."""
        senders = self._last_timestamps.setdefault(message.booking_id, {})
        key = (message.sender_id, message.sender_role)
        last = senders.get(key)
        if last is not None and message.timestamp < last:
            logger.debug("Clamping timestamp of message %s from %s to %s", message.id, message.timestamp, last)
            message = message.model_copy(update={"timestamp": last})
        senders[key] = message.timestamp
        return message

    def release_room(self, booking_id: int) -> None:
        """Forget per-booking routing state once nobody is left in the room."""
        if not self.registry.members_of(booking_id):
            self._last_timestamps.pop(booking_id, None)

    async def send_message(
        self,
        booking_id: int,
        message: ChatMessage,
        origin: Optional[str] = None,
    ) -> ChatMessage:
        """
        Persist a chat message, then push it to the room.

        Args:
            booking_id: Target booking room
            message: Message to append (its booking id must match)
            origin: Connection that sent it; it does not get an echo

        Returns:
            The message as stored (timestamp possibly clamped)

        Raises:
            StoreUnavailable: if the message store rejects the append. Nothing
                is pushed in that case.
        """
        async with self.locks.hold(booking_id, reason="send_message"):
            return await self.publish_message(message, origin=origin)

    async def publish_message(self, message: ChatMessage, origin: Optional[str] = None) -> ChatMessage:
        """Same as ``send_message`` for callers already holding the booking lock."""
        message = self._stamp(message)
        await self.message_store.append_message(message)
        self.messages_routed += 1

        await self.fan_out(
            message.booking_id,
            RECEIVE_MESSAGE,
            message.to_wire(),
            exclude=(origin,) if origin else (),
        )
        self.release_room(message.booking_id)
        return message

    # ------------------------------------------------------------------
    # booking updates + history
    # ------------------------------------------------------------------

    async def broadcast_booking_update(self, booking_id: int, booking: Booking) -> int:
        """Push the full canonical booking to every member, the actor included."""
        return await self.fan_out(booking_id, BOOKING_UPDATED, booking.to_wire())

    async def replay_history(self, booking_id: int) -> List[ChatMessage]:
        """Fetch the booking's chat history, oldest first. Each call re-reads the store."""
        return await self.message_store.get_message_history(booking_id)

    async def send_history(self, connection_id: str, history: List[ChatMessage]) -> bool:
        return await self.send_to(connection_id, LOAD_MESSAGES, [m.to_wire() for m in history])
