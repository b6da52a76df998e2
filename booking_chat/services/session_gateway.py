# booking_chat/services/session_gateway.py

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from booking_chat.core.errors import (
    BookingChatError,
    InvalidPayload,
    NotJoined,
    StoreUnavailable,
    Unauthorized,
)
from booking_chat.models.models import (
    AgreePricePayload,
    AuthenticatePayload,
    ChatMessage,
    Identity,
    JoinRoomPayload,
    LeaveRoomPayload,
    ProposePricePayload,
    SendMessagePayload,
)
from booking_chat.services.auth_service import SessionTokens, ensure_party
from booking_chat.services.booking_locks import BookingLocks
from booking_chat.services.broadcast_router import BroadcastRouter
from booking_chat.services.negotiation_engine import NegotiationEngine
from booking_chat.services.room_registry import RoomRegistry

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=BaseModel)

# Events that may arrive before the connection has an identity
PRE_AUTH_EVENTS = frozenset({"authenticate", "join_room"})


@dataclass
class Session:
    """One client connection. Lives from ``open`` until ``close``."""

    connection_id: str
    websocket: Any
    identity: Optional[Identity] = None
    booking_id: Optional[int] = None
    closed: bool = False
    opened_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# SESSION GATEWAY
# ============================================================================

class SessionGateway:
    """
    Owns client connections and routes their events.

    Protocol:
    =========

    Frames are JSON objects in both directions:
        {"event": "<name>", "data": {...}}

    Client -> Server Events:
    ------------------------
    authenticate   {"token"}                              -> "authenticated"
    join_room      {"bookingId", "role", "token"?}        -> "load_messages" (joiner only)
    leave_room     {"bookingId", "role"}                  -> nothing
    send_message   {"bookingId", "sender_id", "sender_role", "message", "timestamp"}
                                                          -> "receive_message" (other members)
    propose_price  {"bookingId", "price"}                 -> "booking_updated" (all members)
    agree_price    {"bookingId", "role"}                  -> "booking_updated" (all members)

    Errors:
    -------
    {"event": "error", "data": {"kind", "message", "details", "event"}}
    sent to the offending connection only. Nothing is broadcast and the
    booking is left untouched.

    Lifecycle:
    ==========
    1. ``open`` accepts the socket and registers the session
    2. The connection authenticates (query token, authenticate or join_room)
    3. join_room must precede any chat / negotiation event for that booking
    4. ``close`` leaves every room exactly once, however many times it is called
    """

    def __init__(
        self,
        registry: RoomRegistry,
        router: BroadcastRouter,
        engine: NegotiationEngine,
        tokens: SessionTokens,
        locks: BookingLocks,
    ) -> None:
        self.registry = registry
        self.router = router
        self.engine = engine
        self.tokens = tokens
        self.locks = locks
        self.sessions: Dict[str, Session] = {}

        # Failed sends end up closing the session like a transport disconnect
        self.router.on_unreachable = self.close

        self._handlers: Dict[str, Callable[[Session, dict], Awaitable[None]]] = {
            "authenticate": self._on_authenticate,
            "join_room": self._on_join_room,
            "leave_room": self._on_leave_room,
            "send_message": self._on_send_message,
            "propose_price": self._on_propose_price,
            "agree_price": self._on_agree_price,
        }

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    async def open(self, websocket: Any) -> Session:
        """Accept a connection. The session starts unauthenticated and in no room."""
        await websocket.accept()
        session = Session(connection_id=uuid.uuid4().hex, websocket=websocket)
        self.sessions[session.connection_id] = session
        self.router.attach(session.connection_id, websocket)
        logger.info("✓ Connection %s opened. Total: %d", session.connection_id, len(self.sessions))
        return session

    def close(self, connection_id: str) -> None:
        """
        Tear down a session after a transport disconnect (or a failed send).

        Safe to call repeatedly: only the first call leaves rooms. In-flight
        operations of this connection are not cancelled; they complete and
        broadcast, but nothing further from it is accepted.
        """
        session = self.sessions.pop(connection_id, None)
        if session is None or session.closed:
            return

        session.closed = True
        for booking_id in self.registry.rooms_of(connection_id):
            self.registry.leave(booking_id, self.registry.role_of(booking_id, connection_id), connection_id)
            self.router.release_room(booking_id)
        session.booking_id = None
        self.router.detach(connection_id)

        lifetime = (datetime.now(timezone.utc) - session.opened_at).total_seconds()
        logger.info(
            "✗ Connection %s closed after %.1fs. Total: %d",
            connection_id, lifetime, len(self.sessions),
        )

    # ------------------------------------------------------------------
    # inbound
    # ------------------------------------------------------------------

    async def handle_frame(self, session: Session, raw: str) -> None:
        """Decode one text frame and dispatch it."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            await self._send_error(session, None, InvalidPayload("Invalid JSON"))
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
            await self._send_error(session, None, InvalidPayload("Frame must be {\"event\": ..., \"data\": ...}"))
            return

        await self.dispatch(session, frame["event"], frame.get("data"))

    async def dispatch(self, session: Session, event: str, data: Any) -> None:
        """
        Route one event to its handler.

        Every BookingChatError is turned into an ``error`` event for this
        connection; anything else propagates to the transport loop.
        """
        if session.closed:
            logger.info("Dropping %s from closed connection %s", event, session.connection_id)
            return

        logger.info("Websocket input: event=%s connection=%s", event, session.connection_id)
        try:
            handler = self._handlers.get(event)
            if handler is None:
                raise InvalidPayload(f"Unknown event: {event}")
            if session.identity is None and event not in PRE_AUTH_EVENTS:
                raise Unauthorized()
            await handler(session, data if isinstance(data, dict) else {})
        except BookingChatError as e:
            logger.warning("Rejected %s from %s: %s (%s)", event, session.connection_id, e.kind, e.message)
            await self._send_error(session, event, e)

    async def _send_error(self, session: Session, event: Optional[str], error: BookingChatError) -> None:
        payload = error.to_payload()
        payload["event"] = event
        await self.router.send_to(session.connection_id, "error", payload)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(model: Type[P], data: dict) -> P:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            errors = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]
            raise InvalidPayload(f"Invalid {model.__name__} payload", details=errors) from e

    @staticmethod
    def _identity(session: Session) -> Identity:
        if session.identity is None:
            raise Unauthorized()
        return session.identity

    def _joined_identity(self, session: Session, booking_id: int) -> Identity:
        identity = self._identity(session)
        if session.booking_id != booking_id or booking_id not in self.registry.rooms_of(session.connection_id):
            raise NotJoined(booking_id)
        return identity

    @staticmethod
    async def _read_with_retry(read: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Reads are retried once on StoreUnavailable; the second failure surfaces."""
        try:
            return await read(*args)
        except StoreUnavailable as e:
            logger.warning("Store read failed (%s), retrying once", e.message)
            return await read(*args)

    def _leave_current(self, session: Session) -> None:
        if session.booking_id is None:
            return
        booking_id = session.booking_id
        connection_id = session.connection_id
        self.registry.leave(booking_id, self.registry.role_of(booking_id, connection_id), connection_id)
        self.router.release_room(booking_id)
        session.booking_id = None

    async def _shielded(self, session: Session, event: str, operation: Awaitable[Any]) -> Any:
        """
        Run a negotiation write so that cancelling the caller does not cancel it.

        If the caller is gone by the time the write fails, nobody awaits the
        result any more, so the failure is logged here instead.
        """
        task = asyncio.ensure_future(operation)

        def _report(done: asyncio.Future) -> None:
            if done.cancelled():
                return
            error = done.exception()
            if error is not None and session.closed:
                logger.warning(
                    "%s from closed connection %s failed: %s",
                    event, session.connection_id, error,
                )

        task.add_done_callback(_report)
        return await asyncio.shield(task)

    # ------------------------------------------------------------------
    # handlers
    # ------------------------------------------------------------------

    async def _on_authenticate(self, session: Session, data: dict) -> None:
        payload = self._parse(AuthenticatePayload, data)
        identity = self.tokens.verify(payload.token)
        if session.identity is not None and session.identity != identity:
            # A different user on the same socket starts from scratch
            self._leave_current(session)
        session.identity = identity
        await self.router.send_to(
            session.connection_id,
            "authenticated",
            {"user_id": identity.user_id, "role": identity.role.value},
        )

    async def _on_join_room(self, session: Session, data: dict) -> None:
        payload = self._parse(JoinRoomPayload, data)
        if payload.token:
            identity = self.tokens.verify(payload.token)
            if session.identity is not None and session.identity != identity:
                self._leave_current(session)
            session.identity = identity
        identity = self._identity(session)

        if payload.role is not identity.role:
            raise Unauthorized(
                "Role does not match session token",
                details={"claimed": payload.role.value, "token": identity.role.value},
            )

        booking_id = payload.booking_id
        booking = await self._read_with_retry(self.engine.get_booking, booking_id)
        ensure_party(booking, identity)

        if session.booking_id is not None and session.booking_id != booking_id:
            self._leave_current(session)

        async with self.locks.hold(booking_id, reason="join_room"):
            if session.closed:
                return
            already_member = session.connection_id in self.registry.members_of(booking_id)
            self.registry.join(booking_id, identity.role, session.connection_id)
            session.booking_id = booking_id
            try:
                history = await self._read_with_retry(self.router.replay_history, booking_id)
            except BookingChatError:
                if not already_member:
                    self._leave_current(session)
                raise
            await self.router.send_history(session.connection_id, history)

    async def _on_leave_room(self, session: Session, data: dict) -> None:
        payload = self._parse(LeaveRoomPayload, data)
        if session.booking_id == payload.booking_id:
            self._leave_current(session)
        else:
            # Not a member: registry treats this as a no-op
            self.registry.leave(payload.booking_id, payload.role, session.connection_id)

    async def _on_send_message(self, session: Session, data: dict) -> None:
        payload = self._parse(SendMessagePayload, data)
        identity = self._joined_identity(session, payload.booking_id)

        if payload.sender_id is not None and payload.sender_id != identity.user_id:
            raise Unauthorized("sender_id does not match session token")
        if payload.sender_role is not None and payload.sender_role is not identity.role:
            raise Unauthorized("sender_role does not match session token")

        fields: Dict[str, Any] = {
            "booking_id": payload.booking_id,
            "sender_id": identity.user_id,
            "sender_role": identity.role,
            "message": payload.message,
        }
        if payload.timestamp is not None:
            fields["timestamp"] = payload.timestamp
        if payload.id:
            fields["id"] = payload.id

        await self.router.send_message(
            payload.booking_id, ChatMessage(**fields), origin=session.connection_id
        )

    async def _on_propose_price(self, session: Session, data: dict) -> None:
        payload = self._parse(ProposePricePayload, data)
        identity = self._joined_identity(session, payload.booking_id)

        # A disconnect mid-write must not cancel the write or its broadcast
        await self._shielded(
            session,
            "propose_price",
            self.engine.propose_price(
                payload.booking_id,
                identity.role,
                payload.price,
                actor=identity,
                origin=session.connection_id,
            ),
        )

    async def _on_agree_price(self, session: Session, data: dict) -> None:
        payload = self._parse(AgreePricePayload, data)
        identity = self._joined_identity(session, payload.booking_id)
        if payload.role is not None and payload.role is not identity.role:
            raise Unauthorized("role does not match session token")

        await self._shielded(
            session,
            "agree_price",
            self.engine.agree_to_price(
                payload.booking_id,
                identity.role,
                actor=identity,
                origin=session.connection_id,
            ),
        )
