# booking_chat/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from booking_chat.core.config import settings
from booking_chat.services.auth_service import SessionTokens
from booking_chat.services.booking_locks import BookingLocks
from booking_chat.services.booking_store import BookingStore, HttpBookingStore, InMemoryBookingStore
from booking_chat.services.broadcast_router import BroadcastRouter
from booking_chat.services.message_store import InMemoryMessageStore, MessageStore, RedisMessageStore
from booking_chat.services.negotiation_engine import NegotiationEngine
from booking_chat.services.payments import PaymentClient
from booking_chat.services.room_registry import RoomRegistry
from booking_chat.services.session_gateway import SessionGateway

# Global singletons for app state (rebuilt by init_state)
booking_store: BookingStore
message_store: MessageStore
payments: PaymentClient
tokens: SessionTokens
locks: BookingLocks
room_registry: RoomRegistry
router: BroadcastRouter
engine: NegotiationEngine
gateway: SessionGateway

app_start_time: datetime = datetime.now(timezone.utc)


def _default_booking_store() -> BookingStore:
    if settings.STORE_BACKEND == "http":
        return HttpBookingStore(
            settings.BOOKING_API_URL,
            token=settings.BOOKING_API_TOKEN,
            timeout=settings.BOOKING_API_TIMEOUT,
        )
    return InMemoryBookingStore()


def _default_message_store() -> MessageStore:
    if settings.MESSAGE_STORE_BACKEND == "redis":
        # Connected in the app's startup hook
        return RedisMessageStore(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    return InMemoryMessageStore()


def init_state(
    booking_store_override: Optional[BookingStore] = None,
    message_store_override: Optional[MessageStore] = None,
    payments_override: Optional[PaymentClient] = None,
    tokens_override: Optional[SessionTokens] = None,
    announce: Optional[bool] = None,
) -> None:
    """Wire every component together. Called at import time and by tests to start clean."""
    global booking_store, message_store, payments, tokens, locks
    global room_registry, router, engine, gateway

    booking_store = booking_store_override or _default_booking_store()
    message_store = message_store_override or _default_message_store()
    payments = payments_override or PaymentClient(
        settings.PAYMENT_API_URL,
        token=settings.BOOKING_API_TOKEN,
        timeout=settings.BOOKING_API_TIMEOUT,
    )
    tokens = tokens_override or SessionTokens(
        settings.SESSION_TOKEN_SECRET,
        algorithm=settings.SESSION_TOKEN_ALGORITHM,
        ttl_seconds=settings.SESSION_TOKEN_TTL_SECONDS,
    )

    locks = BookingLocks()
    room_registry = RoomRegistry()
    router = BroadcastRouter(room_registry, message_store, locks)
    engine = NegotiationEngine(
        booking_store,
        router,
        locks,
        announce=settings.ANNOUNCE_NEGOTIATION_EVENTS if announce is None else announce,
    )
    gateway = SessionGateway(room_registry, router, engine, tokens, locks)


init_state()
