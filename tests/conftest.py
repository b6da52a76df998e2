"""
Pytest configuration and shared fixtures.

WHAT: In-memory stores, fake websockets and a fully wired component harness
WHY: Exercise the real registry / router / engine / gateway without network I/O
HOW: Fixtures build fresh components per test; FakeWebSocket records frames
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

import pytest

from booking_chat.models.models import Booking, BookingStatus, Role
from booking_chat.services.auth_service import SessionTokens
from booking_chat.services.booking_locks import BookingLocks
from booking_chat.services.booking_store import InMemoryBookingStore
from booking_chat.services.broadcast_router import BroadcastRouter
from booking_chat.services.message_store import InMemoryMessageStore
from booking_chat.services.negotiation_engine import NegotiationEngine
from booking_chat.services.room_registry import RoomRegistry
from booking_chat.services.session_gateway import SessionGateway

BOOKING_ID = 42
CLIENT_ID = 1
PROVIDER_ID = 2
TEST_SECRET = "test-secret"


class FakeWebSocket:
    """Records every frame sent to it. ``fail_sends`` simulates a dead peer."""

    def __init__(self, fail_sends: bool = False):
        self.accepted = False
        self.fail_sends = fail_sends
        self.sent: List[dict] = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, data: Any):
        if self.fail_sends:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    def events(self, name: Optional[str] = None) -> List[dict]:
        return [f for f in self.sent if name is None or f["event"] == name]

    def names(self) -> List[str]:
        return [f["event"] for f in self.sent]


@dataclass
class Harness:
    booking_store: InMemoryBookingStore
    message_store: InMemoryMessageStore
    tokens: SessionTokens
    locks: BookingLocks
    registry: RoomRegistry
    router: BroadcastRouter
    engine: NegotiationEngine
    gateway: SessionGateway


def make_booking(**overrides) -> Booking:
    fields = dict(
        id=BOOKING_ID,
        client_id=CLIENT_ID,
        provider_id=PROVIDER_ID,
        status=BookingStatus.PENDING,
        notes="Deep clean, 2 bedrooms",
    )
    fields.update(overrides)
    return Booking(**fields)


def confirmed_booking(price: str = "50") -> Booking:
    return make_booking(
        status=BookingStatus.CONFIRMED,
        price=Decimal(price),
        agreement_signed_by_client=True,
        agreement_signed_by_provider=True,
    )


def build_harness(booking_store, message_store, tokens, announce: bool = False) -> Harness:
    locks = BookingLocks()
    registry = RoomRegistry()
    router = BroadcastRouter(registry, message_store, locks)
    engine = NegotiationEngine(booking_store, router, locks, announce=announce)
    gateway = SessionGateway(registry, router, engine, tokens, locks)
    return Harness(booking_store, message_store, tokens, locks, registry, router, engine, gateway)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (isolated component tests)")
    config.addinivalue_line("markers", "integration: Integration tests (websocket / HTTP through the app)")


@pytest.fixture
def tokens() -> SessionTokens:
    return SessionTokens(TEST_SECRET)


@pytest.fixture
def booking_store() -> InMemoryBookingStore:
    store = InMemoryBookingStore()
    store.add_booking(make_booking())
    return store


@pytest.fixture
def message_store() -> InMemoryMessageStore:
    return InMemoryMessageStore()


@pytest.fixture
def harness(booking_store, message_store, tokens) -> Harness:
    """
    Fully wired components with chat announcements switched off.

    WHAT: registry + router + engine + gateway sharing one lock table
    WHY: Most tests count frames exactly; announcements would add extra ones
    HOW: build_harness(..., announce=False)
    """
    return build_harness(booking_store, message_store, tokens)


@pytest.fixture
def join(harness, tokens):
    """Open a fake connection, authenticate through join_room and return (session, socket)."""

    async def _join(user_id: int, role: Role, booking_id: int = BOOKING_ID):
        ws = FakeWebSocket()
        session = await harness.gateway.open(ws)
        await harness.gateway.dispatch(
            session,
            "join_room",
            {"bookingId": booking_id, "role": role.value, "token": tokens.issue(user_id, role)},
        )
        return session, ws

    return _join
