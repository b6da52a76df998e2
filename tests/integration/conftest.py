"""
App-level fixtures.

WHAT: A TestClient over the real FastAPI app with in-memory stores
WHY: Exercise routing, exception handlers and the websocket loop end to end
HOW: state.init_state(...) swaps in fresh components before each test
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from booking_chat.core import state
from booking_chat.main import app
from booking_chat.models.models import Role
from booking_chat.services.booking_store import InMemoryBookingStore
from booking_chat.services.message_store import InMemoryMessageStore
from booking_chat.services.payments import PaymentClient
from tests.conftest import make_booking

CHECKOUT_URL = "https://pay.test/checkout/42"


@pytest.fixture
def payment_calls():
    return []


@pytest.fixture
def client(tokens, payment_calls):
    def payment_handler(request):
        payment_calls.append(request.url.path)
        return httpx.Response(200, json={"url": CHECKOUT_URL})

    booking_store = InMemoryBookingStore()
    booking_store.add_booking(make_booking())
    payments = PaymentClient(
        "http://payments.test",
        client=httpx.AsyncClient(
            base_url="http://payments.test", transport=httpx.MockTransport(payment_handler)
        ),
    )
    state.init_state(
        booking_store_override=booking_store,
        message_store_override=InMemoryMessageStore(),
        payments_override=payments,
        tokens_override=tokens,
        announce=False,
    )
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(tokens):
    """Authorization header for a user id / role."""

    def _auth(user_id: int, role: Role) -> dict:
        return {"Authorization": f"Bearer {tokens.issue(user_id, role)}"}

    return _auth
