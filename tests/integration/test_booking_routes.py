"""
Tests for the REST surface.

WHAT: booking read / propose / agree / payment routes and their error bodies
WHY: REST callers share the negotiation engine with websocket clients
HOW: TestClient requests with Bearer session tokens
"""

import pytest

from booking_chat.core import state
from booking_chat.models.models import BookingStatus, Role
from tests.conftest import BOOKING_ID, CLIENT_ID, PROVIDER_ID, confirmed_booking
from tests.integration.conftest import CHECKOUT_URL


@pytest.mark.integration
class TestBookingRoutes:
    def test_requires_token(self, client):
        response = client.get(f"/bookings/{BOOKING_ID}")

        assert response.status_code == 401
        assert response.json()["error"] == "Unauthorized"

    def test_get_booking(self, client, auth):
        response = client.get(f"/bookings/{BOOKING_ID}", headers=auth(CLIENT_ID, Role.CLIENT))

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == BOOKING_ID
        assert body["status"] == "Pending"
        assert body["price"] is None

    def test_unknown_booking(self, client, auth):
        response = client.get("/bookings/999", headers=auth(CLIENT_ID, Role.CLIENT))

        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    def test_outsider(self, client, auth):
        response = client.get(f"/bookings/{BOOKING_ID}", headers=auth(77, Role.PROVIDER))

        assert response.status_code == 401

    def test_negotiation_round_trip(self, client, auth):
        response = client.put(
            f"/bookings/{BOOKING_ID}/price", json={"price": 120}, headers=auth(PROVIDER_ID, Role.PROVIDER)
        )
        assert response.status_code == 200
        assert response.json()["booking"]["price"] == "120.00"

        client.put(f"/bookings/{BOOKING_ID}/agree", json={}, headers=auth(PROVIDER_ID, Role.PROVIDER))
        response = client.put(
            f"/bookings/{BOOKING_ID}/agree", json={"role": "user"}, headers=auth(CLIENT_ID, Role.CLIENT)
        )

        assert response.json()["booking"]["status"] == "Confirmed"

    def test_invalid_price(self, client, auth):
        response = client.put(
            f"/bookings/{BOOKING_ID}/price", json={"price": "free"}, headers=auth(CLIENT_ID, Role.CLIENT)
        )

        assert response.status_code == 422
        assert response.json()["error"] == "InvalidAmount"

    def test_agree_without_price(self, client, auth):
        response = client.put(f"/bookings/{BOOKING_ID}/agree", json={}, headers=auth(CLIENT_ID, Role.CLIENT))

        assert response.status_code == 422
        assert response.json()["error"] == "NoPriceSet"

    def test_confirmed_booking_is_locked(self, client, auth):
        state.booking_store.add_booking(confirmed_booking())

        response = client.put(
            f"/bookings/{BOOKING_ID}/price", json={"price": 75}, headers=auth(CLIENT_ID, Role.CLIENT)
        )

        assert response.status_code == 409
        assert response.json()["details"]["status"] == "Confirmed"

    def test_agree_for_the_other_side(self, client, auth):
        response = client.put(
            f"/bookings/{BOOKING_ID}/agree", json={"role": "provider"}, headers=auth(CLIENT_ID, Role.CLIENT)
        )

        assert response.status_code == 401

    def test_body_validation(self, client, auth):
        response = client.put(f"/bookings/{BOOKING_ID}/agree", json={"role": "admin"}, headers=auth(CLIENT_ID, Role.CLIENT))

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidPayload"


@pytest.mark.integration
class TestPayments:
    def test_payment_requires_confirmation(self, client, auth, payment_calls):
        response = client.post(f"/payments/create-intent/{BOOKING_ID}", headers=auth(CLIENT_ID, Role.CLIENT))

        assert response.status_code == 409
        assert response.json()["error"] == "NotConfirmed"
        assert payment_calls == []

    def test_provider_cannot_pay(self, client, auth, payment_calls):
        state.booking_store.add_booking(confirmed_booking())

        response = client.post(f"/payments/create-intent/{BOOKING_ID}", headers=auth(PROVIDER_ID, Role.PROVIDER))

        assert response.status_code == 401
        assert payment_calls == []

    def test_client_pays_confirmed_booking(self, client, auth, payment_calls):
        state.booking_store.add_booking(confirmed_booking())

        response = client.post(f"/payments/create-intent/{BOOKING_ID}", headers=auth(CLIENT_ID, Role.CLIENT))

        assert response.status_code == 200
        assert response.json() == {"url": CHECKOUT_URL}
        assert payment_calls == [f"/payments/create-intent/{BOOKING_ID}"]


@pytest.mark.integration
class TestServiceRoutes:
    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
        assert body["connections"] == 0
        assert body["bookings_in_flight"] == 0

    def test_root(self, client):
        assert client.get("/").status_code == 200

    def test_status_after_confirmation_is_readable(self, client, auth):
        state.booking_store.add_booking(confirmed_booking("99"))

        body = client.get(f"/bookings/{BOOKING_ID}", headers=auth(PROVIDER_ID, Role.PROVIDER)).json()

        assert body["status"] == BookingStatus.CONFIRMED.value
        assert body["price"] == "99.00"
