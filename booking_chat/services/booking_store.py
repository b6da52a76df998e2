# booking_chat/services/booking_store.py

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from booking_chat.core.errors import NotFound, StoreUnavailable
from booking_chat.models.models import Booking, BookingStatus, Role

logger = logging.getLogger(__name__)

# ============================================================================
# BOOKING STORE INTERFACE
# ============================================================================

class BookingStore(ABC):
    """
    Durable owner of booking records.

    The negotiation engine never keeps its own copy of a booking: it reads the
    record, decides the transition, writes it through one of the methods below
    and hands the returned record to the room.
    """

    @abstractmethod
    async def get_booking(self, booking_id: int) -> Booking:
        """Raises NotFound for unknown ids, StoreUnavailable on I/O failure."""

    @abstractmethod
    async def update_booking_price(
        self, booking_id: int, price: Decimal, status: BookingStatus
    ) -> Booking:
        """Write a new price + status and clear both agreement flags."""

    @abstractmethod
    async def set_agreement(self, booking_id: int, role: Role, status: BookingStatus) -> Booking:
        """Mark ``role`` as having agreed and write the resulting status."""

    async def aclose(self) -> None:
        return None


# ============================================================================
# IN-MEMORY STORE (local development / tests)
# ============================================================================

class InMemoryBookingStore(BookingStore):
    """
    Dict-backed booking store.

    Records are copied on the way in and out, so callers can never mutate the
    stored record behind the store's back.
    """

    def __init__(self) -> None:
        self.bookings: Dict[int, Booking] = {}

    def add_booking(self, booking: Booking) -> Booking:
        self.bookings[booking.id] = booking.model_copy(deep=True)
        logger.info("✓ Seeded booking %s (%s)", booking.id, booking.status.value)
        return booking

    def _load(self, booking_id: int) -> Booking:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFound(booking_id)
        return booking

    async def get_booking(self, booking_id: int) -> Booking:
        # Yield like a real I/O call would
        await asyncio.sleep(0)
        return self._load(booking_id).model_copy(deep=True)

    async def update_booking_price(
        self, booking_id: int, price: Decimal, status: BookingStatus
    ) -> Booking:
        await asyncio.sleep(0)
        updated = self._load(booking_id).model_copy(
            update={
                "price": price,
                "status": status,
                "agreement_signed_by_client": False,
                "agreement_signed_by_provider": False,
            }
        )
        self.bookings[booking_id] = updated
        return updated.model_copy(deep=True)

    async def set_agreement(self, booking_id: int, role: Role, status: BookingStatus) -> Booking:
        await asyncio.sleep(0)
        flag = "agreement_signed_by_client" if role is Role.CLIENT else "agreement_signed_by_provider"
        updated = self._load(booking_id).model_copy(update={flag: True, "status": status})
        self.bookings[booking_id] = updated
        return updated.model_copy(deep=True)


# ============================================================================
# HTTP STORE (booking service REST API)
# ============================================================================

class HttpBookingStore(BookingStore):
    """
    Booking store backed by the booking service's REST API.

    Endpoints used:
        GET /bookings/{id}               -> Booking
        PUT /bookings/{id}/price {price, status} -> {"booking": Booking}
        PUT /bookings/{id}/agree {role, status}  -> {"booking": Booking}

    Error Handling:
        - 404 becomes NotFound
        - transport errors, timeouts, any other non-2xx and 2xx bodies that are
          not a readable booking become StoreUnavailable
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    async def _request(
        self, method: str, booking_id: int, path: str, json: Optional[dict] = None
    ) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.error("Booking service %s %s failed: %s", method, path, e)
            raise StoreUnavailable(
                f"Booking service unreachable: {e.__class__.__name__}",
                details={"booking_id": booking_id},
            ) from e

        if response.status_code == 404:
            raise NotFound(booking_id)
        if response.status_code >= 400:
            logger.error(
                "Booking service %s %s returned %s: %s",
                method, path, response.status_code, response.text,
            )
            raise StoreUnavailable(
                f"Booking service returned {response.status_code}",
                details={"booking_id": booking_id, "status_code": response.status_code},
            )
        try:
            return response.json()
        except ValueError as e:
            logger.error("Booking service %s %s returned a non-JSON body: %r", method, path, response.text[:200])
            raise StoreUnavailable(
                "Booking service returned an unreadable response",
                details={"booking_id": booking_id, "status_code": response.status_code},
            ) from e

    @staticmethod
    def _booking_from(booking_id: int, body: Any) -> Booking:
        if isinstance(body, dict):
            for key in ("booking", "data"):
                if isinstance(body.get(key), dict):
                    body = body[key]
                    break
        try:
            return Booking.model_validate(body)
        except ValidationError as e:
            logger.error("Booking service sent a malformed booking %s: %s", booking_id, e)
            raise StoreUnavailable(
                "Booking service returned a malformed booking",
                details={"booking_id": booking_id},
            ) from e

    async def get_booking(self, booking_id: int) -> Booking:
        body = await self._request("GET", booking_id, f"/bookings/{booking_id}")
        return self._booking_from(booking_id, body)

    async def update_booking_price(
        self, booking_id: int, price: Decimal, status: BookingStatus
    ) -> Booking:
        body = await self._request(
            "PUT",
            booking_id,
            f"/bookings/{booking_id}/price",
            json={"price": str(price), "status": status.value},
        )
        return self._booking_from(booking_id, body)

    async def set_agreement(self, booking_id: int, role: Role, status: BookingStatus) -> Booking:
        body = await self._request(
            "PUT",
            booking_id,
            f"/bookings/{booking_id}/agree",
            json={"role": role.value, "status": status.value},
        )
        return self._booking_from(booking_id, body)

    async def aclose(self) -> None:
        await self._client.aclose()
