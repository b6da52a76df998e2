# booking_chat/services/payments.py

from __future__ import annotations

import logging
from typing import Optional

import httpx

from booking_chat.core.errors import NotFound, StoreUnavailable
from booking_chat.models.models import PaymentIntent

logger = logging.getLogger(__name__)


class PaymentClient:
    """
    Thin client for the payment service's checkout session endpoint.

        POST /payments/create-intent/{booking_id} -> {"url": "<checkout url>"}
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers)

    async def create_payment_intent(self, booking_id: int) -> PaymentIntent:
        path = f"/payments/create-intent/{booking_id}"
        try:
            response = await self._client.post(path, json={})
        except httpx.HTTPError as e:
            logger.error("Payment service unreachable for booking %s: %s", booking_id, e)
            raise StoreUnavailable("Payment service unreachable", details={"booking_id": booking_id}) from e

        if response.status_code == 404:
            raise NotFound(booking_id)
        url = None
        if response.status_code < 400:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                url = body.get("url")
        if not url or not isinstance(url, str):
            logger.error("Payment intent failed for booking %s: %s", booking_id, response.text)
            raise StoreUnavailable(
                "Failed to create payment session",
                details={"booking_id": booking_id, "status_code": response.status_code},
            )

        logger.info("💳 Payment session created for booking %s", booking_id)
        return PaymentIntent(url=url)

    async def aclose(self) -> None:
        await self._client.aclose()
