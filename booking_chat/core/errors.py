# booking_chat/core/errors.py
"""
Domain exceptions for the negotiation & chat core.

Every exception carries a ``kind`` (the name clients see in ``error`` events and
REST bodies), a human readable ``message``, optional ``details`` and the HTTP
status used when the same failure surfaces through a REST route.
"""

from __future__ import annotations

from typing import Any, Optional


class BookingChatError(Exception):
    """Base class for all errors surfaced to a connection or HTTP caller."""

    kind: str = "Error"
    status_code: int = 400

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_payload(self) -> dict:
        return {"kind": self.kind, "message": self.message, "details": self.details}


class Unauthorized(BookingChatError):
    """No identity, a bad token, or an identity that does not own the booking."""

    kind = "Unauthorized"
    status_code = 401

    def __init__(self, message: str = "Not authenticated", details: Optional[Any] = None):
        super().__init__(message, details)


class NotJoined(BookingChatError):
    """Room operation sent before (or without) joining that booking's room."""

    kind = "NotJoined"
    status_code = 409

    def __init__(self, booking_id: Any):
        super().__init__(
            f"Join room for booking {booking_id} before sending events to it",
            details={"booking_id": booking_id},
        )


class InvalidAmount(BookingChatError):
    kind = "InvalidAmount"
    status_code = 422

    def __init__(self, amount: Any):
        super().__init__(
            f"Price must be a positive number, got {amount!r}",
            details={"amount": str(amount)},
        )


class NoPriceSet(BookingChatError):
    kind = "NoPriceSet"
    status_code = 422

    def __init__(self, booking_id: int):
        super().__init__(
            f"Booking {booking_id} has no proposed price to agree to",
            details={"booking_id": booking_id},
        )


class NegotiationLocked(BookingChatError):
    """Mutation attempted on a booking whose negotiation is over."""

    kind = "NegotiationLocked"
    status_code = 409

    def __init__(self, booking_id: int, status: str):
        super().__init__(
            f"Negotiation for booking {booking_id} is locked (status: {status})",
            details={"booking_id": booking_id, "status": status},
        )


class NotConfirmed(BookingChatError):
    """Payment requested for a booking whose price has not been agreed by both sides."""

    kind = "NotConfirmed"
    status_code = 409

    def __init__(self, booking_id: int, status: str):
        super().__init__(
            f"Booking {booking_id} must be Confirmed before payment (status: {status})",
            details={"booking_id": booking_id, "status": status},
        )


class NotFound(BookingChatError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, booking_id: Any):
        super().__init__(f"Booking not found: {booking_id}", details={"booking_id": booking_id})


class StoreUnavailable(BookingChatError):
    """A collaborator (booking service, message store, payments) failed or timed out."""

    kind = "StoreUnavailable"
    status_code = 503

    def __init__(self, message: str = "Storage backend unavailable", details: Optional[Any] = None):
        super().__init__(message, details)


class InvalidPayload(BookingChatError):
    """Malformed frame, unknown event or payload that fails validation."""

    kind = "InvalidPayload"
    status_code = 400
