# booking_chat/models/models.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator


class Role(str, Enum):
    CLIENT = "client"
    PROVIDER = "provider"

    @property
    def label(self) -> str:
        return "Client" if self is Role.CLIENT else "Provider"


# Older clients identify the client side as "user"
ROLE_ALIASES = {"user": Role.CLIENT, "client": Role.CLIENT, "provider": Role.PROVIDER}


def parse_role(value: Any) -> Any:
    if isinstance(value, str):
        return ROLE_ALIASES.get(value.strip().lower(), value)
    return value


RoleField = Annotated[Role, BeforeValidator(parse_role)]


class BookingStatus(str, Enum):
    PENDING = "Pending"
    NEGOTIATING = "Negotiating"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    PAID = "Paid"
    COMPLETED = "Completed"


OPEN_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.NEGOTIATING})


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ============================================================================
# DURABLE RECORDS
# ============================================================================

class Booking(BaseModel):
    """Canonical booking record as held by the booking store."""

    model_config = ConfigDict(extra="ignore")

    id: int
    client_id: Optional[int] = None
    provider_id: Optional[int] = None
    status: BookingStatus = BookingStatus.PENDING
    price: Optional[Decimal] = None
    agreement_signed_by_client: bool = False
    agreement_signed_by_provider: bool = False
    notes: Optional[str] = None
    scheduled_date: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES

    @property
    def fully_agreed(self) -> bool:
        return self.agreement_signed_by_client and self.agreement_signed_by_provider

    def has_agreed(self, role: Role) -> bool:
        if role is Role.CLIENT:
            return self.agreement_signed_by_client
        return self.agreement_signed_by_provider

    def party_id(self, role: Role) -> Optional[int]:
        return self.client_id if role is Role.CLIENT else self.provider_id

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")


class ChatMessage(BaseModel):
    """A single chat line. Immutable once appended to the message store."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    booking_id: int = Field(alias="bookingId")
    sender_id: int
    sender_role: RoleField
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        return _utc(v)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Identity(BaseModel):
    """Who is on the other end of a connection, taken from a verified session token."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    role: Role


class PaymentIntent(BaseModel):
    url: str


# ============================================================================
# INBOUND EVENT PAYLOADS (client -> server)
# ============================================================================

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class AuthenticatePayload(_Payload):
    token: str


class JoinRoomPayload(_Payload):
    booking_id: int = Field(alias="bookingId")
    role: RoleField
    token: Optional[str] = None


class LeaveRoomPayload(_Payload):
    booking_id: int = Field(alias="bookingId")
    role: Optional[RoleField] = None


class SendMessagePayload(_Payload):
    booking_id: int = Field(alias="bookingId")
    message: str
    sender_id: Optional[int] = None
    sender_role: Optional[RoleField] = None
    timestamp: Optional[datetime] = None
    id: Optional[str] = None

    @field_validator("message")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("message must not be blank")
        return v


class ProposePricePayload(_Payload):
    booking_id: int = Field(alias="bookingId")
    # Validated by the negotiation engine so bad values surface as InvalidAmount
    price: Any = None


class AgreePricePayload(_Payload):
    booking_id: int = Field(alias="bookingId")
    role: Optional[RoleField] = None


# ============================================================================
# REST REQUEST BODIES
# ============================================================================

class PriceUpdateRequest(BaseModel):
    price: Any = None


class AgreeRequest(BaseModel):
    role: Optional[RoleField] = None
