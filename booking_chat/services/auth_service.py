"""
Session tokens for chat connections and booking routes.

The identity provider (outside this service) issues a short-lived HS256 JWT
after login:

    {"sub": "<user id>", "role": "client" | "provider", "iat": ..., "exp": ...}

Clients present it on the websocket (``?token=``, an ``authenticate`` event
or inside ``join_room``) and as ``Authorization: Bearer`` on REST routes.
The role is never read from the client's own claims in a frame body.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Header
from jose import JWTError, jwt

from booking_chat.core.errors import Unauthorized
from booking_chat.core.logging import get_logger
from booking_chat.models.models import ROLE_ALIASES, Booking, Identity, Role

logger = get_logger(__name__)


class SessionTokens:
    """Issue and verify signed session tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", ttl_seconds: int = 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.ttl_seconds = ttl_seconds

    def issue(self, user_id: int, role: Role, ttl_seconds: Optional[int] = None) -> str:
        """Create a token. Used by the token issuer and by tests."""
        now = datetime.now(timezone.utc)
        claims = {
            "sub": str(user_id),
            "role": role.value,
            "iat": now,
            "exp": now + timedelta(seconds=ttl_seconds if ttl_seconds is not None else self.ttl_seconds),
        }
        return jwt.encode(claims, self.secret, algorithm=self.algorithm)

    def verify(self, token: str) -> Identity:
        """
        Validate a token and return the identity it carries.

        Raises:
            Unauthorized: bad signature, expired, or missing/invalid claims
        """
        if not token:
            raise Unauthorized("Missing session token")
        try:
            claims = jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except JWTError as e:
            logger.warning(f"Rejected session token: {e}")
            raise Unauthorized("Invalid or expired session token") from e

        role = ROLE_ALIASES.get(str(claims.get("role", "")).lower())
        try:
            user_id = int(claims.get("sub"))
        except (TypeError, ValueError):
            user_id = None
        if role is None or user_id is None:
            raise Unauthorized("Session token is missing identity claims")
        return Identity(user_id=user_id, role=role)


def ensure_party(booking: Booking, identity: Identity) -> None:
    """Only the booking's own client / provider may see or negotiate it."""
    party_id = booking.party_id(identity.role)
    if party_id is not None and party_id != identity.user_id:
        logger.warning(
            f"User {identity.user_id} ({identity.role.value}) is not a party to booking {booking.id}"
        )
        raise Unauthorized("Not a participant of this booking", details={"booking_id": booking.id})


async def get_current_identity(authorization: Optional[str] = Header(default=None)) -> Identity:
    """
    Get the current caller from the Authorization header.
    Use as dependency for protected endpoints.
    """
    from booking_chat.core import state

    if not authorization:
        raise Unauthorized()
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Expected a Bearer session token")
    return state.tokens.verify(token.strip())
