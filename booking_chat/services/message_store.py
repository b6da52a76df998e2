# booking_chat/services/message_store.py

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from booking_chat.core.config import settings
from booking_chat.core.errors import StoreUnavailable
from booking_chat.models.models import ChatMessage

logger = logging.getLogger(__name__)


def _chronological(messages: List[ChatMessage]) -> List[ChatMessage]:
    # sorted() is stable, so equal timestamps keep append order
    return sorted(messages, key=lambda m: m.timestamp)


class MessageStore(ABC):
    """Append-only chat log keyed by booking id."""

    @abstractmethod
    async def append_message(self, message: ChatMessage) -> None:
        ...

    @abstractmethod
    async def get_message_history(self, booking_id: int) -> List[ChatMessage]:
        """All messages for a booking, oldest first."""

    async def close(self) -> None:
        return None


class InMemoryMessageStore(MessageStore):
    def __init__(self) -> None:
        self.messages: Dict[int, List[ChatMessage]] = {}

    async def append_message(self, message: ChatMessage) -> None:
        await asyncio.sleep(0)
        self.messages.setdefault(message.booking_id, []).append(message)

    async def get_message_history(self, booking_id: int) -> List[ChatMessage]:
        await asyncio.sleep(0)
        return _chronological(list(self.messages.get(booking_id, [])))


class RedisMessageStore(MessageStore):
    """
    Chat history kept in one Redis list per booking.

    Key layout:
        booking:{booking_id}:messages -> list of JSON encoded ChatMessage (RPUSH order)

    Usage:
        store = RedisMessageStore(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
        await store.connect()
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        client: Optional[redis.Redis] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.client = client
        self.access_key = settings.REDIS_ACCESS_KEY

    async def connect(self) -> None:
        """Establish async connection to Redis."""
        scheme = "rediss" if settings.REDIS_SSL else "redis"
        auth = f":{self.access_key}@" if self.access_key else ""
        self.client = redis.from_url(
            f"{scheme}://{auth}{self.host}:{self.port}",
            decode_responses=True,
        )
        await self.client.ping()
        logger.info(f"✓ Connected to Redis at {self.host}:{self.port}")

    @staticmethod
    def key_for(booking_id: int) -> str:
        return f"booking:{booking_id}:messages"

    async def append_message(self, message: ChatMessage) -> None:
        try:
            await self.client.rpush(self.key_for(message.booking_id), json.dumps(message.to_wire()))
        except RedisError as e:
            logger.error("Redis append failed for booking %s: %s", message.booking_id, e)
            raise StoreUnavailable("Message store unavailable", details={"booking_id": message.booking_id}) from e

    async def get_message_history(self, booking_id: int) -> List[ChatMessage]:
        try:
            raw = await self.client.lrange(self.key_for(booking_id), 0, -1)
        except RedisError as e:
            logger.error("Redis history read failed for booking %s: %s", booking_id, e)
            raise StoreUnavailable("Message store unavailable", details={"booking_id": booking_id}) from e

        messages: List[ChatMessage] = []
        for item in raw:
            try:
                messages.append(ChatMessage.model_validate(json.loads(item)))
            except ValueError as e:
                logger.warning("Skipping unreadable message in %s: %s", self.key_for(booking_id), e)
        return _chronological(messages)

    async def close(self) -> None:
        """Close connections."""
        if self.client:
            await self.client.aclose()
