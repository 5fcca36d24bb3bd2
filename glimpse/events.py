"""Post-commit domain notifications over Redis pub/sub.

Events are fire-and-forget: they are scheduled only after the state change
they describe has been persisted, and a failed publish is logged without
affecting the request that produced it.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Set, Tuple

from redis.asyncio import Redis

LOGGER = logging.getLogger("uvicorn.error")

LIKE_RECEIVED = "like_received"
MATCH_CREATED = "match_created"
MATCH_CLOSED = "match_closed"


class EventPublisher(ABC):
    """Base publisher. Subclasses implement ``publish``."""

    def __init__(self) -> None:
        self._pending: Set[asyncio.Task] = set()

    @abstractmethod
    async def publish(self, topic: str, event: Dict[str, Any]) -> None: ...

    def publish_later(self, topic: str, event: Dict[str, Any]) -> None:
        """Schedule ``publish`` as a background task tied to this publisher."""
        task = asyncio.create_task(self._safe_publish(topic, event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()

    async def _safe_publish(self, topic: str, event: Dict[str, Any]) -> None:
        try:
            await self.publish(topic, event)
        except Exception:
            LOGGER.warning("Event publish failed topic=%s", topic, exc_info=True)


class RedisEventPublisher(EventPublisher):
    def __init__(self, redis_url: Optional[str], *, prefix: str = "", enabled: bool = True) -> None:
        super().__init__()
        self._redis_url = redis_url
        self._prefix = (prefix or "").strip()
        self._enabled = enabled and bool(redis_url)
        self._client: Optional[Redis] = None

    def _channel(self, topic: str) -> str:
        return f"{self._prefix}.{topic}" if self._prefix else topic

    async def _ensure_client(self) -> Optional[Redis]:
        if self._client is not None:
            return self._client
        if not self._enabled:
            return None
        client = Redis.from_url(self._redis_url, encoding="utf-8", decode_responses=False)
        await client.ping()
        self._client = client
        LOGGER.info("Redis event publisher connected")
        return self._client

    async def publish(self, topic: str, event: Dict[str, Any]) -> None:
        if not self._enabled:
            return
        client = await self._ensure_client()
        if not client:
            return
        payload = json.dumps(event, separators=(",", ":")).encode("utf-8")
        await client.publish(self._channel(topic), payload)

    async def close(self) -> None:
        await super().close()
        if self._client is not None:
            await self._client.close()
            self._client = None


class InMemoryEventPublisher(EventPublisher):
    """Keeps published events in a list; used by tests and when Redis is not configured."""

    def __init__(self) -> None:
        super().__init__()
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, topic: str, event: Dict[str, Any]) -> None:
        self.events.append((topic, dict(event)))

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.events]


__all__ = [
    "EventPublisher",
    "InMemoryEventPublisher",
    "LIKE_RECEIVED",
    "MATCH_CLOSED",
    "MATCH_CREATED",
    "RedisEventPublisher",
]
