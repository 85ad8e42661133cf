"""
Per-user outbox for targeted events that found no live connection.

Order status and payment events must reach the order's two parties even
when one of them is offline at the moment of the transition.  Undelivered
events are appended to a Redis list per user (``outbox:<user_id>``), capped
to the newest ``max_events`` and expiring after ``ttl_seconds``; the list is
drained when the user connects again.

Both push and drain run as MULTI/EXEC pipelines, so a drain never races a
push into losing or duplicating an event.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from src.config import settings

logger = logging.getLogger(__name__)


def connect_redis(url: str = settings.redis_url) -> aioredis.Redis:
    """Client on its own lazily-connecting pool; no I/O happens here."""
    return aioredis.Redis.from_url(url, decode_responses=True)


class RedisOutbox:
    def __init__(
        self,
        client: aioredis.Redis,
        max_events: int = 100,
        ttl_seconds: int = 86_400,
    ):
        self.redis = client
        self.max_events = max_events
        self.ttl = ttl_seconds

    @staticmethod
    def key(user_id: int) -> str:
        return f"outbox:{user_id}"

    async def push(self, user_id: int, message: dict[str, Any]) -> None:
        key = self.key(user_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.rpush(key, json.dumps(message, default=str))
        pipe.ltrim(key, -self.max_events, -1)
        pipe.expire(key, self.ttl)
        await pipe.execute()
        logger.info("Queued %s for offline user %s", message.get("event"), user_id)

    async def drain(self, user_id: int) -> list[dict[str, Any]]:
        """Pop every queued event for *user_id*, oldest first."""
        key = self.key(user_id)
        pipe = self.redis.pipeline(transaction=True)
        pipe.lrange(key, 0, -1)
        pipe.delete(key)
        raw, _ = await pipe.execute()
        return [json.loads(item) for item in raw]
