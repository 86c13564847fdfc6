"""
Lifecycle event publishing to Redis Streams (optional — graceful degradation).

Each store gets a capped stream `store:events:<id>`; every event is also
published on the global `store:events` channel for dashboard subscribers.
"""

import json
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from models import format_ts, utcnow

logger = logging.getLogger("events")

STREAM_MAXLEN = 100
CHANNEL = "store:events"


def stream_key(store_id: str) -> str:
    return f"{CHANNEL}:{store_id}"


class EventPublisher:
    def __init__(self, redis_url: str = settings.REDIS_URL) -> None:
        self._redis_url = redis_url
        self._client: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return bool(self._redis_url)

    def _get_redis(self) -> Optional[redis.Redis]:
        """Lazy-init Redis. Returns None if not configured or the URL is unusable."""
        if not self._redis_url:
            return None
        if self._client is None:
            try:
                self._client = redis.Redis.from_url(self._redis_url, decode_responses=True)
            except (ValueError, RedisError) as e:
                logger.warning(f"Redis client could not be created (non-fatal): {e}")
                return None
        return self._client

    async def publish(self, store_id: str, event_type: str, message: str, state: str = ""):
        r = self._get_redis()
        if not r:
            return
        entry = {
            "store": store_id,
            "type": event_type,
            "message": message,
            "state": state,
            "timestamp": format_ts(utcnow()),
        }
        try:
            await r.xadd(stream_key(store_id), entry, maxlen=STREAM_MAXLEN)
            await r.publish(CHANNEL, json.dumps(entry))
        except RedisError as e:
            logger.warning(f"Redis publish failed (non-fatal): {e}")

    async def history(self, store_id: str, count: int = 50) -> list[dict]:
        r = self._get_redis()
        if not r:
            return []
        try:
            entries = await r.xrange(stream_key(store_id), count=count)
        except RedisError as e:
            logger.warning(f"Redis stream read failed: {e}")
            return []
        return [data for _entry_id, data in entries]

    async def drop(self, store_id: str) -> None:
        r = self._get_redis()
        if not r:
            return
        try:
            await r.delete(stream_key(store_id))
        except RedisError as e:
            logger.warning(f"Redis stream cleanup failed: {e}")

    async def ping(self) -> str:
        if not self.enabled:
            return "disabled"
        r = self._get_redis()
        if not r:
            return "disconnected"
        try:
            await r.ping()
            return "connected"
        except RedisError:
            return "disconnected"

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
