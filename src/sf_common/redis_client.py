"""Redis client factory: used only as the order-event pub/sub transport.

Order state never lives in Redis; PostgreSQL is the single source of truth.
"""

import json
from typing import Any

import redis.asyncio as aioredis

from config.settings import settings

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Get or create the Redis connection pool."""
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
    return _redis_pool


async def publish_json(channel: str, payload: dict[str, Any]) -> int:
    """Publish a JSON document; returns the number of subscribers that got it."""
    client = await get_redis()
    return int(await client.publish(channel, json.dumps(payload, default=str)))


async def close_redis() -> None:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None
