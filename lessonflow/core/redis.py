# lessonflow/core/redis.py
"""
Async Redis client for the lesson change feed.

The change feed is best-effort: when no Redis URL is configured the engine
still works, clients simply rely on the fixed-interval poll.
"""

import logging
from typing import Optional

from redis.asyncio import Redis as AsyncRedis

from lessonflow.core.config import settings

logger = logging.getLogger(__name__)

_async_redis_client: Optional[AsyncRedis] = None


async def get_async_redis_client() -> Optional[AsyncRedis]:
    """
    Get or create async Redis client for Pub/Sub operations.

    Returns:
        AsyncRedis client, or None when no redis_url is configured
    """
    global _async_redis_client

    if _async_redis_client is None:
        if not settings.redis_url:
            logger.info("[REDIS-PUBSUB] No redis_url configured; change feed disabled")
            return None
        _async_redis_client = AsyncRedis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("[REDIS-PUBSUB] Async Redis client initialized")

    return _async_redis_client


async def close_async_redis_client() -> None:
    """Close async Redis client gracefully."""
    global _async_redis_client

    if _async_redis_client is not None:
        await _async_redis_client.aclose()
        _async_redis_client = None
        logger.info("[REDIS-PUBSUB] Async Redis client closed")
