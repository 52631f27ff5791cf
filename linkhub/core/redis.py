"""Redis client for click event publishing."""

import json
from typing import Any

import redis.asyncio as redis
import structlog

from linkhub.core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

# Global Redis client instance
_redis_client: redis.Redis | None = None


async def get_redis() -> redis.Redis:
    """Get the Redis client instance, creating it if necessary."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        logger.info("Redis client initialized")
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection."""
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")


async def publish_event(channel: str, event_data: dict[str, Any]) -> None:
    """Publish an event to Redis Pub/Sub.

    Delivery is best-effort: errors are logged and never raised to the
    caller, a redirect must not fail because analytics is down.
    """
    client = await get_redis()
    try:
        receivers = await client.publish(channel, json.dumps(event_data))
        logger.debug("Event published", channel=channel, receivers=receivers)
    except redis.RedisError as e:
        logger.warning("Redis publish error", channel=channel, error=str(e))
