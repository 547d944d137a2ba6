"""Redis client for real-time query updates and sync state."""

import logging
from collections.abc import AsyncGenerator

import redis.asyncio as aioredis

from app.core.config import settings

logger = logging.getLogger(__name__)

async_redis_pool = aioredis.ConnectionPool.from_url(
    str(settings.redis_url),
    decode_responses=True,
)


async def get_redis() -> AsyncGenerator[aioredis.Redis, None]:
    """Dependency for getting async Redis client."""
    client = aioredis.Redis(connection_pool=async_redis_pool)
    try:
        yield client
    finally:
        await client.aclose()


def get_redis_client() -> aioredis.Redis:
    """Get an async Redis client bound to the shared pool.

    Callers should use it as an async context manager so the connection is
    returned to the pool:

        async with get_redis_client() as client:
            await client.publish(channel, payload)
    """
    return aioredis.Redis(connection_pool=async_redis_pool)


async def close_redis_pool() -> None:
    """Close Redis connection pool on shutdown."""
    await async_redis_pool.disconnect()


# Per-query chat updates Pub/Sub
QUERY_UPDATES_PREFIX = "query:updates:"


def get_query_updates_channel(query_id: str) -> str:
    """Get Redis channel name for a query's chat updates."""
    return f"{QUERY_UPDATES_PREFIX}{query_id}"


# Team sync Pub/Sub and last-sync state
QUERY_SYNC_PREFIX = "query:sync:"
QUERY_SYNC_STATE_PREFIX = "query:sync:last:"
QUERY_SYNC_STATE_TTL = 3600  # 1 hour


def get_team_sync_channel(team: str) -> str:
    """Get Redis channel name for a team's sync events."""
    return f"{QUERY_SYNC_PREFIX}{team}"


def get_team_sync_state_key(team: str) -> str:
    """Get Redis key storing the last sync event for a team."""
    return f"{QUERY_SYNC_STATE_PREFIX}{team}"
