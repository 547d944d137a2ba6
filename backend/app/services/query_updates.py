"""Real-time query update service.

Publishes chat activity for a query on its Redis channel so open dashboards
and SSE streams can refresh without polling.
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from typing import Any

from app.core.redis import get_query_updates_channel, get_redis_client

logger = logging.getLogger(__name__)

KEEPALIVE_INTERVAL_SECONDS = 30


class QueryUpdateService:
    """Fan-out of per-query chat updates over Redis Pub/Sub."""

    def __init__(self) -> None:
        self.initialized = False

    async def initialize(self) -> None:
        """Verify Redis is reachable. Safe to call more than once."""
        if self.initialized:
            return
        async with get_redis_client() as client:
            await client.ping()
        self.initialized = True
        logger.info("🌐 Query update service initialized")

    async def publish_update(self, query_id: str, payload: dict[str, Any]) -> int:
        """Publish an update for ``query_id``. Returns the number of receivers."""
        event = {
            "queryId": query_id,
            "publishedAt": datetime.now(UTC).isoformat(),
            **payload,
        }
        channel = get_query_updates_channel(query_id)
        async with get_redis_client() as client:
            receivers = await client.publish(channel, json.dumps(event, default=str))
        logger.debug(f"Published update to {channel} ({receivers} receivers)")
        return receivers

    async def subscribe(
        self,
        query_id: str,
        timeout_seconds: int = 600,
    ) -> AsyncGenerator[str, None]:
        """Yield JSON updates for ``query_id`` (async generator for SSE).

        Yields an SSE comment every 30 seconds without traffic so proxies keep
        the connection open, and stops after ``timeout_seconds``.
        """
        client = get_redis_client()
        pubsub = client.pubsub()
        channel = get_query_updates_channel(query_id)

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        last_message_time = start_time

        try:
            await pubsub.subscribe(channel)
            logger.info(f"Subscribed to channel: {channel}")

            while True:
                current_time = loop.time()
                if current_time - start_time > timeout_seconds:
                    logger.info(f"Query {query_id} subscription timed out after {timeout_seconds}s")
                    break

                wait_timeout = max(0.1, KEEPALIVE_INTERVAL_SECONDS - (current_time - last_message_time))
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=wait_timeout)

                if message and message["type"] == "message":
                    last_message_time = loop.time()
                    data = message["data"]
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    yield data
                elif loop.time() - last_message_time >= KEEPALIVE_INTERVAL_SECONDS:
                    last_message_time = loop.time()
                    yield ": keepalive\n"
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()
            await client.aclose()


query_update_service = QueryUpdateService()
