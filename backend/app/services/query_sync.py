"""Periodic query sync for team dashboards.

``start_auto_sync`` runs a background asyncio task that broadcasts a sync
event for a team on a fixed interval. Dashboards listening on the team
channel refetch their query lists when it fires.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from app.core.redis import (
    QUERY_SYNC_STATE_TTL,
    get_redis_client,
    get_team_sync_channel,
    get_team_sync_state_key,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncHandle:
    """Cancellable handle for one team's auto-sync loop."""

    team: str
    interval_seconds: float
    task: asyncio.Task = field(repr=False)

    @property
    def active(self) -> bool:
        return not self.task.done()

    def cancel(self) -> None:
        if not self.task.done():
            self.task.cancel()
            logger.info(f"🔄 Stopped auto-sync for {self.team} team")


class QuerySyncService:
    """Broadcasts periodic sync events per team."""

    def __init__(self) -> None:
        self._handles: dict[str, SyncHandle] = {}

    async def sync_team(self, team: str) -> dict[str, str]:
        """Record and broadcast one sync event for ``team``."""
        event = {"team": team, "syncedAt": datetime.now(UTC).isoformat()}
        payload = json.dumps(event)
        async with get_redis_client() as client:
            await client.setex(get_team_sync_state_key(team), QUERY_SYNC_STATE_TTL, payload)
            await client.publish(get_team_sync_channel(team), payload)
        logger.debug(f"Synced queries for {team} team")
        return event

    async def _run(self, team: str, interval_seconds: float) -> None:
        while True:
            try:
                await self.sync_team(team)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Auto-sync for {team} team failed: {e}")
            await asyncio.sleep(interval_seconds)

    def start_auto_sync(self, team: str, interval_minutes: float) -> SyncHandle:
        """Start syncing ``team`` every ``interval_minutes``.

        Must be called from a running event loop. Starting a team that is
        already syncing replaces the previous loop.
        """
        if interval_minutes <= 0:
            raise ValueError(f"interval_minutes must be positive, got: {interval_minutes}")

        existing = self._handles.get(team)
        if existing is not None:
            existing.cancel()

        interval_seconds = interval_minutes * 60
        task = asyncio.get_running_loop().create_task(
            self._run(team, interval_seconds),
            name=f"query-sync:{team}",
        )
        handle = SyncHandle(team=team, interval_seconds=interval_seconds, task=task)
        self._handles[team] = handle
        logger.info(f"🔄 Started auto-sync for {team} team every {interval_minutes} min")
        return handle

    def stop_auto_sync(self, handle: SyncHandle) -> None:
        handle.cancel()
        if self._handles.get(handle.team) is handle:
            del self._handles[handle.team]


query_sync_service = QuerySyncService()
