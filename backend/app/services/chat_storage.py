"""Chat message storage backed by PostgreSQL.

Every read is scoped to a single ``query_id``; this is what keeps one query's
chat thread from showing messages that belong to another. When an in-memory
fallback store is injected, writes and reads fall through to it while the
database is failing.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat import ChatMessage
from app.services.chat_records import ChatMessageRecord
from app.services.fallback_store import InMemoryMessageStore

logger = logging.getLogger(__name__)


@dataclass
class TeamActivity:
    """Chat activity counters for one team."""

    team: str
    total_messages: int
    active_queries: int
    last_message_at: datetime | None


class ChatStorageService:
    """Store and fetch chat messages for queries."""

    def __init__(
        self,
        db: AsyncSession,
        fallback: InMemoryMessageStore | None = None,
    ) -> None:
        self.db = db
        self.fallback = fallback if fallback is not None and fallback.is_open else None

    async def store_chat_message(self, record: ChatMessageRecord) -> bool:
        """Persist a message. Returns False when it could not be stored anywhere.

        Each insert runs in its own savepoint, so a failed write undoes only
        that row and never the messages already stored in this session.
        """
        record.query_id = record.query_id.strip()
        row = record.to_model()
        try:
            async with self.db.begin_nested():
                self.db.add(row)
                await self.db.flush()
        except SQLAlchemyError as e:
            if self.fallback is None:
                logger.warning(f"Failed to store chat message for query {record.query_id}: {e}")
                return False
            logger.warning(
                f"Database unavailable, storing chat message for query {record.query_id} "
                f"in fallback store: {e}"
            )
            return await self.fallback.store_chat_message(record)

        if row.id is not None:
            record.id = str(row.id)
        logger.debug(f"Stored chat message {row.id} for query {record.query_id}")
        return True

    async def get_chat_messages(self, query_id: str) -> list[ChatMessageRecord]:
        """Return a query's messages, oldest first."""
        query_id = query_id.strip()
        try:
            result = await self.db.execute(
                select(ChatMessage)
                .where(ChatMessage.query_id == query_id)
                .order_by(ChatMessage.timestamp.asc())
            )
        except SQLAlchemyError as e:
            if self.fallback is None:
                raise
            logger.warning(f"Database unavailable, reading query {query_id} from fallback store: {e}")
            return await self.fallback.get_chat_messages(query_id)

        return [ChatMessageRecord.from_model(row) for row in result.scalars().all()]

    async def delete_matching(
        self,
        query_ids: Iterable[str],
        sender_pattern: re.Pattern[str] | None = None,
    ) -> int:
        """Delete messages filed under any of ``query_ids`` or sent by a matching sender.

        Both ``query_id`` and ``original_query_id`` are checked. Runs as a
        single DELETE statement.
        """
        ids = list(query_ids)
        conditions = [
            ChatMessage.query_id.in_(ids),
            ChatMessage.original_query_id.in_(ids),
        ]
        if sender_pattern is not None:
            conditions.append(ChatMessage.sender.regexp_match(sender_pattern.pattern))

        result = await self.db.execute(delete(ChatMessage).where(or_(*conditions)))
        deleted = result.rowcount or 0
        logger.info(f"Deleted {deleted} chat messages matching {ids}")
        return deleted

    async def find_debug_matches(self, query_id: str) -> list[ChatMessageRecord]:
        """Loose lookup for troubleshooting missing history.

        Matches the exact id in either id column, or any ``query_id`` that
        contains it case-insensitively.
        """
        result = await self.db.execute(
            select(ChatMessage)
            .where(
                or_(
                    ChatMessage.query_id == query_id,
                    ChatMessage.original_query_id == query_id,
                    ChatMessage.query_id.icontains(query_id, autoescape=True),
                )
            )
            .order_by(ChatMessage.timestamp.asc())
        )
        return [ChatMessageRecord.from_model(row) for row in result.scalars().all()]

    async def team_activity(self, team: str) -> TeamActivity:
        """Summarize chat activity for a team."""
        result = await self.db.execute(
            select(
                func.count(ChatMessage.id),
                func.count(func.distinct(ChatMessage.query_id)),
                func.max(ChatMessage.timestamp),
            ).where(ChatMessage.team == team)
        )
        total, queries, last_at = result.one()
        return TeamActivity(
            team=team,
            total_messages=total or 0,
            active_queries=queries or 0,
            last_message_at=last_at,
        )
