"""In-memory fallback chat store.

Holds chat messages in process memory while the database is unreachable.
The store is created and opened by the application lifespan (when
``CHAT_FALLBACK_STORE_ENABLED`` is set) and injected wherever it is needed;
nothing reads it through module globals. Contents are lost on shutdown.
"""

import logging
import re
from collections.abc import Callable, Iterable

from app.services.chat_records import ChatMessageRecord, matches_purge

logger = logging.getLogger(__name__)


class FallbackStoreClosedError(RuntimeError):
    """Raised when writing to a fallback store that is not open."""

    def __init__(self) -> None:
        super().__init__("Fallback chat store is not open")


class InMemoryMessageStore:
    """Process-lifetime list of chat messages with explicit open/close."""

    def __init__(self) -> None:
        self._messages: list[ChatMessageRecord] = []
        self._open = False
        self._next_id = 1

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self._open = True
        logger.info("In-memory fallback chat store opened")

    def close(self) -> None:
        dropped = len(self._messages)
        self._messages.clear()
        self._open = False
        if dropped:
            logger.warning(f"In-memory fallback chat store closed with {dropped} unsynced messages")
        else:
            logger.info("In-memory fallback chat store closed")

    def __len__(self) -> int:
        return len(self._messages)

    @property
    def messages(self) -> list[ChatMessageRecord]:
        """Snapshot of stored messages in insertion order."""
        return list(self._messages)

    async def store_chat_message(self, record: ChatMessageRecord) -> bool:
        if not self._open:
            raise FallbackStoreClosedError()
        if record.id is None:
            record.id = f"mem-{self._next_id}"
            self._next_id += 1
        self._messages.append(record)
        return True

    async def get_chat_messages(self, query_id: str) -> list[ChatMessageRecord]:
        query_id = query_id.strip()
        found = [m for m in self._messages if m.query_id == query_id]
        return sorted(found, key=lambda m: m.timestamp)

    def remove_where(self, predicate: Callable[[ChatMessageRecord], bool]) -> int:
        """Drop every message matching ``predicate`` in place; return how many."""
        before = len(self._messages)
        self._messages[:] = [m for m in self._messages if not predicate(m)]
        return before - len(self._messages)

    async def delete_matching(
        self,
        query_ids: Iterable[str],
        sender_pattern: re.Pattern[str] | None = None,
    ) -> int:
        ids = frozenset(query_ids)
        return self.remove_where(lambda m: matches_purge(m, ids, sender_pattern))
