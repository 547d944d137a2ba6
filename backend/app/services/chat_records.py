"""Storage-neutral chat message record shared by the chat stores."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

from app.models.chat import ChatActionType, ChatMessage


@dataclass
class ChatMessageRecord:
    """One chat message as seen by services, independent of where it is stored."""

    query_id: str
    message: str
    sender: str
    sender_role: str
    team: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    response_text: str | None = None
    is_system_message: bool = False
    action_type: str = ChatActionType.MESSAGE.value
    original_query_id: str | None = None
    id: str | None = None

    def __post_init__(self) -> None:
        if self.response_text is None:
            self.response_text = self.message

    def belongs_to(self, query_id: str) -> bool:
        """True when the record is filed under ``query_id`` now or originally."""
        return self.query_id == query_id or self.original_query_id == query_id

    @classmethod
    def from_model(cls, row: ChatMessage) -> "ChatMessageRecord":
        return cls(
            id=str(row.id) if row.id is not None else None,
            query_id=row.query_id,
            original_query_id=row.original_query_id,
            message=row.message,
            response_text=row.response_text,
            sender=row.sender,
            sender_role=row.sender_role,
            team=row.team,
            timestamp=row.timestamp,
            is_system_message=row.is_system_message,
            action_type=row.action_type,
        )

    def to_model(self) -> ChatMessage:
        return ChatMessage(
            query_id=self.query_id,
            original_query_id=self.original_query_id,
            message=self.message,
            response_text=self.response_text,
            sender=self.sender,
            sender_role=self.sender_role,
            team=self.team,
            timestamp=self.timestamp,
            is_system_message=self.is_system_message,
            action_type=self.action_type,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly camelCase view used by the diagnostic endpoints."""
        return {
            "id": self.id,
            "queryId": self.query_id,
            "originalQueryId": self.original_query_id,
            "message": self.message,
            "responseText": self.response_text,
            "sender": self.sender,
            "senderRole": self.sender_role,
            "team": self.team,
            "timestamp": self.timestamp.isoformat(),
            "isSystemMessage": self.is_system_message,
            "actionType": self.action_type,
        }


def matches_purge(
    record: ChatMessageRecord,
    query_ids: Iterable[str],
    sender_pattern: re.Pattern[str] | None,
) -> bool:
    """Predicate used when purging records by id set or sender pattern."""
    ids = set(query_ids)
    if record.query_id in ids:
        return True
    if record.original_query_id is not None and record.original_query_id in ids:
        return True
    return bool(sender_pattern and record.sender and sender_pattern.match(record.sender))


class MessageStore(Protocol):
    """What the isolation probe needs from a chat store."""

    async def store_chat_message(self, record: ChatMessageRecord) -> bool: ...

    async def get_chat_messages(self, query_id: str) -> list[ChatMessageRecord]: ...

    async def delete_matching(
        self,
        query_ids: Iterable[str],
        sender_pattern: re.Pattern[str] | None = None,
    ) -> int: ...
