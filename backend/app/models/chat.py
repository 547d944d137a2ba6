"""Chat models."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import AppendOnlyModel


class ChatActionType(str, enum.Enum):
    """Kind of entry in a query's chat thread."""

    MESSAGE = "message"
    APPROVAL = "approval"
    REVERT = "revert"
    RESOLVE = "resolve"


class ChatMessage(AppendOnlyModel):
    """A message in a query's chat thread.

    Messages are keyed by ``query_id`` only; there is no thread table. Every
    read filters on ``query_id`` so threads stay isolated from each other.
    ``original_query_id`` records the id a message was filed under before a
    repair moved it. Rows are never edited after insert.
    """

    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_query_id_timestamp", "query_id", "timestamp"),
    )

    query_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    original_query_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    response_text: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    sender: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    sender_role: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    team: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    is_system_message: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    # Stored as plain string; valid values enforced via ChatActionType.
    action_type: Mapped[str] = mapped_column(
        String(32),
        default=ChatActionType.MESSAGE.value,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ChatMessage {self.sender} in {self.query_id}>"
