"""SQLAlchemy models."""

from app.models.chat import ChatActionType, ChatMessage
from app.models.user import User, UserRole

__all__ = [
    "User",
    "UserRole",
    "ChatMessage",
    "ChatActionType",
]
