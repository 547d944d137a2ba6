"""Pydantic schemas for request/response validation."""

from app.schemas.auth import AuthResponse, LoginRequest, UserInfo
from app.schemas.chat import ChatRemark, ChatRemarkCreate, ChatRemarkCreated, ChatThreadResponse
from app.schemas.common import BaseSchema, CamelSchema, ErrorResponse
from app.schemas.dashboard import DashboardView
from app.schemas.user import UserResponse

__all__ = [
    "AuthResponse",
    "BaseSchema",
    "CamelSchema",
    "ChatRemark",
    "ChatRemarkCreate",
    "ChatRemarkCreated",
    "ChatThreadResponse",
    "DashboardView",
    "ErrorResponse",
    "LoginRequest",
    "UserInfo",
    "UserResponse",
]
