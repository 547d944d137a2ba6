"""Authentication schemas."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.schemas.common import BaseSchema


class LoginRequest(BaseModel):
    """Employee login request."""

    employee_id: str = Field(min_length=1, max_length=64)
    password: str = Field(min_length=1)


class UserInfo(BaseSchema):
    """User info in auth response."""

    id: UUID
    employee_id: str
    full_name: str
    email: EmailStr | None = None
    role: str | None = None


class AuthResponse(BaseModel):
    """Authentication response with tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserInfo
