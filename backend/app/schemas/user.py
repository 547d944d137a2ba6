"""User schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import EmailStr

from app.schemas.common import BaseSchema


class UserResponse(BaseSchema):
    """User response schema."""

    id: UUID
    employee_id: str
    full_name: str
    email: EmailStr | None = None
    role: str | None = None
    is_active: bool
    created_at: datetime
