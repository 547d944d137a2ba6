"""User model."""

import enum

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class UserRole(str, enum.Enum):
    """Team a user works in; drives dashboard access."""

    ADMIN = "admin"
    OPERATIONS = "operations"
    SALES = "sales"
    CREDIT = "credit"


class User(BaseModel):
    """User model - authenticated with employee id and password."""

    __tablename__ = "users"

    employee_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )
    # Plain string so new teams do not need a migration; valid values are
    # enforced at the application layer via UserRole. Null until an admin
    # assigns access rights.
    role: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
    )
    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.employee_id}>"
