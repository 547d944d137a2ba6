"""Security utilities - JWT tokens and password hashing."""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _encode_token(
    subject: str,
    token_type: str,
    lifetime: timedelta,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    now = datetime.now(UTC)
    to_encode: dict[str, Any] = {
        "sub": subject,
        "exp": now + lifetime,
        "iat": now,
        "type": token_type,
    }
    if extra_claims:
        to_encode.update(extra_claims)

    return jwt.encode(
        to_encode,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def create_access_token(
    subject: str,
    expires_delta: timedelta | None = None,
    role: str | None = None,
    additional_claims: dict[str, Any] | None = None,
) -> str:
    """Create JWT access token.

    The role claim is informational for clients (menu routing); the API
    always re-reads the role from the database.
    """
    claims = dict(additional_claims or {})
    if role is not None:
        claims["role"] = role
    return _encode_token(
        subject,
        ACCESS_TOKEN_TYPE,
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes),
        claims,
    )


def create_refresh_token(
    subject: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create JWT refresh token."""
    return _encode_token(
        subject,
        REFRESH_TOKEN_TYPE,
        expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days),
    )


def verify_token(token: str) -> dict[str, Any] | None:
    """Verify JWT token and return payload, or None if invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


class RoleGate:
    """Allow-list of roles that may see a page or call an endpoint."""

    def __init__(self, allowed_roles: Iterable[str]) -> None:
        self.allowed_roles = frozenset(str(getattr(r, "value", r)) for r in allowed_roles)

    def allows(self, role: str | None) -> bool:
        return role is not None and role in self.allowed_roles
