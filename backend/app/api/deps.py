"""API dependencies - database session, current user, role checks."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.security import ACCESS_TOKEN_TYPE, RoleGate, verify_token
from app.models.user import User
from app.services.fallback_store import InMemoryMessageStore

logger = logging.getLogger(__name__)

security = HTTPBearer()

DbSession = Annotated[AsyncSession, Depends(get_db)]

_UNAUTHORIZED_HEADERS = {"WWW-Authenticate": "Bearer"}


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DbSession,
) -> User:
    """Resolve the bearer token to an active user or raise 401."""
    payload = verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers=_UNAUTHORIZED_HEADERS,
        )

    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers=_UNAUTHORIZED_HEADERS,
        )

    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers=_UNAUTHORIZED_HEADERS,
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers=_UNAUTHORIZED_HEADERS,
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_roles(*roles: str):
    """Dependency factory: allow only users whose role is in ``roles``."""
    gate = RoleGate(roles)

    async def _check_role(current_user: CurrentUser) -> User:
        if not gate.allows(current_user.role):
            logger.info(
                f"Denied {current_user.employee_id} (role={current_user.role}); "
                f"requires one of {sorted(gate.allowed_roles)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return current_user

    return _check_role


def get_fallback_store(request: Request) -> InMemoryMessageStore | None:
    """The in-memory fallback chat store, when the app started one."""
    return getattr(request.app.state, "fallback_store", None)


FallbackStore = Annotated[InMemoryMessageStore | None, Depends(get_fallback_store)]
