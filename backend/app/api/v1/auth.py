"""Authentication endpoints."""

import logging

from fastapi import APIRouter, HTTPException, status
from sqlalchemy import select

from app.api.deps import DbSession
from app.core.config import settings
from app.core.security import create_access_token, create_refresh_token, verify_password
from app.models.user import User
from app.schemas.auth import AuthResponse, LoginRequest, UserInfo

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: DbSession) -> AuthResponse:
    """Log in with employee id and password."""
    employee_id = request.employee_id.strip()
    result = await db.execute(select(User).where(User.employee_id == employee_id))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(request.password, user.hashed_password):
        logger.info(f"Failed login for employee {employee_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid employee ID or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled. Please contact administrator.",
        )

    if not user.role:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                "Account exists but access rights not assigned. Please contact "
                "administrator to assign your role."
            ),
        )

    logger.info(f"🚀 Login successful for {employee_id} ({user.role})")
    return AuthResponse(
        access_token=create_access_token(str(user.id), role=user.role),
        refresh_token=create_refresh_token(str(user.id)),
        token_type="Bearer",
        expires_in=settings.jwt_access_token_expire_minutes * 60,
        user=UserInfo.model_validate(user),
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout() -> None:
    """Logout user. Tokens are stateless; the client discards them."""
