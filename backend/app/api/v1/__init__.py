"""API v1 module."""

from fastapi import APIRouter

from app.api.v1 import (
    auth,
    credit_dashboard,
    diagnostics,
    health,
    query_chat,
    users,
)
from app.core.config import settings

router = APIRouter()

router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(query_chat.router, tags=["chat"])
router.include_router(credit_dashboard.router, prefix="/credit-dashboard", tags=["credit-dashboard"])
if settings.diagnostics_enabled:
    router.include_router(diagnostics.router, tags=["diagnostics"])
