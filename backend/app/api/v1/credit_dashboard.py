"""Credit team dashboard endpoints."""

import logging
from dataclasses import asdict
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.deps import DbSession, require_roles
from app.models.user import User
from app.schemas.dashboard import DashboardRetryResponse, DashboardView
from app.services.chat_storage import ChatStorageService
from app.services.credit_dashboard import CREDIT_DASHBOARD_ROLES, CreditDashboardPage

logger = logging.getLogger(__name__)
router = APIRouter()

CreditUser = Annotated[User, Depends(require_roles(*CREDIT_DASHBOARD_ROLES))]


def get_credit_dashboard(request: Request) -> CreditDashboardPage:
    """The dashboard page mounted by the application lifespan."""
    page = getattr(request.app.state, "credit_dashboard", None)
    if page is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Credit dashboard is not mounted",
        )
    return page


DashboardPage = Annotated[CreditDashboardPage, Depends(get_credit_dashboard)]


@router.get("", response_model=DashboardView)
async def get_credit_dashboard_view(
    user: CreditUser,
    page: DashboardPage,
    db: DbSession,
) -> DashboardView:
    """Render the credit dashboard for a credit team member."""

    async def load_content() -> dict:
        activity = await ChatStorageService(db).team_activity(page.team)
        return asdict(activity)

    view = await page.render(load_content, viewer=str(user.id))
    return DashboardView.model_validate(view)


@router.post("/retry", response_model=DashboardRetryResponse)
async def retry_credit_dashboard(user: CreditUser, page: DashboardPage) -> DashboardRetryResponse:
    """Clear this user's error fallback so their next render loads content again."""
    return DashboardRetryResponse(state=page.retry(str(user.id)).value)
