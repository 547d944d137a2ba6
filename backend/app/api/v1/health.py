"""Health check endpoints."""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api.deps import DbSession
from app.core.redis import get_redis_client

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {"status": "ok"}


@router.get("/ready")
async def readiness_check(db: DbSession):
    """Readiness check - verifies database and Redis are reachable."""
    checks: dict[str, str] = {}
    try:
        await db.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception as e:
        logger.warning(f"Readiness: database check failed: {e}")
        checks["database"] = "unavailable"

    try:
        async with get_redis_client() as client:
            await client.ping()
        checks["redis"] = "ok"
    except Exception as e:
        logger.warning(f"Readiness: redis check failed: {e}")
        checks["redis"] = "unavailable"

    ready = all(v == "ok" for v in checks.values())
    return JSONResponse(
        status_code=status.HTTP_200_OK if ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if ready else "degraded", "checks": checks},
    )
