"""Diagnostic endpoints for chat storage.

These write, read and delete real rows; they are mounted only when
``DIAGNOSTICS_ENABLED`` is set.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from app.api.deps import DbSession, FallbackStore
from app.core.config import settings
from app.schemas.common import ErrorResponse
from app.schemas.diagnostics import (
    ChatHistoryCounts,
    ChatHistoryDebugInfo,
    ChatHistoryDebugResponse,
    CleanupResponse,
    IsolationTestError,
    IsolationTestResponse,
)
from app.services.chat_isolation import ChatIsolationProbe
from app.services.chat_storage import ChatStorageService

logger = logging.getLogger(__name__)
router = APIRouter()


def get_isolation_probe(db: DbSession, fallback: FallbackStore) -> ChatIsolationProbe:
    """Probe wired to the request's database session and the fallback store."""
    return ChatIsolationProbe(
        ChatStorageService(db, fallback),
        fallback,
        read_attempts=settings.isolation_probe_read_attempts,
        read_interval=settings.isolation_probe_read_interval_ms / 1000,
    )


IsolationProbe = Annotated[ChatIsolationProbe, Depends(get_isolation_probe)]


@router.post(
    "/test-chat-isolation",
    response_model=IsolationTestResponse,
    responses={500: {"model": IsolationTestError}},
)
async def run_chat_isolation_test(probe: IsolationProbe):
    """Seed synthetic messages per probe query and verify they stay isolated."""
    try:
        report = await probe.run()
    except Exception as e:
        logger.exception("💥 Error running chat isolation test")
        body = IsolationTestError(error=str(e) or "Failed to run chat isolation test")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(by_alias=True),
        )
    return IsolationTestResponse.from_report(report)


@router.delete(
    "/test-chat-isolation",
    response_model=CleanupResponse,
    responses={500: {"model": ErrorResponse}},
)
async def cleanup_chat_isolation_test(probe: IsolationProbe):
    """Delete every record written by the isolation test."""
    try:
        result = await probe.cleanup()
    except Exception as e:
        logger.exception("💥 Error cleaning up test data")
        body = ErrorResponse(error=str(e) or "Failed to clean up test data")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=body.model_dump(by_alias=True),
        )
    return CleanupResponse.from_result(result)


@router.get(
    "/debug-chat-history",
    response_model=ChatHistoryDebugResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def debug_chat_history(
    db: DbSession,
    fallback: FallbackStore,
    query_id: Annotated[str | None, Query(alias="queryId")] = None,
):
    """Compare a loose direct lookup with what the chat service returns for a query."""
    if not query_id:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(error="Query ID is required").model_dump(by_alias=True),
        )

    storage = ChatStorageService(db, fallback)
    try:
        direct = await storage.find_debug_matches(query_id)
        via_service = await storage.get_chat_messages(query_id)
    except Exception as e:
        logger.exception(f"Debug chat history error for query {query_id}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=str(e) or "Failed to load chat history").model_dump(by_alias=True),
        )

    return ChatHistoryDebugResponse(
        query_id=query_id,
        direct_messages=[m.to_dict() for m in direct],
        chat_service_messages=[m.to_dict() for m in via_service],
        counts=ChatHistoryCounts(direct=len(direct), chat_service=len(via_service)),
        debug=ChatHistoryDebugInfo(
            query_id_type=type(query_id).__name__,
            query_id_length=len(query_id),
            search_variations=[query_id, query_id.strip()],
        ),
    )
