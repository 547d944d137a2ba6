"""Per-query chat thread endpoints.

Each query has its own thread. Reads only ever return messages stored under
the requested query id.
"""

import logging
from datetime import UTC, datetime, timedelta

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse, StreamingResponse

from app.api.deps import CurrentUser, DbSession, FallbackStore
from app.schemas.chat import ChatRemark, ChatRemarkCreate, ChatRemarkCreated, ChatThreadResponse
from app.schemas.common import ErrorResponse
from app.services.chat_records import ChatMessageRecord
from app.services.chat_storage import ChatStorageService
from app.services.query_updates import query_update_service

logger = logging.getLogger(__name__)
router = APIRouter()

# Same text from the same sender within this window is one message
DEDUPE_WINDOW = timedelta(seconds=1)
# Re-posting the same text within this window is treated as a double submit
DUPLICATE_SUBMIT_WINDOW = timedelta(seconds=5)


def _to_remark(record: ChatMessageRecord, query_id: str) -> ChatRemark:
    text = record.message or record.response_text or ""
    return ChatRemark(
        id=f"db-{record.id}" if record.id else f"msg-{query_id}-{int(record.timestamp.timestamp() * 1000)}",
        query_id=query_id,
        remark=text,
        text=text,
        sender=record.sender,
        sender_role=record.sender_role or record.team or "user",
        timestamp=record.timestamp.isoformat(),
        team=record.team or record.sender_role or "operations",
        response_text=text,
    )


def dedupe_messages(records: list[ChatMessageRecord]) -> list[ChatMessageRecord]:
    """Drop repeats of the same text and sender within one second; sort oldest first."""
    unique: list[ChatMessageRecord] = []
    for record in sorted(records, key=lambda r: r.timestamp):
        if any(
            u.message == record.message
            and u.sender == record.sender
            and abs(u.timestamp - record.timestamp) < DEDUPE_WINDOW
            for u in unique
        ):
            continue
        unique.append(record)
    return unique


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


@router.get("/queries/{query_id}/chat", response_model=ChatThreadResponse)
async def get_query_chat(
    query_id: str,
    user: CurrentUser,
    db: DbSession,
    fallback: FallbackStore,
):
    """Fetch the isolated chat thread for a query."""
    normalized = query_id.strip()
    logger.info(f"💬 Fetching chat thread for query {normalized}")

    try:
        records = await ChatStorageService(db, fallback).get_chat_messages(normalized)
    except Exception as e:
        logger.exception(f"Error fetching chat remarks for query {normalized}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=f"Failed to fetch chat remarks: {e}").model_dump(by_alias=True),
        )

    remarks = [_to_remark(r, normalized) for r in dedupe_messages(records)]
    return ChatThreadResponse(data=remarks, count=len(remarks), query_id=query_id)


@router.post("/queries/{query_id}/chat", response_model=ChatRemarkCreated)
async def add_query_chat(
    query_id: str,
    body: ChatRemarkCreate,
    user: CurrentUser,
    db: DbSession,
    fallback: FallbackStore,
):
    """Add a message to a query's chat thread."""
    normalized = query_id.strip()
    if not body.is_complete:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse(
                error="Message/remark, sender, and senderRole are required"
            ).model_dump(by_alias=True),
        )

    storage = ChatStorageService(db, fallback)
    now = datetime.now(UTC)
    record = ChatMessageRecord(
        query_id=normalized,
        message=body.text,
        response_text=body.text,
        sender=body.sender,
        sender_role=body.sender_role,
        team=body.team or body.sender_role,
        timestamp=now,
    )

    try:
        recent = await storage.get_chat_messages(normalized)
    except Exception as e:
        logger.warning(f"Could not check for duplicates on query {normalized}: {e}")
        recent = []

    if any(
        m.message == record.message
        and m.sender == record.sender
        and now - _as_aware(m.timestamp) < DUPLICATE_SUBMIT_WINDOW
        for m in recent
    ):
        logger.info(f"⚠️ Duplicate message detected for query {normalized}, skipping")
        return ChatRemarkCreated(
            data=_to_remark(record, normalized),
            message="Message already exists (duplicate prevented)",
        )

    try:
        stored = await storage.store_chat_message(record)
        if not stored:
            raise RuntimeError("Failed to store message to database")
    except Exception as e:
        logger.exception(f"Error storing chat message for query {normalized}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse(error=f"Failed to add chat remark: {e}").model_dump(by_alias=True),
        )

    remark = _to_remark(record, normalized)
    try:
        await query_update_service.publish_update(
            normalized,
            {"type": "chat_message", "message": remark.model_dump(by_alias=True)},
        )
    except Exception as e:
        logger.warning(f"Could not publish chat update for query {normalized}: {e}")

    logger.info(f"💬 Added chat message for query {normalized}")
    return ChatRemarkCreated(data=remark, message="Chat message added successfully")


@router.get("/queries/{query_id}/chat/stream")
async def stream_query_chat(query_id: str, user: CurrentUser) -> StreamingResponse:
    """Server-sent events for new messages on a query's thread."""

    async def event_stream():
        async for data in query_update_service.subscribe(query_id.strip()):
            if data.startswith(":"):
                yield data + "\n"
            else:
                yield f"data: {data}\n\n"

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
