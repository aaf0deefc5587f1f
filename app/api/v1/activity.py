"""Activity feed and notification endpoints"""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.activity import FeedPage, MarkReadResponse, UnreadCount

router = APIRouter(prefix="/users/{user_id}", tags=["Activity"])


@router.get("/feed", response_model=FeedPage)
async def get_feed(
    user_id: UUID,
    cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    limit: Optional[int] = Query(None, ge=1, le=100),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get a page of the user's activity feed, newest first.

    Pages are stable: entries added after a cursor was issued never shift
    the pages that follow it.

    Raises:
        400: If the cursor is malformed
        404: If the user doesn't exist
    """
    return await engine.feed(user_id, cursor, limit)


@router.get("/notifications/unread-count", response_model=UnreadCount)
async def get_unread_count(user_id: UUID, engine: AggregationEngine = Depends(get_engine)):
    """Count feed entries newer than the user's read watermark"""
    return await engine.unread_count(user_id)


@router.post("/notifications/mark-read", response_model=MarkReadResponse)
async def mark_read(
    user_id: UUID,
    engine: AggregationEngine = Depends(get_engine),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    """
    Mark the whole feed read.

    Repeating a request with the same `Idempotency-Key` returns the
    original response.
    """
    return await engine.mark_read(user_id, request_id=idempotency_key)
