"""Messaging hook endpoint"""
from fastapi import APIRouter, Depends, status

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.activity import MessageCreate, MessageReceipt

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("", response_model=MessageReceipt, status_code=status.HTTP_201_CREATED)
async def record_message(message: MessageCreate, engine: AggregationEngine = Depends(get_engine)):
    """
    Record a message event in the recipients' feeds.

    Called by the messaging service; the feed entry keeps the first 50
    characters of the message.
    """
    return await engine.record_message(message)
