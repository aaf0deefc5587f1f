"""Activity feed and notification schemas"""
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from app.schemas.user import UserSummary


class ActivityBase(BaseModel):
    """Fields shared by every feed entry"""
    id: int
    description: str
    date: datetime
    actor_id: Optional[UUID] = None
    involved_users: List[UserSummary]


class ExpenseActivity(ActivityBase):
    type: Literal["expense"] = "expense"
    amount: Decimal
    currency: str
    expense_id: UUID
    group_id: Optional[UUID] = None


class PaymentActivity(ActivityBase):
    type: Literal["payment"] = "payment"
    amount: Decimal
    currency: str
    expense_id: UUID
    group_id: Optional[UUID] = None


class GroupActivity(ActivityBase):
    type: Literal["group"] = "group"
    group_id: UUID


class MessageActivity(ActivityBase):
    type: Literal["message"] = "message"
    group_id: Optional[UUID] = None
    message: Optional[str] = None


ActivityEntry = Annotated[
    Union[ExpenseActivity, PaymentActivity, GroupActivity, MessageActivity],
    Field(discriminator="type"),
]

activity_entry_adapter = TypeAdapter(ActivityEntry)


class FeedPage(BaseModel):
    """One page of a user's feed, newest first"""
    items: List[ActivityEntry]
    next_cursor: Optional[str] = None


class Watermark(BaseModel):
    """Feed position acknowledged as read"""
    date: Optional[datetime] = None
    id: Optional[int] = None


class UnreadCount(BaseModel):
    user_id: UUID
    unread_count: int


class MarkReadResponse(BaseModel):
    user_id: UUID
    watermark: Watermark
    unread_count: int


class MessageCreate(BaseModel):
    """Message event reported by the messaging collaborator"""
    sender_id: UUID
    group_id: Optional[UUID] = None
    recipient_ids: List[UUID] = Field(default_factory=list)
    content: str = Field(..., min_length=1)

    @field_validator("recipient_ids")
    @classmethod
    def unique_recipients(cls, v):
        return list(dict.fromkeys(v))


class MessageReceipt(BaseModel):
    """Number of feeds a message event was delivered to"""
    recipient_count: int
