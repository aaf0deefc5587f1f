"""Activity feed and notification watermark models"""
import enum

from sqlalchemy import (JSON, Column, DateTime, Enum, ForeignKey, Integer,
                        Numeric, String, Text, Uuid)

from app.database import Base
from app.utils.decimal_utils import MONEY_SCALE


class ActivityKind(str, enum.Enum):
    """Kinds of feed entries"""
    EXPENSE = "expense"
    PAYMENT = "payment"
    GROUP = "group"
    MESSAGE = "message"


class Activity(Base):
    """
    Immutable feed entry in one user's feed.

    An event touching N users produces N rows, one per owner, each listing
    every involved user. Feeds are ordered by (occurred_at desc, id desc).
    """

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    actor_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    kind = Column(Enum(ActivityKind), nullable=False)
    description = Column(Text, nullable=False)
    occurred_at = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(15, MONEY_SCALE), nullable=True)
    currency = Column(String(3), nullable=True)
    involved_user_ids = Column(JSON, nullable=False, default=list)
    group_id = Column(Uuid, nullable=True)
    expense_id = Column(Uuid, nullable=True)
    message = Column(String(50), nullable=True)

    def __repr__(self) -> str:
        return f"<Activity(id={self.id}, owner={self.owner_id}, kind={self.kind}, at={self.occurred_at})>"


class NotificationState(Base):
    """
    Per-user feed position bookkeeping.

    The row is the per-user lock for activity appends and mark-read, so the
    watermark copied by mark-read is always a position that was committed.
    """

    __tablename__ = "notification_states"

    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    watermark_at = Column(DateTime, nullable=True)
    watermark_id = Column(Integer, nullable=True)
    last_activity_at = Column(DateTime, nullable=True)
    last_activity_id = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<NotificationState(user_id={self.user_id}, watermark=({self.watermark_at}, {self.watermark_id}))>"
