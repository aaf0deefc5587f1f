"""Group and membership models"""

import uuid

from sqlalchemy import (Column, DateTime, ForeignKey, Index, String, Text,
                        Uuid, text)
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.time_utils import utcnow


class Group(Base):
    """Group of users sharing expenses"""

    __tablename__ = "groups"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    created_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    memberships = relationship(
        "GroupMembership",
        back_populates="group",
        order_by="GroupMembership.joined_at",
        lazy="selectin",
    )

    @property
    def active_members(self):
        return [m.user for m in self.memberships if m.left_at is None]

    def __repr__(self) -> str:
        return f"<Group(id={self.id}, name={self.name})>"


class GroupMembership(Base):
    """
    One membership interval of a user in a group.

    A user who leaves and rejoins gets a new row, so [joined_at, left_at)
    intervals record the whole history. left_at is None on the current
    interval.
    """

    __tablename__ = "group_memberships"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    joined_at = Column(DateTime, default=utcnow, nullable=False)
    left_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_group_member_interval", "group_id", "user_id", "joined_at"),
        # At most one open interval per user and group
        Index(
            "uq_group_member_active",
            "group_id",
            "user_id",
            unique=True,
            postgresql_where=text("left_at IS NULL"),
            sqlite_where=text("left_at IS NULL"),
        ),
    )

    group = relationship("Group", back_populates="memberships")
    user = relationship("User", lazy="selectin")

    def covers(self, moment) -> bool:
        """Whether the user was a member at the given naive UTC moment"""
        return self.joined_at <= moment and (self.left_at is None or moment < self.left_at)

    def __repr__(self) -> str:
        return (
            f"<GroupMembership(group_id={self.group_id}, user_id={self.user_id}, "
            f"joined_at={self.joined_at}, left_at={self.left_at})>"
        )
