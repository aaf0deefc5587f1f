"""Group schemas"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.user import UserSummary


class GroupCreate(BaseModel):
    """Schema for creating a group; the creator is always a member"""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    created_by: UUID
    member_ids: List[UUID] = Field(default_factory=list)


class GroupMemberAdd(BaseModel):
    """Schema for adding a member"""

    user_id: UUID
    actor_id: UUID


class GroupResponse(BaseModel):
    """Group with its current members"""

    id: UUID
    name: str
    description: Optional[str] = None
    members: List[UserSummary]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_group(cls, group) -> "GroupResponse":
        return cls(
            id=group.id,
            name=group.name,
            description=group.description,
            members=[UserSummary.model_validate(user) for user in group.active_members],
            created_at=group.created_at,
            updated_at=group.updated_at,
        )


class GroupListResponse(BaseModel):
    """Groups a user currently belongs to"""

    groups: List[GroupResponse]
