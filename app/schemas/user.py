"""User schemas"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserBase(BaseModel):
    """Base user schema"""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    image: Optional[str] = Field(default=None, max_length=500)
    timezone: Optional[str] = Field(default=None, max_length=64)


class UserCreate(UserBase):
    """Schema for creating a new user"""


class UserResponse(UserBase):
    """Schema for user response"""

    id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserSummary(BaseModel):
    """Compact user reference embedded in other responses"""

    id: UUID
    name: str
    image: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
