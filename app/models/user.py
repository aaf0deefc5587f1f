"""User model"""

import uuid

from sqlalchemy import Column, DateTime, String, Uuid

from app.database import Base
from app.utils.time_utils import utcnow


class User(Base):
    """User model; identity is immutable once created"""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    image = Column(String(500), nullable=True)
    timezone = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name={self.name}, email={self.email})>"
