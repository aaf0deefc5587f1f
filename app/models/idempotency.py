"""Idempotency record model"""
import uuid

from sqlalchemy import JSON, Column, DateTime, String, UniqueConstraint, Uuid

from app.database import Base
from app.utils.time_utils import utcnow


class IdempotencyRecord(Base):
    """Stored outcome of a request deduplicated by a caller-supplied id"""

    __tablename__ = "idempotency_records"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    operation = Column(String(50), nullable=False)
    actor_id = Column(Uuid, nullable=False)
    request_id = Column(String(255), nullable=False)
    fingerprint = Column(String(64), nullable=False)
    response = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("operation", "actor_id", "request_id", name="uq_idempotency_request"),
    )
