"""Idempotency record data access"""
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.idempotency import IdempotencyRecord


class IdempotencyRepository:
    """Repository for IdempotencyRecord database operations"""

    @staticmethod
    async def get(
        db: AsyncSession, operation: str, actor_id: UUID, request_id: str
    ) -> Optional[IdempotencyRecord]:
        """Get the stored record for a request id"""
        result = await db.execute(
            select(IdempotencyRecord).where(
                and_(
                    IdempotencyRecord.operation == operation,
                    IdempotencyRecord.actor_id == actor_id,
                    IdempotencyRecord.request_id == request_id,
                )
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create(db: AsyncSession, record: IdempotencyRecord) -> IdempotencyRecord:
        """
        Insert a claim for a request id.

        A concurrent claim of the same key fails the flush with
        IntegrityError, which the engine retries as a transient failure.
        """
        db.add(record)
        await db.flush()
        return record
