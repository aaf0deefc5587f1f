"""Payment data access"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payment import Payment


class PaymentRepository:
    """Repository for Payment database operations"""

    @staticmethod
    async def create(db: AsyncSession, payment: Payment) -> Payment:
        """Record a settlement payment"""
        db.add(payment)
        await db.flush()
        return payment

    @staticmethod
    async def list_received_between(
        db: AsyncSession,
        user_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Payment]:
        """
        Payments received by a user with paid_at in [start, end).

        Args:
            db: Database session
            user_id: Receiving user UUID
            start: Optional inclusive lower bound (naive UTC)
            end: Optional exclusive upper bound (naive UTC)

        Returns:
            List of payments
        """
        query = select(Payment).where(Payment.to_user_id == user_id)
        if start:
            query = query.where(Payment.paid_at >= start)
        if end:
            query = query.where(Payment.paid_at < end)

        result = await db.execute(query.order_by(Payment.paid_at.asc()))
        return list(result.scalars().all())
