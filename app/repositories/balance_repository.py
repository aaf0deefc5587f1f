"""Pair balance data access"""
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import and_, delete as sql_delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.balance import PairBalance


class BalanceRepository:
    """Repository for PairBalance database operations"""

    @staticmethod
    def _key_query(user_low_id: UUID, user_high_id: UUID, scope: str, currency: str):
        return select(PairBalance).where(
            and_(
                PairBalance.user_low_id == user_low_id,
                PairBalance.user_high_id == user_high_id,
                PairBalance.scope == scope,
                PairBalance.currency == currency,
            )
        )

    @staticmethod
    async def lock_pair(
        db: AsyncSession,
        user_low_id: UUID,
        user_high_id: UUID,
        scope: str,
        currency: str,
    ) -> PairBalance:
        """
        Get the pair row locked FOR UPDATE, creating it when missing.

        Creation runs inside a savepoint; if a concurrent transaction
        inserted the same key first, the savepoint is rolled back and the
        committed row is locked instead.

        Args:
            db: Database session
            user_low_id: Lower user UUID of the pair
            user_high_id: Higher user UUID of the pair
            scope: Group id string or the direct scope
            currency: Currency code

        Returns:
            Locked PairBalance
        """
        query = BalanceRepository._key_query(
            user_low_id, user_high_id, scope, currency
        ).with_for_update()

        result = await db.execute(query)
        row = result.scalar_one_or_none()
        if row is not None:
            return row

        try:
            async with db.begin_nested():
                row = PairBalance(
                    user_low_id=user_low_id,
                    user_high_id=user_high_id,
                    scope=scope,
                    currency=currency,
                    low_credit=Decimal("0"),
                    high_credit=Decimal("0"),
                )
                db.add(row)
                await db.flush()
        except IntegrityError:
            result = await db.execute(query)
            row = result.scalar_one()
        return row

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: UUID,
        currency: Optional[str] = None,
        scope: Optional[str] = None,
    ) -> List[PairBalance]:
        """
        Get every pair row the user is part of.

        Args:
            db: Database session
            user_id: User UUID
            currency: Optional currency filter
            scope: Optional scope filter

        Returns:
            List of pair rows
        """
        query = select(PairBalance).where(
            or_(PairBalance.user_low_id == user_id, PairBalance.user_high_id == user_id)
        )
        if currency:
            query = query.where(PairBalance.currency == currency)
        if scope:
            query = query.where(PairBalance.scope == scope)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def list_for_pair(
        db: AsyncSession, user_low_id: UUID, user_high_id: UUID, currency: str
    ) -> List[PairBalance]:
        """Get the pair rows of every scope for one pair"""
        result = await db.execute(
            select(PairBalance).where(
                and_(
                    PairBalance.user_low_id == user_low_id,
                    PairBalance.user_high_id == user_high_id,
                    PairBalance.currency == currency,
                )
            )
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_all(db: AsyncSession) -> List[PairBalance]:
        """Get every pair row"""
        result = await db.execute(select(PairBalance))
        return list(result.scalars().all())

    @staticmethod
    async def replace_all(db: AsyncSession, rows: List[PairBalance]) -> int:
        """
        Replace every pair row.

        Returns:
            Number of rows inserted
        """
        await db.execute(sql_delete(PairBalance))
        db.add_all(rows)
        await db.flush()
        return len(rows)

    @staticmethod
    async def list_for_scope(
        db: AsyncSession, scope: str, currency: str
    ) -> List[PairBalance]:
        """Get every pair row of one scope"""
        result = await db.execute(
            select(PairBalance).where(
                and_(PairBalance.scope == scope, PairBalance.currency == currency)
            )
        )
        return list(result.scalars().all())
