"""Expense ledger data access"""

from datetime import datetime
from typing import AsyncIterator, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.expense import Expense, ExpenseCorrection, ExpenseShare

# Keyset position in the ledger: (expense_date, expense id)
LedgerPosition = Tuple[datetime, UUID]


class ExpenseRepository:
    """Repository for Expense, ExpenseShare and ExpenseCorrection operations"""

    @staticmethod
    async def create(db: AsyncSession, expense: Expense) -> Expense:
        """
        Create a new expense together with the shares attached to it.

        Args:
            db: Database session
            expense: Expense object to create

        Returns:
            Created expense
        """
        db.add(expense)
        await db.flush()
        return expense

    @staticmethod
    async def get_by_id(
        db: AsyncSession, expense_id: UUID, for_update: bool = False
    ) -> Optional[Expense]:
        """
        Get expense by ID; shares of every revision are eagerly loaded.

        Args:
            db: Database session
            expense_id: Expense UUID
            for_update: Lock the expense row until the transaction ends

        Returns:
            Expense if found, None otherwise
        """
        query = (
            select(Expense)
            .where(Expense.id == expense_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    @staticmethod
    async def add_correction(
        db: AsyncSession, correction: ExpenseCorrection
    ) -> ExpenseCorrection:
        """Append a correction event"""
        db.add(correction)
        await db.flush()
        return correction

    @staticmethod
    async def get_corrections(
        db: AsyncSession, expense_id: UUID
    ) -> List[ExpenseCorrection]:
        """Correction events of an expense, oldest first"""
        result = await db.execute(
            select(ExpenseCorrection)
            .where(ExpenseCorrection.expense_id == expense_id)
            .order_by(ExpenseCorrection.revision)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _iter_ordered(
        db: AsyncSession,
        condition,
        batch_size: int,
        after: Optional[LedgerPosition] = None,
    ) -> AsyncIterator[Expense]:
        """
        Yield expenses matching condition ordered by (expense_date, id).

        Rows are fetched in keyset pages of batch_size, so the sequence is
        lazy and can be resumed from any yielded position.
        """
        position = after
        while True:
            query = select(Expense)
            if condition is not None:
                query = query.where(condition)
            if position is not None:
                last_date, last_id = position
                query = query.where(
                    or_(
                        Expense.expense_date > last_date,
                        and_(Expense.expense_date == last_date, Expense.id > last_id),
                    )
                )
            query = query.order_by(Expense.expense_date.asc(), Expense.id.asc()).limit(batch_size)

            result = await db.execute(query)
            batch = list(result.scalars().all())
            for expense in batch:
                yield expense

            if len(batch) < batch_size:
                return
            position = (batch[-1].expense_date, batch[-1].id)

    @staticmethod
    def _involving_condition(user_id: UUID):
        shareholder_subquery = select(ExpenseShare.expense_id).where(
            ExpenseShare.user_id == user_id
        )
        return or_(
            Expense.paid_by_user_id == user_id,
            Expense.id.in_(shareholder_subquery),
        )

    @staticmethod
    def iter_involving(
        db: AsyncSession,
        user_id: UUID,
        batch_size: int = 200,
        after: Optional[LedgerPosition] = None,
    ) -> AsyncIterator[Expense]:
        """
        Expenses where the user is payer or holds a share, date ascending.

        Args:
            db: Database session
            user_id: User UUID
            batch_size: Rows fetched per round trip
            after: Resume strictly after this (expense_date, id)
        """
        return ExpenseRepository._iter_ordered(
            db, ExpenseRepository._involving_condition(user_id), batch_size, after
        )

    @staticmethod
    def iter_in_group(
        db: AsyncSession,
        group_id: UUID,
        batch_size: int = 200,
        after: Optional[LedgerPosition] = None,
    ) -> AsyncIterator[Expense]:
        """Expenses tagged with a group, date ascending"""
        return ExpenseRepository._iter_ordered(
            db, Expense.group_id == group_id, batch_size, after
        )

    @staticmethod
    def iter_all(
        db: AsyncSession,
        batch_size: int = 200,
        after: Optional[LedgerPosition] = None,
    ) -> AsyncIterator[Expense]:
        """Every expense in the ledger, date ascending"""
        return ExpenseRepository._iter_ordered(db, None, batch_size, after)

    @staticmethod
    async def list_involving_between(
        db: AsyncSession,
        user_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[Expense]:
        """
        Expenses involving a user with expense_date in [start, end).

        Args:
            db: Database session
            user_id: User UUID
            start: Optional inclusive lower bound (naive UTC)
            end: Optional exclusive upper bound (naive UTC)

        Returns:
            List of expenses, date ascending
        """
        query = select(Expense).where(ExpenseRepository._involving_condition(user_id))

        if start:
            query = query.where(Expense.expense_date >= start)
        if end:
            query = query.where(Expense.expense_date < end)

        query = query.order_by(Expense.expense_date.asc(), Expense.id.asc())

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    def _newest_first(query):
        return query.order_by(
            Expense.expense_date.desc(), Expense.created_at.desc(), Expense.id.desc()
        )

    @staticmethod
    async def list_involving(
        db: AsyncSession,
        user_id: UUID,
        skip: int = 0,
        limit: int = 20,
        include_void: bool = True,
    ) -> List[Expense]:
        """
        Get a page of expenses involving a user, most recent first.

        Args:
            db: Database session
            user_id: User UUID
            skip: Number of records to skip
            limit: Maximum number of records to return
            include_void: Whether voided expenses are listed

        Returns:
            List of expenses
        """
        query = select(Expense).where(ExpenseRepository._involving_condition(user_id))
        if not include_void:
            query = query.where(Expense.is_void.is_(False))

        query = ExpenseRepository._newest_first(query).offset(skip).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count_involving(db: AsyncSession, user_id: UUID) -> int:
        """Count expenses where the user is payer or holds a share"""
        result = await db.execute(
            select(func.count(Expense.id)).where(
                ExpenseRepository._involving_condition(user_id)
            )
        )
        return result.scalar_one()

    @staticmethod
    async def list_in_group(
        db: AsyncSession, group_id: UUID, skip: int = 0, limit: int = 20
    ) -> List[Expense]:
        """Get a page of a group's expenses, most recent first"""
        query = select(Expense).where(Expense.group_id == group_id)
        query = ExpenseRepository._newest_first(query).offset(skip).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def count_in_group(db: AsyncSession, group_id: UUID) -> int:
        """Count a group's expenses"""
        result = await db.execute(
            select(func.count(Expense.id)).where(Expense.group_id == group_id)
        )
        return result.scalar_one()
