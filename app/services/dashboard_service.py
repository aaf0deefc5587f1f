"""Dashboard rollups: monthly spending and recent transactions"""
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError
from app.repositories.expense_repository import ExpenseRepository
from app.repositories.user_repository import UserRepository
from app.schemas.dashboard import (ExpenseSummary, MonthTotal,
                                   RecentTransaction, RecentTransactions)
from app.schemas.user import UserSummary
from app.services.expense_service import ExpenseService
from app.utils.decimal_utils import round_decimal
from app.utils.time_utils import local_date, resolve_timezone, utcnow

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def month_start(day: date) -> date:
    return day.replace(day=1)


def previous_month_start(day: date) -> date:
    return (month_start(day) - timedelta(days=1)).replace(day=1)


def next_month_start(day: date) -> date:
    return (month_start(day) + timedelta(days=32)).replace(day=1)


def percentage_change(current: Decimal, previous: Decimal) -> Decimal:
    """Change from previous to current in percent; zero when previous is not positive"""
    if previous <= 0:
        return ZERO
    return round_decimal((current - previous) / previous * 100, 2)


class DashboardService:
    """Service for dashboard operations"""

    @staticmethod
    async def get_expense_summary(
        db: AsyncSession, user_id: UUID, currency: str, today: Optional[date] = None
    ) -> ExpenseSummary:
        """
        Compare the user's own spending this month with last month.

        Months are calendar months in the user's timezone. Only the user's
        own share of each non-void expense in the currency counts.

        Args:
            db: Database session
            user_id: User ID
            currency: Currency to total
            today: Local date to report for (defaults to now)

        Returns:
            ExpenseSummary

        Raises:
            NotFoundError: If user not found
        """
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        tz = resolve_timezone(user.timezone)
        today = today or local_date(utcnow(), tz)

        current_start = month_start(today)
        last_start = previous_month_start(today)
        current_end = next_month_start(today)

        # Widen the UTC window by a day each side; months are cut by local date
        expenses = await ExpenseRepository.list_involving_between(
            db,
            user_id,
            datetime.combine(last_start, time.min) - timedelta(days=1),
            datetime.combine(current_end, time.min) + timedelta(days=1),
        )

        current_total = ZERO
        last_total = ZERO
        for expense in expenses:
            if expense.is_void or expense.currency != currency:
                continue
            day = local_date(expense.expense_date, tz)
            if current_start <= day < current_end:
                current_total += ExpenseService.own_share(expense, user_id)
            elif last_start <= day < current_start:
                last_total += ExpenseService.own_share(expense, user_id)

        return ExpenseSummary(
            user_id=user_id,
            currency=currency,
            current_month=MonthTotal(
                month=current_start.strftime("%B"), year=current_start.year, total=current_total
            ),
            last_month=MonthTotal(
                month=last_start.strftime("%B"), year=last_start.year, total=last_total
            ),
            percentage_change=percentage_change(current_total, last_total),
        )

    @staticmethod
    async def get_recent_transactions(
        db: AsyncSession, user_id: UUID, limit: int = 5
    ) -> RecentTransactions:
        """
        Get the user's most recent non-void expenses.

        Raises:
            NotFoundError: If user not found
        """
        if not await UserRepository.get_by_id(db, user_id):
            raise NotFoundError(f"User with ID {user_id} not found")

        expenses = await ExpenseRepository.list_involving(
            db, user_id, skip=0, limit=limit, include_void=False
        )

        transactions = []
        for expense in expenses:
            own = ExpenseService.own_share(expense, user_id)
            is_payer = expense.paid_by_user_id == user_id
            transactions.append(
                RecentTransaction(
                    expense_id=expense.id,
                    description=expense.description,
                    date=expense.expense_date,
                    amount=expense.amount - own if is_payer else ZERO - own,
                    currency=expense.currency,
                    category=expense.category,
                    group_id=expense.group_id,
                    paid_by=UserSummary.model_validate(expense.payer),
                    is_payer=is_payer,
                )
            )

        return RecentTransactions(user_id=user_id, transactions=transactions)
