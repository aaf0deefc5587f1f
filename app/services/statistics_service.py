"""Category and weekly spending rollups"""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFoundError, ValidationError
from app.models.expense import ExpenseCategory
from app.repositories.expense_repository import ExpenseRepository
from app.repositories.payment_repository import PaymentRepository
from app.repositories.user_repository import UserRepository
from app.schemas.statistics import StatisticsResponse, WeeklyAmount
from app.services.cache_service import CacheService
from app.utils.decimal_utils import sum_decimals
from app.utils.time_utils import iso_week_start, local_date, resolve_timezone

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class StatisticsService:
    """Service for statistics operations"""

    @staticmethod
    def cache_key(user_id: UUID, start: Optional[date], end: Optional[date]) -> str:
        """
        Get cache key for a user's statistics over a range.

        Args:
            user_id: User ID
            start: Optional first day
            end: Optional last day

        Returns:
            Cache key string
        """
        return f"statistics:{user_id}:{start or '-'}:{end or '-'}"

    @staticmethod
    def cache_pattern(user_id: UUID) -> str:
        """Pattern matching every cached range of a user"""
        return f"statistics:{user_id}:*"

    @staticmethod
    async def get_statistics(
        db: AsyncSession,
        user_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
        cache: Optional[CacheService] = None,
        ttl: int = 300,
    ) -> StatisticsResponse:
        """
        Get a user's statistics for an inclusive range of local dates.

        Args:
            db: Database session
            user_id: User ID
            start: Optional first day (inclusive)
            end: Optional last day (inclusive)
            cache: Optional cache for computed results
            ttl: Cache time to live in seconds

        Returns:
            StatisticsResponse

        Raises:
            NotFoundError: If user not found
            ValidationError: If start is after end
        """
        if start and end and start > end:
            raise ValidationError("Statistics range start must not be after its end")

        cache_key = StatisticsService.cache_key(user_id, start, end)
        if cache is not None:
            cached = await cache.get(cache_key)
            if cached:
                return StatisticsResponse.model_validate_json(cached)

        statistics = await StatisticsService.compute(db, user_id, start, end)

        if cache is not None:
            await cache.set(cache_key, statistics.model_dump_json(), ttl=ttl)
        return statistics

    @staticmethod
    async def compute(
        db: AsyncSession,
        user_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> StatisticsResponse:
        """
        Compute statistics from the ledger.

        Dates are bucketed in the user's timezone (UTC when unset). Void
        expenses are skipped; category and week figures use the user's own
        share of each expense.
        """
        user = await UserRepository.get_by_id(db, user_id)
        if not user:
            raise NotFoundError(f"User with ID {user_id} not found")
        tz = resolve_timezone(user.timezone)

        # Widen the UTC window by a day each side; exact filtering is by local date
        query_start = datetime.combine(start, time.min) - timedelta(days=1) if start else None
        query_end = datetime.combine(end, time.min) + timedelta(days=2) if end else None

        def in_range(day: date) -> bool:
            return (start is None or day >= start) and (end is None or day <= end)

        total_expenses = ZERO
        by_category: Dict[str, Decimal] = {category.value: ZERO for category in ExpenseCategory}
        by_week: Dict[date, Decimal] = defaultdict(lambda: ZERO)

        expenses = await ExpenseRepository.list_involving_between(db, user_id, query_start, query_end)
        for expense in expenses:
            if expense.is_void:
                continue
            day = local_date(expense.expense_date, tz)
            if not in_range(day):
                continue

            shares = expense.current_shares
            own_shares = [share for share in shares if share.user_id == user_id]
            is_payer = expense.paid_by_user_id == user_id
            if not is_payer and not own_shares:
                continue

            if is_payer:
                total_expenses += expense.amount

            own_amount = sum_decimals(share.amount for share in own_shares)
            by_category[ExpenseCategory(expense.category).value] += own_amount
            by_week[iso_week_start(day)] += own_amount

        payments = await PaymentRepository.list_received_between(db, user_id, query_start, query_end)
        total_income = sum_decimals(
            payment.amount for payment in payments if in_range(local_date(payment.paid_at, tz))
        )

        return StatisticsResponse(
            user_id=user_id,
            start=start,
            end=end,
            total_expenses=total_expenses,
            total_income=total_income,
            by_category=by_category,
            by_week=[
                WeeklyAmount(date=week, amount=amount)
                for week, amount in sorted(by_week.items())
            ],
        )
