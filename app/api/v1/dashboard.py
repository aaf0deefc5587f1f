"""Dashboard endpoints"""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.dashboard import ExpenseSummary, RecentTransactions

router = APIRouter(prefix="/users/{user_id}/dashboard", tags=["Dashboard"])


@router.get("/summary", response_model=ExpenseSummary)
async def get_expense_summary(
    user_id: UUID,
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    as_of: Optional[date] = Query(None, description="Local date to report for"),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get the user's own spending this month and last month.

    percentage_change is 0 when last month's total is 0.

    Raises:
        404: If the user doesn't exist
    """
    return await engine.expense_summary(user_id, currency, as_of)


@router.get("/recent", response_model=RecentTransactions)
async def get_recent_transactions(
    user_id: UUID,
    limit: int = Query(5, ge=1, le=50),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get the user's latest expenses.

    amount is what others owe the user when they paid, and minus their own
    share otherwise.
    """
    return await engine.recent_transactions(user_id, limit)
