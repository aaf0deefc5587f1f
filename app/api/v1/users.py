"""User endpoints"""
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_engine
from app.engine import AggregationEngine
from app.schemas.expense import ExpenseListResponse
from app.schemas.group import GroupListResponse
from app.schemas.statistics import StatisticsResponse
from app.schemas.user import UserCreate, UserResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user_data: UserCreate, engine: AggregationEngine = Depends(get_engine)):
    """
    Create a user.

    Raises:
        409: If the email is already registered
    """
    return await engine.create_user(user_data)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(user_id: UUID, engine: AggregationEngine = Depends(get_engine)):
    """
    Get user details by ID.

    Raises:
        404: If user not found
    """
    return await engine.get_user(user_id)


@router.get("/{user_id}/statistics", response_model=StatisticsResponse)
async def get_statistics(
    user_id: UUID,
    start: Optional[date] = Query(None, description="First day (inclusive)"),
    end: Optional[date] = Query(None, description="Last day (inclusive)"),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get spending statistics of a user.

    - total_expenses: amounts of expenses the user paid
    - total_income: settlement payments the user received
    - by_category: the user's own share per category, every category listed
    - by_week: the user's own share per ISO week (Monday start, user timezone)
    """
    return await engine.statistics(user_id, start, end)


@router.get("/{user_id}/expenses", response_model=ExpenseListResponse)
async def list_user_expenses(
    user_id: UUID,
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    engine: AggregationEngine = Depends(get_engine),
):
    """
    Get expenses the user paid or holds a share of, most recent first.

    - your_share: portion owed to the user when they paid (credit), or
      their own share otherwise (debit)
    """
    return await engine.user_expenses(user_id, page, page_size)


@router.get("/{user_id}/groups", response_model=GroupListResponse)
async def list_user_groups(user_id: UUID, engine: AggregationEngine = Depends(get_engine)):
    """Get the groups a user currently belongs to"""
    return await engine.user_groups(user_id)
