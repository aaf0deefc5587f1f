"""Statistics schemas"""
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel


class WeeklyAmount(BaseModel):
    """Amount for one ISO week, keyed by the week's Monday"""
    date: date
    amount: Decimal


class StatisticsResponse(BaseModel):
    """Category and weekly rollups for a user"""
    user_id: UUID
    start: Optional[date] = None
    end: Optional[date] = None
    total_expenses: Decimal
    total_income: Decimal
    by_category: Dict[str, Decimal]
    by_week: List[WeeklyAmount]
