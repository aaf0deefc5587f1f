"""Dashboard schemas"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from app.models.expense import ExpenseCategory
from app.schemas.user import UserSummary


class MonthTotal(BaseModel):
    """The user's own share of expenses in one calendar month"""
    month: str
    year: int
    total: Decimal


class ExpenseSummary(BaseModel):
    """Current month against the month before"""
    user_id: UUID
    currency: str
    current_month: MonthTotal
    last_month: MonthTotal
    percentage_change: Decimal


class RecentTransaction(BaseModel):
    """
    Recent expense seen from one user.

    amount is positive when the user paid and others owe them a portion,
    negative when the user owes their share to the payer.
    """
    expense_id: UUID
    description: str
    date: datetime
    amount: Decimal
    currency: str
    category: ExpenseCategory
    group_id: Optional[UUID] = None
    paid_by: UserSummary
    is_payer: bool


class RecentTransactions(BaseModel):
    user_id: UUID
    transactions: List[RecentTransaction]
