"""Expense schemas"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.expense import CorrectionKind, ExpenseCategory
from app.schemas.common import PaginationMeta
from app.schemas.user import UserSummary


def parse_amount(v) -> Decimal:
    """
    Convert a submitted amount to a finite Decimal.

    Raises:
        ValueError: If the value is not a number, or is NaN or infinite
    """
    try:
        amount = Decimal(str(v))
    except InvalidOperation:
        raise ValueError(f"Amount must be a number, got {v!r}")
    if not amount.is_finite():
        raise ValueError("Amount must be a finite number")
    return amount


class ShareInput(BaseModel):
    """Input schema for one expense share"""

    user_id: UUID
    amount: Optional[Decimal] = None
    paid: bool = False

    @field_validator("amount", mode="before")
    @classmethod
    def convert_to_decimal(cls, v):
        """Convert numeric values to Decimal"""
        if v is None:
            return v
        return parse_amount(v)


class ExpenseCreate(BaseModel):
    """Schema for recording an expense"""

    description: str = Field(..., max_length=500, min_length=1)
    amount: Decimal
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    date: Optional[datetime] = None
    paid_by: UUID
    group_id: Optional[UUID] = None
    split_equally: bool = False
    category: ExpenseCategory = ExpenseCategory.OTHER
    shares: List[ShareInput]

    @field_validator("amount", mode="before")
    @classmethod
    def convert_amount(cls, v):
        """Convert amount to Decimal"""
        return parse_amount(v)

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v):
        return v.upper() if v else v


class CorrectionCreate(BaseModel):
    """Schema for an append-only correction of an expense's shares"""

    actor_id: UUID
    shares: List[ShareInput]
    split_equally: bool = False
    reason: Optional[str] = Field(default=None, max_length=1000)


class VoidRequest(BaseModel):
    """Schema for voiding an expense"""

    actor_id: UUID
    reason: Optional[str] = Field(default=None, max_length=1000)


class ShareResponse(BaseModel):
    """Response schema for an expense share"""

    id: UUID
    user: UserSummary
    amount: Decimal
    paid: bool
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExpenseResponse(BaseModel):
    """Complete expense response schema (effective revision)"""

    id: UUID
    description: str
    amount: Decimal
    currency: str
    date: datetime
    paid_by: UserSummary
    group_id: Optional[UUID] = None
    split_equally: bool
    category: ExpenseCategory
    revision: int
    is_void: bool
    shares: List[ShareResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_expense(cls, expense) -> "ExpenseResponse":
        return cls(
            id=expense.id,
            description=expense.description,
            amount=expense.amount,
            currency=expense.currency,
            date=expense.expense_date,
            paid_by=UserSummary.model_validate(expense.payer),
            group_id=expense.group_id,
            split_equally=expense.split_equally,
            category=expense.category,
            revision=expense.revision,
            is_void=expense.is_void,
            shares=[ShareResponse.model_validate(s) for s in expense.current_shares],
            created_at=expense.created_at,
            updated_at=expense.updated_at,
        )


class CorrectionResponse(BaseModel):
    """Append-only correction event"""

    id: UUID
    expense_id: UUID
    revision: int
    kind: CorrectionKind
    reason: Optional[str] = None
    created_by_user_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    """Settlement of one share"""

    id: UUID
    share_id: UUID
    expense_id: UUID
    from_user_id: UUID
    to_user_id: UUID
    amount: Decimal
    currency: str
    paid_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ExpenseListItem(BaseModel):
    """Expense in list view, seen from one user"""

    id: UUID
    date: datetime
    description: str
    total_amount: Decimal
    currency: str
    category: ExpenseCategory
    group_id: Optional[UUID] = None
    group_name: Optional[str] = None
    paid_by: UserSummary
    your_share: Decimal
    share_type: str  # "credit" or "debit"
    is_void: bool


class ExpenseListResponse(BaseModel):
    """Page of expenses"""

    items: List[ExpenseListItem]
    pagination: PaginationMeta


class GroupExpenseListResponse(BaseModel):
    """Page of a group's expenses"""

    group_id: UUID
    items: List[ExpenseResponse]
    pagination: PaginationMeta
