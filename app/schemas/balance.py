"""Balance schemas"""
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from app.schemas.user import UserSummary


class BalanceSummary(BaseModel):
    """A user's outstanding totals: net_balance = lent - owed"""
    user_id: UUID
    lent: Decimal
    owed: Decimal
    net_balance: Decimal
    currency: str


class GroupBalance(BalanceSummary):
    """BalanceSummary restricted to one group's expenses"""
    group_id: UUID


class PairBalanceResponse(BaseModel):
    """Signed balance between two users, positive when other_user_id owes user_id"""
    user_id: UUID
    other_user_id: UUID
    amount: Decimal
    currency: str


class UserBalance(BaseModel):
    """Balance between a user and one counterparty"""
    user: UserSummary
    amount: Decimal
    type: str  # "you_owe" or "owes_you"


class BalanceListResponse(BaseModel):
    """Response schema for list of balances"""
    balances: List[UserBalance]


class BalanceMismatch(BaseModel):
    """Difference between a stored pair row and the ledger recompute"""
    user_low_id: UUID
    user_high_id: UUID
    scope: str
    currency: str
    stored_low_credit: Decimal
    stored_high_credit: Decimal
    expected_low_credit: Decimal
    expected_high_credit: Decimal


class BalanceVerification(BaseModel):
    """Outcome of comparing stored balances with a full recompute"""
    pairs_checked: int
    mismatches: List[BalanceMismatch] = []
    user_id: Optional[UUID] = None


class RebuildResponse(BaseModel):
    """Outcome of a full recompute"""
    pairs_written: int
    expenses_scanned: int


class GroupBalancesResponse(BaseModel):
    """Every member's balance within one group"""
    group_id: UUID
    currency: str
    balances: List[GroupBalance]


class UserGroupBalance(GroupBalance):
    """A user's balance in one group, with the group's name"""
    group_name: str


class UserGroupBalancesResponse(BaseModel):
    """A user's balance in each of their groups"""
    user_id: UUID
    currency: str
    groups: List[UserGroupBalance]
