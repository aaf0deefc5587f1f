"""SQLAlchemy models"""
from app.models.activity import Activity, ActivityKind, NotificationState
from app.models.balance import DIRECT_SCOPE, PairBalance
from app.models.expense import (CorrectionKind, Expense, ExpenseCategory,
                                ExpenseCorrection, ExpenseShare)
from app.models.group import Group, GroupMembership
from app.models.idempotency import IdempotencyRecord
from app.models.payment import Payment
from app.models.user import User

__all__ = [
    "Activity",
    "ActivityKind",
    "CorrectionKind",
    "DIRECT_SCOPE",
    "Expense",
    "ExpenseCategory",
    "ExpenseCorrection",
    "ExpenseShare",
    "Group",
    "GroupMembership",
    "IdempotencyRecord",
    "NotificationState",
    "PairBalance",
    "Payment",
    "User",
]
