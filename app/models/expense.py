"""Expense, share and correction models"""
import enum
import uuid

from sqlalchemy import (Boolean, CheckConstraint, Column, DateTime, Enum,
                        ForeignKey, Integer, Numeric, String, Text,
                        UniqueConstraint, Uuid)
from sqlalchemy.orm import relationship

from app.database import Base
from app.utils.decimal_utils import MONEY_SCALE
from app.utils.time_utils import utcnow


class ExpenseCategory(str, enum.Enum):
    """Closed set of expense categories"""
    DAILY = "Daily"
    GROCERIES = "Groceries"
    ENTERTAINMENT = "Entertainment"
    FOOD = "Food"
    MEDICAL = "Medical"
    EDUCATION = "Education"
    TRANSPORTATION = "Transportation"
    HOUSING = "Housing"
    UTILITIES = "Utilities"
    TRAVEL = "Travel"
    OTHER = "Other"


class CorrectionKind(str, enum.Enum):
    """Kinds of append-only correction events"""
    ADJUST = "ADJUST"
    VOID = "VOID"


class Expense(Base):
    """
    Ledger entry for a shared expense.

    Share rows are never edited in place: each correction appends a new
    revision of shares and bumps `revision`, so older revisions stay
    available for reproducing historical balances.
    """

    __tablename__ = "expenses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    description = Column(String(500), nullable=False)
    amount = Column(Numeric(15, MONEY_SCALE), nullable=False)
    currency = Column(String(3), nullable=False)
    expense_date = Column(DateTime, nullable=False, index=True)
    paid_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    group_id = Column(Uuid, ForeignKey("groups.id"), nullable=True, index=True)
    split_equally = Column(Boolean, default=False, nullable=False)
    category = Column(Enum(ExpenseCategory), default=ExpenseCategory.OTHER, nullable=False)
    revision = Column(Integer, default=1, nullable=False)
    is_void = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Constraints
    __table_args__ = (
        CheckConstraint('amount > 0', name='check_expense_amount_positive'),
    )

    # Relationships
    payer = relationship("User", foreign_keys=[paid_by_user_id], lazy="selectin")
    shares = relationship(
        "ExpenseShare",
        back_populates="expense",
        order_by="ExpenseShare.revision",
        lazy="selectin",
    )

    @property
    def current_shares(self):
        """Shares of the effective revision"""
        return [share for share in self.shares if share.revision == self.revision]

    def __repr__(self) -> str:
        return f"<Expense(id={self.id}, description={self.description}, amount={self.amount})>"


class ExpenseShare(Base):
    """One user's portion of an expense, for one revision"""

    __tablename__ = "expense_shares"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    expense_id = Column(Uuid, ForeignKey("expenses.id"), nullable=False, index=True)
    revision = Column(Integer, nullable=False, default=1)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, MONEY_SCALE), nullable=False)
    paid = Column(Boolean, default=False, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    # Constraints
    __table_args__ = (
        UniqueConstraint('expense_id', 'revision', 'user_id', name='uq_expense_revision_user'),
        CheckConstraint('amount >= 0', name='check_share_amount_non_negative'),
    )

    # Relationships
    expense = relationship("Expense", back_populates="shares")
    user = relationship("User", lazy="selectin")

    def __repr__(self) -> str:
        return f"<ExpenseShare(expense_id={self.expense_id}, user_id={self.user_id}, amount={self.amount}, paid={self.paid})>"


class ExpenseCorrection(Base):
    """Append-only correction event for an expense"""

    __tablename__ = "expense_corrections"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    expense_id = Column(Uuid, ForeignKey("expenses.id"), nullable=False, index=True)
    revision = Column(Integer, nullable=False)
    kind = Column(Enum(CorrectionKind), nullable=False)
    reason = Column(Text, nullable=True)
    created_by_user_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<ExpenseCorrection(expense_id={self.expense_id}, revision={self.revision}, kind={self.kind})>"
