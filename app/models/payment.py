"""Settlement payment model"""
import uuid

from sqlalchemy import (CheckConstraint, Column, DateTime, ForeignKey, Numeric,
                        String, Uuid)

from app.database import Base
from app.utils.decimal_utils import MONEY_SCALE
from app.utils.time_utils import utcnow


class Payment(Base):
    """Settlement of one expense share, from the shareholder to the payer"""

    __tablename__ = "payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    share_id = Column(Uuid, ForeignKey("expense_shares.id"), nullable=False, index=True)
    expense_id = Column(Uuid, ForeignKey("expenses.id"), nullable=False)
    from_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(15, MONEY_SCALE), nullable=False)
    currency = Column(String(3), nullable=False)
    paid_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    __table_args__ = (
        CheckConstraint('amount >= 0', name='check_payment_amount_non_negative'),
    )

    def __repr__(self) -> str:
        return f"<Payment(from={self.from_user_id}, to={self.to_user_id}, amount={self.amount})>"
