"""Pairwise running balance model"""
import uuid
from decimal import Decimal

from sqlalchemy import (Column, DateTime, Numeric, String, UniqueConstraint,
                        Uuid)

from app.database import Base
from app.utils.decimal_utils import MONEY_SCALE
from app.utils.time_utils import utcnow

# Scope of balances from expenses without a group
DIRECT_SCOPE = "direct"


class PairBalance(Base):
    """
    Outstanding amounts between an unordered user pair.

    user_low_id sorts before user_high_id. low_credit is what high owes low,
    high_credit is what low owes high. Rows are derived from the ledger and
    can always be rebuilt from it.
    """

    __tablename__ = "pair_balances"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_low_id = Column(Uuid, nullable=False, index=True)
    user_high_id = Column(Uuid, nullable=False, index=True)
    scope = Column(String(36), nullable=False, default=DIRECT_SCOPE, index=True)
    currency = Column(String(3), nullable=False)
    low_credit = Column(Numeric(17, MONEY_SCALE), nullable=False, default=Decimal("0"))
    high_credit = Column(Numeric(17, MONEY_SCALE), nullable=False, default=Decimal("0"))
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "user_low_id", "user_high_id", "scope", "currency", name="uq_pair_scope_currency"
        ),
    )

    def credit_of(self, user_id) -> Decimal:
        """Amount the other side of the pair owes user_id"""
        return self.low_credit if user_id == self.user_low_id else self.high_credit

    def debt_of(self, user_id) -> Decimal:
        """Amount user_id owes the other side of the pair"""
        return self.high_credit if user_id == self.user_low_id else self.low_credit

    def counterparty_of(self, user_id):
        return self.user_high_id if user_id == self.user_low_id else self.user_low_id

    def __repr__(self) -> str:
        return (
            f"<PairBalance(low={self.user_low_id}, high={self.user_high_id}, scope={self.scope}, "
            f"low_credit={self.low_credit}, high_credit={self.high_credit})>"
        )
