"""Base strategy interface"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List
from uuid import UUID

from pydantic import BaseModel


class ShareSplit(BaseModel):
    """Result of split calculation for one shareholder"""

    user_id: UUID
    amount: Decimal
    paid: bool = False


class BaseSplitStrategy(ABC):
    """Base class for split strategies"""

    @abstractmethod
    def calculate_splits(
        self,
        total_amount: Decimal,
        currency: str,
        payer_id: UUID,
        share_data: List[dict],
    ) -> List[ShareSplit]:
        """
        Calculate share amounts.

        Args:
            total_amount: Total expense amount
            currency: Currency code, which fixes the minimum unit
            payer_id: User who paid the expense
            share_data: List of dicts with user_id, amount and paid

        Returns:
            List of ShareSplit, in input order
        """
        pass
