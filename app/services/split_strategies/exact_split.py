"""Exact (manually entered) split strategy"""
from decimal import Decimal
from typing import List
from uuid import UUID

from app.core.exceptions import ValidationError
from app.services.split_strategies.base import BaseSplitStrategy, ShareSplit
from app.utils.decimal_utils import sum_decimals, to_minor_units


class ExactSplitStrategy(BaseSplitStrategy):
    """Strategy for shares entered with explicit amounts"""

    def calculate_splits(
        self,
        total_amount: Decimal,
        currency: str,
        payer_id: UUID,
        share_data: List[dict]
    ) -> List[ShareSplit]:
        """
        Use manually specified amounts.

        Raises:
            ValidationError: If an amount is missing, negative, too precise
                for the currency, or the amounts don't sum to total_amount
        """
        if not share_data:
            return []

        splits = []
        for share in share_data:
            if share.get('amount') is None:
                raise ValidationError(
                    f"Share for user {share['user_id']} needs an amount when not splitting equally"
                )
            amount = Decimal(str(share['amount']))

            if amount < 0:
                raise ValidationError(
                    f"Share amount cannot be negative, got {amount}"
                )
            try:
                to_minor_units(amount, currency)
            except ValueError as e:
                raise ValidationError(str(e))

            splits.append(ShareSplit(
                user_id=share['user_id'],
                amount=amount,
                paid=bool(share.get('paid', False))
            ))

        # Shares must add up exactly, no rounding tolerance
        total_assigned = sum_decimals(split.amount for split in splits)
        if total_assigned != total_amount:
            raise ValidationError(
                f"Sum of share amounts ({total_assigned}) must equal expense amount ({total_amount})"
            )

        return splits
