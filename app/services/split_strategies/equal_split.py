"""Equal split strategy"""

from decimal import Decimal
from typing import List
from uuid import UUID

from app.core.exceptions import ValidationError
from app.services.split_strategies.base import BaseSplitStrategy, ShareSplit
from app.utils.decimal_utils import from_minor_units, to_minor_units


class EqualSplitStrategy(BaseSplitStrategy):
    """Strategy for splitting expense equally among shareholders"""

    def calculate_splits(
        self,
        total_amount: Decimal,
        currency: str,
        payer_id: UUID,
        share_data: List[dict],
    ) -> List[ShareSplit]:
        """
        Divide the amount in minimum currency units.

        The remainder of the integer division goes to the payer's own share,
        or to the last share when the payer holds none, so the shares always
        add up to the total exactly.
        """
        num_shares = len(share_data)

        if num_shares == 0:
            return []

        try:
            total_units = to_minor_units(total_amount, currency)
        except ValueError as e:
            raise ValidationError(str(e))

        base_units, remainder = divmod(total_units, num_shares)

        remainder_index = num_shares - 1
        for index, share in enumerate(share_data):
            if share["user_id"] == payer_id:
                remainder_index = index
                break

        splits = []
        for index, share in enumerate(share_data):
            units = base_units + (remainder if index == remainder_index else 0)
            splits.append(
                ShareSplit(
                    user_id=share["user_id"],
                    amount=from_minor_units(units, currency),
                    paid=bool(share.get("paid", False)),
                )
            )

        return splits
