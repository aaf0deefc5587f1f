"""Test split calculations"""

from decimal import Decimal
from uuid import uuid4

import pytest

from app.core.exceptions import ValidationError
from app.services.split_strategies import (EqualSplitStrategy,
                                           ExactSplitStrategy,
                                           get_split_strategy)


class TestGetSplitStrategy:
    """Test get_split_strategy factory function"""

    def test_get_equal_strategy(self):
        """Test getting equal split strategy"""
        strategy = get_split_strategy(True)
        assert isinstance(strategy, EqualSplitStrategy)

    def test_get_exact_strategy(self):
        """Test getting exact split strategy"""
        strategy = get_split_strategy(False)
        assert isinstance(strategy, ExactSplitStrategy)


class TestEqualSplitStrategy:
    """Test equal split strategy"""

    @pytest.fixture
    def strategy(self):
        return EqualSplitStrategy()

    def test_even_split(self, strategy):
        """Test 300 split three ways"""
        payer = uuid4()
        shares = [{"user_id": payer}, {"user_id": uuid4()}, {"user_id": uuid4()}]

        splits = strategy.calculate_splits(Decimal("300"), "INR", payer, shares)

        assert [s.amount for s in splits] == [Decimal("100.00")] * 3

    def test_remainder_goes_to_payer(self, strategy):
        """Test 301 split three ways: the payer absorbs the extra unit"""
        payer = uuid4()
        shares = [{"user_id": uuid4()}, {"user_id": payer}, {"user_id": uuid4()}]

        splits = strategy.calculate_splits(Decimal("301"), "JPY", payer, shares)

        assert [s.amount for s in splits] == [Decimal("100"), Decimal("101"), Decimal("100")]
        assert sum(s.amount for s in splits) == Decimal("301")

    def test_remainder_in_minor_units(self, strategy):
        """Test 100.00 split three ways keeps every cent"""
        payer = uuid4()
        shares = [{"user_id": payer}, {"user_id": uuid4()}, {"user_id": uuid4()}]

        splits = strategy.calculate_splits(Decimal("100.00"), "USD", payer, shares)

        assert splits[0].amount == Decimal("33.34")
        assert splits[1].amount == Decimal("33.33")
        assert splits[2].amount == Decimal("33.33")
        assert sum(s.amount for s in splits) == Decimal("100.00")

    def test_three_decimal_currency(self, strategy):
        """Test 1.000 KWD split three ways in fils"""
        payer = uuid4()
        shares = [{"user_id": uuid4()}, {"user_id": payer}, {"user_id": uuid4()}]

        splits = strategy.calculate_splits(Decimal("1.000"), "KWD", payer, shares)

        assert [s.amount for s in splits] == [Decimal("0.333"), Decimal("0.334"), Decimal("0.333")]

    def test_remainder_to_last_share_without_payer(self, strategy):
        """Test the last share absorbs the remainder when the payer holds none"""
        shares = [{"user_id": uuid4()}, {"user_id": uuid4()}]

        splits = strategy.calculate_splits(Decimal("0.05"), "USD", uuid4(), shares)

        assert splits[0].amount == Decimal("0.02")
        assert splits[1].amount == Decimal("0.03")

    def test_ignores_entered_amounts(self, strategy):
        """Test entered amounts are replaced by the equal split"""
        payer = uuid4()
        shares = [{"user_id": payer, "amount": Decimal("0"), "paid": True}, {"user_id": uuid4(), "amount": Decimal("5")}]

        splits = strategy.calculate_splits(Decimal("10"), "INR", payer, shares)

        assert [s.amount for s in splits] == [Decimal("5.00"), Decimal("5.00")]
        assert splits[0].paid is True

    def test_zero_shares(self, strategy):
        """Test equal split with no shares returns empty list"""
        assert strategy.calculate_splits(Decimal("100.00"), "INR", uuid4(), []) == []

    def test_precision_beyond_currency(self, strategy):
        """Test an amount finer than the currency's minimum unit is rejected"""
        with pytest.raises(ValidationError, match="precision"):
            strategy.calculate_splits(Decimal("10.5"), "JPY", uuid4(), [{"user_id": uuid4()}])


class TestExactSplitStrategy:
    """Test exact split strategy"""

    @pytest.fixture
    def strategy(self):
        return ExactSplitStrategy()

    def test_exact_split_valid(self, strategy):
        """Test amounts that add up are kept as entered"""
        payer = uuid4()
        shares = [
            {"user_id": payer, "amount": Decimal("70.50")},
            {"user_id": uuid4(), "amount": Decimal("29.50"), "paid": False},
        ]

        splits = strategy.calculate_splits(Decimal("100.00"), "INR", payer, shares)

        assert splits[0].amount == Decimal("70.50")
        assert splits[1].amount == Decimal("29.50")

    def test_zero_share_allowed(self, strategy):
        """Test a zero share is a valid share"""
        payer = uuid4()
        shares = [{"user_id": payer, "amount": Decimal("0")}, {"user_id": uuid4(), "amount": Decimal("10")}]

        splits = strategy.calculate_splits(Decimal("10"), "INR", payer, shares)

        assert splits[0].amount == Decimal("0")

    def test_sum_mismatch(self, strategy):
        """Test amounts must add up exactly, with no tolerance"""
        shares = [{"user_id": uuid4(), "amount": Decimal("50.00")}, {"user_id": uuid4(), "amount": Decimal("49.99")}]

        with pytest.raises(ValidationError, match="must equal expense amount"):
            strategy.calculate_splits(Decimal("100.00"), "INR", uuid4(), shares)

    def test_missing_amount(self, strategy):
        """Test every share needs an amount"""
        shares = [{"user_id": uuid4(), "amount": None}]

        with pytest.raises(ValidationError, match="needs an amount"):
            strategy.calculate_splits(Decimal("10"), "INR", uuid4(), shares)

    def test_negative_amount(self, strategy):
        """Test negative share amounts are rejected"""
        shares = [{"user_id": uuid4(), "amount": Decimal("-5")}, {"user_id": uuid4(), "amount": Decimal("15")}]

        with pytest.raises(ValidationError, match="cannot be negative"):
            strategy.calculate_splits(Decimal("10"), "INR", uuid4(), shares)

    def test_too_precise_amount(self, strategy):
        """Test share amounts finer than a cent are rejected"""
        shares = [{"user_id": uuid4(), "amount": Decimal("10.005")}]

        with pytest.raises(ValidationError, match="precision"):
            strategy.calculate_splits(Decimal("10.005"), "USD", uuid4(), shares)
