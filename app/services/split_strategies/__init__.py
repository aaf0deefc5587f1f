"""Split calculation strategies"""

from app.services.split_strategies.base import BaseSplitStrategy, ShareSplit
from app.services.split_strategies.equal_split import EqualSplitStrategy
from app.services.split_strategies.exact_split import ExactSplitStrategy


def get_split_strategy(split_equally: bool) -> BaseSplitStrategy:
    """
    Get appropriate split strategy for an expense.

    Args:
        split_equally: Whether the expense is split equally

    Returns:
        Instance of appropriate strategy
    """
    if split_equally:
        return EqualSplitStrategy()
    return ExactSplitStrategy()


__all__ = [
    "BaseSplitStrategy",
    "ShareSplit",
    "EqualSplitStrategy",
    "ExactSplitStrategy",
    "get_split_strategy",
]
