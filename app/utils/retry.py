"""Bounded retry with exponential backoff for transient failures"""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from app.core.exceptions import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """
    Delay before the next attempt: exponential with full jitter.

    Args:
        attempt: 1-based number of the attempt that just failed
        base_delay: Delay after the first failure in seconds
        max_delay: Upper bound in seconds

    Returns:
        Seconds to sleep
    """
    ceiling = min(max_delay, base_delay * (2 ** (attempt - 1)))
    return random.uniform(0, ceiling)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    max_delay: float,
    retry_on: Tuple[Type[BaseException], ...] = (TransientError,),
    name: str = "operation",
) -> T:
    """
    Run operation, retrying retry_on exceptions up to attempts times.

    The last failure is re-raised unchanged once attempts are exhausted.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= attempts:
                logger.warning(f"{name} failed after {attempt} attempts: {exc}")
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"{name} attempt {attempt}/{attempts} failed ({exc}); retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)
            attempt += 1
