"""
Retry helpers for eventually consistent backend reads
"""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_with_backoff(func: Callable[[], T],
                       max_retries: int = 3,
                       initial_delay: float = 1.0,
                       retry_on: Tuple[Type[BaseException], ...] = (Exception,)) -> T:
    """
    Retry a function with exponential backoff

    Args:
        func: Function to retry
        max_retries: Maximum number of retries
        initial_delay: Initial delay in seconds
        retry_on: Exception types that trigger a retry; others propagate at once

    Returns:
        Result of the function call

    Raises:
        Exception: Last exception if all retries fail
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return func()
        except retry_on as e:
            if attempt >= max_retries:
                logger.error(f"All {max_retries + 1} attempts failed")
                raise
            logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
            time.sleep(delay)
            delay *= 2  # Exponential backoff
