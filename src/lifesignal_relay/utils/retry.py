"""Retry policy implementation with exponential backoff and jitter."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")


def compute_backoff(
    attempt: int,
    base: float,
    max_delay: float,
    jitter_ratio: float,
    minimum: float = 0.1,
) -> float:
    """
    Compute exponential backoff delay with jitter.

    Args:
        attempt: Attempt number (0-based)
        base: Base delay in seconds
        max_delay: Maximum delay in seconds
        jitter_ratio: Jitter ratio (0.0 to 1.0)
        minimum: Lower bound of the returned delay

    Returns:
        Delay in seconds
    """
    # Exponential backoff: base * 2^attempt
    delay = min(max_delay, base * (2 ** attempt))

    # Add jitter: ±jitter_ratio of the delay
    jitter = random.uniform(-jitter_ratio, jitter_ratio) * delay

    return max(minimum, delay + jitter)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int,
    base_delay: float,
    retry_on: Tuple[Type[BaseException], ...],
    description: str = "operation",
    logger: Optional[logging.Logger] = None,
    max_delay: float = 60.0,
    jitter_ratio: float = 0.1,
) -> T:
    """
    Await ``operation`` and retry it on the given exception types.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: First backoff delay in seconds
        retry_on: Exception types that are considered transient
        description: Used in log messages
        logger: Logger for retry warnings

    Returns:
        The operation result

    Raises:
        The last exception once retries are exhausted, or any exception not
        listed in ``retry_on`` immediately.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except retry_on as e:
            if attempt >= max_retries:
                raise
            delay = compute_backoff(attempt, base_delay, max_delay, jitter_ratio, minimum=0.0)
            if logger:
                logger.warning(
                    f"{description} failed ({type(e).__name__}: {e}); "
                    f"retry {attempt + 1}/{max_retries} in {delay:.2f}s"
                )
            attempt += 1
            await asyncio.sleep(delay)
