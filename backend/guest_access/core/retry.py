"""Retry strategy for outbound collaborator calls.

Exponential backoff with jitter for transient delivery errors.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

__all__ = ["RetryPolicy", "with_retries"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one collaborator.

    Attributes:
        max_retries: Retries after the first attempt (0 = single attempt).
        base_delay_ms: Delay before the first retry; doubles each attempt.
        max_delay_ms: Upper bound for any single delay.
    """

    max_retries: int = 2
    base_delay_ms: int = 200
    max_delay_ms: int = 2000


async def with_retries(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    retryable_errors: tuple[type[Exception], ...],
) -> T:
    """Execute function with exponential backoff retry.

    Args:
        func: Async function to execute (no arguments).
        policy: Retry settings.
        retryable_errors: Tuple of error types that should trigger retry.

    Returns:
        Result from successful function execution.

    Raises:
        Exception: The last retryable error once all retries are exhausted.
            Non-retryable errors propagate immediately.
    """
    last_error: Exception | None = None

    for attempt in range(policy.max_retries + 1):
        try:
            return await func()
        except retryable_errors as e:
            last_error = e

            if attempt == policy.max_retries:
                break  # No more retries

            base_delay = policy.base_delay_ms * (2**attempt)
            jitter = random.uniform(0, base_delay * 0.1)  # nosec B311
            delay = min(base_delay + jitter, policy.max_delay_ms) / 1000

            logger.warning(
                "Collaborator error (attempt %d/%d): %s. Retrying in %.2fs",
                attempt + 1,
                policy.max_retries + 1,
                e,
                delay,
            )

            await asyncio.sleep(delay)

    # Should not reach here without an error, but satisfy type checker
    if last_error is not None:
        raise last_error
    raise RuntimeError("Retry loop exited without error or result")
