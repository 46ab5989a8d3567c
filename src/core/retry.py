"""Bounded exponential-backoff retry for single fallible calls.

Wrap one flaky store or network call, never a whole multi-entity scan: scans
are idempotent and the next scheduled tick retries them.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from functools import wraps
from typing import Any, TypeVar

from src.core.config import Constants
from src.core.errors import is_transient


logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryPolicy = tuple[type[BaseException], ...] | Callable[[BaseException], bool]


def _should_retry(error: BaseException, retry_on: RetryPolicy) -> bool:
    if isinstance(retry_on, tuple):
        return isinstance(error, retry_on)
    return retry_on(error)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = Constants.RETRY_BASE_DELAY_SECONDS,
    retry_on: RetryPolicy = is_transient,
) -> T:
    """Await ``operation()`` up to ``max_attempts`` times.

    The delay before attempt ``n + 1`` is ``base_delay * 2**(n - 1)``
    (1s, 2s, 4s, ... with the default base).

    Args:
        operation: Zero-argument callable returning an awaitable
        max_attempts: Total attempts, including the first one
        base_delay: Delay in seconds before the first retry
        retry_on: Exception types, or a predicate, that make an error retryable

    Returns:
        Whatever the operation returns

    Raises:
        The last error once attempts are exhausted, or the first non-retryable one
    """
    if max_attempts < 1:
        msg = "max_attempts must be at least 1"
        raise ValueError(msg)

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == max_attempts or not _should_retry(e, retry_on):
                if attempt > 1:
                    logger.error("Operation failed after %d attempts: %s", attempt, e)
                raise
            delay = base_delay * (2 ** (attempt - 1))
            logger.warning(
                "Operation failed (attempt %d/%d): %s. Retrying in %.2fs",
                attempt,
                max_attempts,
                e,
                delay,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")


def retrying(
    max_attempts: int = 3,
    base_delay: float = Constants.RETRY_BASE_DELAY_SECONDS,
    retry_on: RetryPolicy = is_transient,
) -> Callable[[Callable[..., Coroutine[Any, Any, T]]], Callable[..., Coroutine[Any, Any, T]]]:
    """Decorator form of :func:`with_retry` for async functions."""

    def decorator(func: Callable[..., Coroutine[Any, Any, T]]) -> Callable[..., Coroutine[Any, Any, T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:  # noqa: ANN401
            return await with_retry(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                base_delay=base_delay,
                retry_on=retry_on,
            )

        return wrapper

    return decorator
