"""
Retry Backoff
=============
Linear or exponential backoff for transient failures.
"""

import asyncio
import random
from typing import TypeVar, Callable, Awaitable, Optional, Set, Type
from functools import wraps
import structlog

from .exceptions import RetryExhausted

logger = structlog.get_logger(__name__)

T = TypeVar('T')

Sleeper = Callable[[float], Awaitable[None]]


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    linear: bool = False,
) -> float:
    """
    Delay before retrying after failed attempt number ``attempt``.

    Linear: ``attempt * base_delay``. Exponential: ``base_delay * base ** (attempt - 1)``.
    """
    if linear:
        delay = attempt * base_delay
    else:
        delay = base_delay * (exponential_base ** (attempt - 1))
    return min(delay, max_delay)


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    linear: bool = False,
    jitter: bool = True,
    retryable_exceptions: Optional[Set[Type[Exception]]] = None,
    sleep: Optional[Sleeper] = None,
    **kwargs,
) -> T:
    """
    Execute a function with backoff retry.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_attempts: Maximum number of attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exponential_base: Base for exponential calculation
        linear: Grow the delay linearly instead of exponentially
        jitter: Add random jitter to delays
        retryable_exceptions: Set of exception types to retry on
        sleep: Awaitable sleep function (defaults to asyncio.sleep)
        **kwargs: Keyword arguments for func

    Returns:
        Result of func

    Raises:
        RetryExhausted: If all attempts fail
    """
    retryable = tuple(retryable_exceptions or {Exception})
    sleeper = sleep or asyncio.sleep
    last_exception = None

    for attempt in range(1, max_attempts + 1):
        try:
            return await func(*args, **kwargs)
        except retryable as e:
            last_exception = e

            if attempt == max_attempts:
                logger.error(
                    "Retry exhausted",
                    func=getattr(func, "__name__", repr(func)),
                    attempts=attempt,
                    error=str(e),
                )
                raise RetryExhausted(
                    f"Failed after {max_attempts} attempts: {e}",
                    last_exception=e,
                    attempts=attempt,
                ) from e

            delay = compute_delay(attempt, base_delay, max_delay, exponential_base, linear)

            if jitter:
                delay = delay * (0.5 + random.random())

            logger.warning(
                "Retrying after failure",
                func=getattr(func, "__name__", repr(func)),
                attempt=attempt,
                delay=delay,
                error=str(e),
            )

            await sleeper(delay)

    raise RetryExhausted(f"Failed after {max_attempts} attempts", last_exception, max_attempts)


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    linear: bool = False,
    jitter: bool = True,
    retryable_exceptions: Optional[Set[Type[Exception]]] = None,
):
    """
    Decorator for retry with backoff.

    Usage:
        @with_retry(max_attempts=5)
        async def fetch_data():
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_with_backoff(
                func,
                *args,
                max_attempts=max_attempts,
                base_delay=base_delay,
                max_delay=max_delay,
                linear=linear,
                jitter=jitter,
                retryable_exceptions=retryable_exceptions,
                **kwargs,
            )
        return wrapper
    return decorator
