"""
Retry with exponential backoff.

Used to re-run an access resolution that hit a transient storage failure.
"""
import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, Type, TypeVar

logger = logging.getLogger("gallery_api.retry")

T = TypeVar("T")


async def retry_with_backoff(
    func: Callable[..., Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 0.05,
    max_delay: float = 1.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[Type[Exception], ...] = (Exception,),
    target: Optional[str] = None,
    *args,
    **kwargs,
) -> T:
    """
    Await ``func(*args, **kwargs)``, retrying on ``retryable_exceptions``.

    Args:
        func: Coroutine function to call
        max_attempts: Total number of attempts
        initial_delay: Delay before the second attempt (seconds)
        max_delay: Upper bound for a single delay (seconds)
        exponential_base: Backoff multiplier
        jitter: Randomise each delay between 50% and 100%
        retryable_exceptions: Exception types that trigger a retry
        target: Label for logs (e.g. "grant.resolve")

    Returns:
        The function's return value

    Raises:
        The last retryable exception once attempts are exhausted; any
        non-retryable exception immediately.
    """
    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            extra = {
                "event": "retry",
                "attempt": attempt + 1,
                "max_attempts": max_attempts,
                "error_type": type(e).__name__,
            }
            if target is not None:
                extra["retry_target"] = target

            if attempt == max_attempts - 1:
                logger.error(
                    f"Retry exhausted after {max_attempts} attempts",
                    extra=extra,
                )
                raise

            delay = min(initial_delay * (exponential_base ** attempt), max_delay)
            if jitter:
                delay = delay * (0.5 + random.random() * 0.5)

            extra["delay"] = round(delay, 3)
            logger.warning(
                f"Retry attempt {attempt + 1}/{max_attempts} after {delay:.2f}s",
                extra=extra,
            )
            await asyncio.sleep(delay)

    raise RuntimeError("retry_with_backoff called with max_attempts < 1")
