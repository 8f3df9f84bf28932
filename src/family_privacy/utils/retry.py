"""
Retry Utilities.

Bounded retry with exponential backoff, used for consent propagation to
external sinks.
"""

import functools
import random
import time
from typing import Any, Callable, Iterator, Optional, Tuple, Type, TypeVar

from family_privacy.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, Exception, float], None]


def backoff_delays(
    retries: int,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> Iterator[float]:
    """Yield the delay before each of ``retries`` retries.

    With jitter each delay is scaled by a random factor in [0.5, 1.5).
    """
    delay = initial_delay
    for _ in range(retries):
        yield delay * (0.5 + random.random()) if jitter else delay
        delay = min(delay * exponential_base, max_delay)


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[RetryCallback] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Create decorator for retrying functions with exponential backoff.

    The wrapped call runs at most ``max_retries + 1`` times; the last
    exception is re-raised.

    Args:
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        exponential_base: Base for exponential backoff calculation
        jitter: Whether to add random jitter to delays
        exceptions: Tuple of exceptions to catch and retry
        sleep: Sleep function, replaceable in tests
        on_retry: Called with (attempt, error, delay) before each retry
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            delays = backoff_delays(
                max_retries, initial_delay, max_delay, exponential_base, jitter
            )
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        logger.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    logger.warning(
                        "retry_scheduled",
                        function=func.__name__,
                        attempt=attempt,
                        error=str(e),
                        delay_seconds=round(delay, 2),
                    )
                    if on_retry is not None:
                        on_retry(attempt, e, delay)
                    sleep(delay)

        return wrapper

    return decorator


__all__ = ["backoff_delays", "retry_with_backoff"]
