import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


def _next_sleep(delay: float) -> float:
    # Add up to 25% jitter
    return delay + random.uniform(0, delay * 0.25)


def retry_call(
    func: Callable[..., T],
    *args,
    attempts: int = 3,
    initial_delay_s: float = 0.5,
    backoff_factor: float = 2.0,
    is_retryable: Callable[[Exception], bool] = lambda e: False,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> T:
    """
    Call func with exponential backoff and jitter for errors that
    is_retryable() accepts. Anything else is re-raised immediately.
    """
    delay = initial_delay_s
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if attempt >= attempts or not is_retryable(e):
                raise
            sleep_time = _next_sleep(delay)
            log.warning(
                f"{getattr(func, '__name__', 'call')} failed ({e}). Retrying in {sleep_time:.2f}s... "
                f"(Attempt {attempt}/{attempts})"
            )
            sleep(sleep_time)
            delay *= backoff_factor
            attempt += 1


async def async_retry_call(
    func: Callable[..., Awaitable[T]],
    *args,
    attempts: int = 2,
    initial_delay_s: float = 0.2,
    backoff_factor: float = 2.0,
    is_retryable: Callable[[Exception], bool] = lambda e: True,
    **kwargs,
) -> T:
    """Coroutine flavour of retry_call, used for database writes."""
    delay = initial_delay_s
    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if attempt >= attempts or not is_retryable(e):
                raise
            sleep_time = _next_sleep(delay)
            log.warning(
                f"{getattr(func, '__name__', 'call')} failed ({e}). Retrying in {sleep_time:.2f}s... "
                f"(Attempt {attempt}/{attempts})"
            )
            await asyncio.sleep(sleep_time)
            delay *= backoff_factor
            attempt += 1
