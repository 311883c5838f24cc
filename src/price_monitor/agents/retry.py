"""Exponential backoff with jitter for calls to the planning service."""

import asyncio
import functools
import logging
import random
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from ..exceptions import PlanningServiceError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Rate limited, service unavailable
RETRYABLE_STATUS_CODES = frozenset({429, 503})


def is_retryable_status(error: BaseException) -> bool:
    return isinstance(error, PlanningServiceError) and error.status_code in RETRYABLE_STATUS_CODES


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Delay before retry number `attempt` (0-based): base * 2^attempt plus up to one second of jitter."""
    return base_delay * (2**attempt) + random.random()


def retry_on_status(
    retryable: Callable[[BaseException], bool] = is_retryable_status,
    max_retries: int = 5,
    base_delay: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Retry an async call while `retryable(error)` holds, up to `max_retries` extra attempts.

    Non-retryable errors and the error from the last attempt propagate unchanged.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not retryable(e) or attempt >= max_retries:
                        raise
                    delay = backoff_delay(attempt, base_delay)
                    attempt += 1
                    logger.warning(f"{func.__name__} failed ({e}); retry {attempt}/{max_retries} in {delay:.1f}s")
                    await sleep(delay)

        return wrapper

    return decorator
