from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

"""Capped exponential backoff for outbound writes.

Delay before attempt n (n >= 2) is ``min(base_delay * 2 ** (n - 2), max_delay)``.
After the last attempt the final exception is re-raised.
"""

__all__ = [
    "RetryExhausted",
    "retry_async",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """All attempts failed; ``__cause__`` holds the last error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


async def retry_async(
    op: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 5.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """Run ``op`` until it succeeds or ``attempts`` is reached.

    Raises:
        RetryExhausted: every attempt raised one of ``retry_on``
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    delay = base_delay
    for attempt in range(1, attempts + 1):
        try:
            return await op()
        except retry_on as e:
            if attempt == attempts:
                logger.error(f"{label} failed after {attempts} attempts: {e}")
                raise RetryExhausted(attempts, e) from e
            wait = min(delay, max_delay)
            logger.warning(f"{label} attempt {attempt}/{attempts} failed: {e}; retrying in {wait}s")
            await sleep(wait)
            delay *= 2
    raise AssertionError("unreachable")  # pragma: no cover
