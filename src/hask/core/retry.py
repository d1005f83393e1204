"""
Retry with exponential backoff for provider calls.

Only the exception types passed in ``retry_on`` are retried; anything else
propagates on the first attempt. The last failure is re-raised unchanged once
the attempts are exhausted.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from .errors import ProviderRateLimited

logger = logging.getLogger("hask.provider")

T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base: float,
    cap: float,
    exc: BaseException | None = None,
) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    A ``Retry-After`` hint carried by a rate-limit error takes precedence
    when it is longer than the computed delay.
    """
    delay = base * (2 ** attempt)
    if isinstance(exc, ProviderRateLimited) and exc.retry_after:
        delay = max(delay, exc.retry_after)
    return min(delay, cap)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    base_delay: float,
    max_delay: float,
    retry_on: Tuple[Type[BaseException], ...],
    description: str = "call",
) -> T:
    attempts = max(1, max_attempts)

    for attempt in range(attempts):
        try:
            return await func()
        except retry_on as exc:
            if attempt >= attempts - 1:
                logger.error(
                    "%s failed after %d attempts: %s",
                    description,
                    attempts,
                    exc,
                )
                raise

            delay = backoff_delay(attempt, base_delay, max_delay, exc)
            logger.warning(
                "Attempt %d/%d of %s failed (%s). Retrying in %.2fs...",
                attempt + 1,
                attempts,
                description,
                type(exc).__name__,
                delay,
            )
            await asyncio.sleep(delay)

    raise AssertionError("unreachable")
