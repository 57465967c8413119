"""Bounded retry with linear backoff.

The delay before attempt *k* (k >= 2) is ``base_delay * k``.  Linear
backoff keeps the worst case short enough for an interactive chat.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from chatlogger.errors import ExhaustedRetries

_logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0  # seconds


def delay_before(attempt: int, base_delay: float) -> float:
    """Seconds to wait before 1-based *attempt* (0 for the first)."""
    if attempt < 2:
        return 0.0
    return base_delay * attempt


async def with_retry(
    attempt_fn: Callable[[int], Awaitable[T]],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    *,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    before_attempt: Callable[[int], None] | None = None,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
) -> T:
    """Run *attempt_fn* until it succeeds or the budget is spent.

    Parameters
    ----------
    attempt_fn:
        Coroutine function receiving the 1-based attempt number.
    max_attempts:
        Total number of attempts, including the first.
    base_delay:
        Linear backoff unit in seconds.
    retry_on:
        Exception types that trigger another attempt.  Anything else
        propagates immediately.
    before_attempt:
        Optional hook run before every attempt (after the delay); it may
        raise to abort the loop.
    sleep:
        Awaitable sleep used between attempts.

    Raises
    ------
    ExhaustedRetries
        When the final attempt fails; ``last_error`` holds its exception.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        delay = delay_before(attempt, base_delay)
        if delay:
            await sleep(delay)
        if before_attempt is not None:
            before_attempt(attempt)
        try:
            return await attempt_fn(attempt)
        except retry_on as e:
            if attempt == max_attempts:
                _logger.warning(
                    "Attempt %d/%d failed, giving up: %s",
                    attempt, max_attempts, e,
                )
                raise ExhaustedRetries(attempt, e) from e
            _logger.warning(
                "Attempt %d/%d failed, retrying in %.1fs: %s",
                attempt, max_attempts,
                delay_before(attempt + 1, base_delay), e,
            )

    # Unreachable: the loop either returns or raises
    raise AssertionError("retry loop exited without a result")
