"""Retry policy and exponential backoff.

Two flavours share one backoff formula:

- ``RetryPolicy`` + ``backoff`` drive the HTTP client, which retries
  transient responses (429 and 5xx) inside a fixed budget. Its loop is not
  the decorator because the policy belongs to the client instance and a
  ``Retry-After`` header can replace the computed wait.
- ``retry`` is a decorator for arbitrary async callables.

Example:
    from snapwright.infra.retry import retry

    @retry(on=ConnectionError, max_attempts=3, base_delay=1.0)
    async def connect():
        ...
"""

from __future__ import annotations

import asyncio
import functools
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

from loguru import logger

P = ParamSpec("P")
T = TypeVar("T")

RetryPredicate = Callable[[Exception], bool]

TRANSIENT_STATUSES = frozenset({429})


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How the HTTP client retries transient failures.

    Args:
        max_retries: Retries after the first attempt. 0 disables retrying.
        wait_min: Minimum wait between attempts, in seconds.
        wait_max: Maximum wait between attempts, in seconds.
    """

    max_retries: int = 5
    wait_min: float = 1.0
    wait_max: float = 30.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.wait_min < 0 or self.wait_max < 0:
            raise ValueError("retry waits must be >= 0")
        if self.wait_min > self.wait_max:
            raise ValueError("wait_min must not exceed wait_max")


def is_transient(status: int) -> bool:
    """429 and every 5xx are worth retrying."""
    return status in TRANSIENT_STATUSES or 500 <= status < 600


def backoff(
    attempt: int,
    wait_min: float,
    wait_max: float,
    *,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt`` (0-based).

    Grows as ``wait_min * 2**attempt`` with up to 10% jitter and is clamped
    to ``[wait_min, wait_max]``.
    """
    delay = _grow(attempt, wait_min, 2.0, wait_max, jitter=jitter)
    return max(wait_min, min(delay, wait_max))


def _grow(
    attempt: int, base: float, factor: float, cap: float, *, jitter: bool
) -> float:
    delay = min(base * (factor**attempt), cap)
    if jitter:
        delay += random.uniform(0, delay * 0.1)
    return delay


def retry(
    on: type[Exception] | tuple[type[Exception], ...] | RetryPredicate = Exception,
    max_attempts: int = 5,
    base_delay: float = 1.0,
    exponential_base: float = 2.0,
    max_delay: float = 60.0,
    jitter: bool = True,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator that retries async functions with exponential backoff.

    Args:
        on: When to retry. An exception class, a tuple of them, or a
            predicate over the raised exception.
        max_attempts: Maximum number of attempts (including the first one).
        base_delay: Initial delay in seconds before first retry.
        exponential_base: Multiplier for exponential backoff. Use 1.0 for a
            fixed delay.
        max_delay: Maximum delay cap in seconds.
        jitter: Whether to add random jitter (up to 10%).
    """
    if isinstance(on, type) and issubclass(on, Exception):
        should_retry: RetryPredicate = lambda e: isinstance(e, on)
    elif isinstance(on, tuple):
        should_retry = lambda e: isinstance(e, on)
    else:
        should_retry = on

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    has_retries_left = attempt < max_attempts - 1
                    if not (should_retry(e) and has_retries_left):
                        raise

                    delay = _grow(attempt, base_delay, exponential_base, max_delay, jitter=jitter)

                    logger.warning(
                        f"Retry {attempt + 1}/{max_attempts} after {type(e).__name__}: "
                        f"{e}. Waiting {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("retry called with max_attempts < 1")

        return wrapper

    return decorator


__all__ = [
    "RetryPolicy",
    "backoff",
    "is_transient",
    "retry",
]
