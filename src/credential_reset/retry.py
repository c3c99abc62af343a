"""Bounded exponential-backoff retries and per-call deadlines."""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from .exceptions import CredentialResetError, DeadlineExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff schedule for retryable infrastructure errors.

    Attributes:
        max_attempts: Attempts in total, the first one included.
        base_delay: Delay before the second attempt, in seconds; doubles
            for every attempt after that.
        max_delay: Ceiling for any single delay.
        jitter: Scale each delay by a random factor in [0.5, 1.5] so that
            replicas retrying the same outage spread out.
    """

    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if min(self.base_delay, self.max_delay) < 0:
            raise ValueError("delays must be >= 0")
        if self.base_delay > self.max_delay:
            raise ValueError("base_delay cannot exceed max_delay")

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_attempts=1, base_delay=0.0, max_delay=0.0, jitter=False)

    def should_retry(self, attempt: int) -> bool:
        """Whether ``attempt`` (1-based) may be followed by another."""
        return 0 < attempt < self.max_attempts

    def delay_for_attempt(self, attempt: int) -> float:
        if attempt < 1:
            return 0.0
        delay = min(self.base_delay * 2 ** (attempt - 1), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)  # noqa: S311
        return delay

    async def wait_before_retry(self, attempt: int) -> None:
        delay = self.delay_for_attempt(attempt)
        if delay > 0:
            await asyncio.sleep(delay)


async def with_deadline(
    awaitable: Awaitable[T],
    timeout: float | None,
    operation: str,
) -> T:
    """Await ``awaitable`` within ``timeout`` seconds.

    Raises:
        DeadlineExceededError: The call overran. Never treat this as success.
    """
    if timeout is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as err:
        raise DeadlineExceededError(operation, timeout) from err


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    operation: str,
    timeout: float | None = None,
    on_retry: Callable[[int, CredentialResetError], None] | None = None,
) -> T:
    """Call ``func`` until it succeeds or fails with a non-retryable error.

    Only ``CredentialResetError`` subclasses flagged ``retryable`` are
    retried; anything else propagates immediately. Each attempt gets its
    own ``timeout``.

    Returns:
        The first successful result.

    Raises:
        The last error once ``policy`` has no attempts left.
    """
    attempt = 1
    while True:
        try:
            return await with_deadline(func(), timeout, operation)
        except CredentialResetError as e:
            if not e.retryable or not policy.should_retry(attempt):
                raise
            logger.warning(
                "%s failed (attempt %d/%d): %s",
                operation,
                attempt,
                policy.max_attempts,
                type(e).__name__,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await policy.wait_before_retry(attempt)
            attempt += 1


__all__: list[str] = ["RetryPolicy", "with_deadline", "call_with_retry"]
