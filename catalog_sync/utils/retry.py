"""
Retry policy value object and a generic async retry helper.

Backoff is computed by the policy and sleeping goes through an injectable
coroutine so tests can use a fake clock.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleeper = Callable[[float], Awaitable[None]]


def linear_backoff(attempt: int, base_delay: float) -> float:
    """attempt x base delay (attempt is 1-based)."""
    return attempt * base_delay


def exponential_backoff(attempt: int, base_delay: float) -> float:
    return base_delay * (2 ** (attempt - 1))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    backoff: Callable[[int, float], float] = field(default=linear_backoff)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number `attempt`."""
        return max(0.0, self.backoff(attempt, self.base_delay))


class RetryExhausted(Exception):
    """Raised when every attempt failed; wraps the last error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


async def with_retry(
    policy: RetryPolicy,
    fn: Callable[[int], Awaitable[T]],
    *,
    retry_on: Sequence[Type[BaseException]] = (Exception,),
    sleep: Optional[Sleeper] = None,
    label: str = "operation",
) -> T:
    """
    Call fn(attempt) until it succeeds or the policy is exhausted.

    Errors not listed in retry_on propagate immediately. After the last
    failed attempt RetryExhausted is raised with the last error attached.
    """
    sleeper = sleep or asyncio.sleep
    last_error: Optional[BaseException] = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await fn(attempt)
        except tuple(retry_on) as exc:
            last_error = exc
            will_retry = attempt < policy.max_attempts
            logger.warning(
                "%s attempt %d/%d failed: %s (will_retry=%s)",
                label, attempt, policy.max_attempts, exc, will_retry,
            )
            if will_retry:
                await sleeper(policy.delay_for(attempt))
    assert last_error is not None
    raise RetryExhausted(policy.max_attempts, last_error)
