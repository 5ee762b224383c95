"""Exponential backoff with jitter for Bot API calls."""

import asyncio
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from common.constants import (
    RETRY_MAX_ATTEMPTS,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_DELAY_SECONDS,
    RETRY_BACKOFF_MULTIPLIER,
    RETRY_JITTER_FRACTION,
)
from common.exceptions import RateLimitError, RetryExhaustedError
from common.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff.

    With the defaults a persistently failing call is attempted 6 times,
    waiting 1s, 2s, 4s, 8s and 10s (before jitter) between attempts.
    """
    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY_SECONDS
    max_delay: float = RETRY_MAX_DELAY_SECONDS
    multiplier: float = RETRY_BACKOFF_MULTIPLIER
    jitter: float = RETRY_JITTER_FRACTION

    def base_delay_for(self, attempt: int) -> float:
        """Un-jittered wait after the given (1-based) failed attempt."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def delay_for(
        self,
        attempt: int,
        retry_after: Optional[float] = None,
        rng: Callable[[], float] = random.random
    ) -> float:
        """
        Wait before the next attempt, jitter and retry-after hint applied.

        Jitter spreads the delay uniformly over +/- ``jitter`` of its value so
        concurrent callers do not retry in lockstep. A retry-after hint from
        the backend is a lower bound.
        """
        delay = self.base_delay_for(attempt)
        delay += delay * self.jitter * (2 * rng() - 1)
        delay = max(delay, 0.0)
        if retry_after is not None:
            delay = max(delay, float(retry_after))
        return delay


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_retryable(error: Exception) -> bool:
    """Whether another attempt may succeed after this error."""
    return bool(getattr(error, "retryable", False))


async def retry_with_backoff(
    operation: Callable[..., Awaitable[Any]],
    *args,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    target: str = "operation",
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs
) -> Any:
    """
    Run an async operation, retrying retryable failures with backoff.

    Args:
        operation: Async callable to run
        policy: Attempt cap and delay schedule
        target: Short description used in log lines and errors
        sleep: Awaitable sleep, injectable for tests
        *args, **kwargs: Arguments passed to operation

    Returns:
        Result of the first successful attempt

    Raises:
        The original error when it is not retryable
        RetryExhaustedError: If every attempt failed with a retryable error
    """
    last_error: Optional[Exception] = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await operation(*args, **kwargs)
            logger.info(f"Attempt {attempt}/{policy.max_attempts} target={target} outcome=success")
            return result
        except Exception as e:
            if not is_retryable(e):
                logger.warning(
                    f"Attempt {attempt}/{policy.max_attempts} target={target} "
                    f"outcome=fatal error={type(e).__name__}: {e}"
                )
                raise

            last_error = e

            if attempt == policy.max_attempts:
                logger.error(
                    f"Attempt {attempt}/{policy.max_attempts} target={target} "
                    f"outcome=exhausted error={type(e).__name__}: {e}"
                )
                break

            retry_after = e.retry_after if isinstance(e, RateLimitError) else None
            delay = policy.delay_for(attempt, retry_after=retry_after)
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} target={target} "
                f"outcome=retry error={type(e).__name__}: {e}, retrying in {delay:.2f}s"
            )
            await sleep(delay)

    raise RetryExhaustedError(target, policy.max_attempts, last_error)
