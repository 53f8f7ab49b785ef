"""Retry with exponential backoff for transient database failures."""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from .error_handling import AppError

T = TypeVar("T")


def is_retryable(error: BaseException) -> bool:
    """Default predicate: only typed errors flagged retryable are retried."""
    return isinstance(error, AppError) and error.retryable


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for one invocation."""
    max_attempts: int = 3
    base_delay_ms: int = 500
    backoff_multiplier: float = 2.0
    retryable_check: Callable[[BaseException], bool] = field(
        default=is_retryable, compare=False
    )

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return self.base_delay_ms * self.backoff_multiplier ** (attempt - 1) / 1000


DEFAULT_RETRY_CONFIG = RetryConfig()

# for non-idempotent writes
NO_RETRY = RetryConfig(max_attempts=1, base_delay_ms=0)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig = DEFAULT_RETRY_CONFIG,
) -> T:
    """
    Await `operation`, retrying retryable failures with exponential backoff.

    Args:
        operation: Zero-argument coroutine function
        config: Retry policy

    Returns:
        The operation's result

    Raises:
        The error of the last attempt, once it is non-retryable or the
        attempts are exhausted.
    """
    attempt = 1
    name = getattr(operation, "__name__", "operation")

    while True:
        try:
            return await operation()

        except Exception as e:
            if not config.retryable_check(e):
                raise

            if attempt >= config.max_attempts:
                logger.error(
                    f"{name} failed after {attempt} attempts: {e}"
                )
                raise

            delay = config.delay_for(attempt)
            logger.warning(
                f"{name} failed (attempt {attempt}/{config.max_attempts}), "
                f"retrying in {delay:.2f}s: {e}"
            )

            await asyncio.sleep(delay)
            attempt += 1
