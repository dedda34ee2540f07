"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Any, Optional, Callable, Awaitable

from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 1.0,
                 max_delay: float = 60.0,
                 exponential_base: float = 2.0,
                 jitter: bool = True,
                 backoff_strategy: str = "exponential"):
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


async def call_with_retry(func: Callable[[], Awaitable[Any]],
                          *,
                          config: RetryConfig,
                          exceptions: tuple = (Exception,),
                          give_up_on: tuple = (),
                          timeout: Optional[float] = None,
                          name: Optional[str] = None) -> Any:
    """
    Await ``func()`` until it succeeds or ``config.max_attempts`` is reached.

    Each attempt is bounded by ``timeout`` seconds when given; a timeout
    counts as a failed attempt. Exceptions listed in ``give_up_on`` are
    re-raised immediately without further attempts.
    """
    label = name or getattr(func, "__name__", "operation")
    logger = get_logger(f"retry.{label}")

    last_exception: Optional[Exception] = None

    for attempt in range(1, config.max_attempts + 1):
        try:
            logger.debug(
                "Retry attempt",
                attempt=attempt,
                max_attempts=config.max_attempts,
                function=label
            )

            if timeout is not None:
                result = await asyncio.wait_for(func(), timeout=timeout)
            else:
                result = await func()

            if attempt > 1:
                logger.info(
                    "Retry succeeded",
                    attempt=attempt,
                    function=label
                )

            return result

        except give_up_on:
            raise
        except (asyncio.TimeoutError, *exceptions) as e:
            last_exception = e

            if attempt == config.max_attempts:
                logger.error(
                    "All retry attempts exhausted",
                    attempt=attempt,
                    max_attempts=config.max_attempts,
                    function=label,
                    error=_describe(e)
                )
                raise RetryError(
                    f"{label} failed after {config.max_attempts} attempts: {_describe(e)}",
                    last_exception=e,
                    attempts=config.max_attempts
                ) from e

            delay = _calculate_delay(attempt, config)

            logger.warning(
                "Retry attempt failed, waiting before next attempt",
                attempt=attempt,
                delay=delay,
                function=label,
                error=_describe(e)
            )

            await asyncio.sleep(delay)

    # Unreachable while max_attempts >= 1
    raise RetryError(
        f"Unexpected error in retry loop for {label}",
        last_exception=last_exception or Exception("Unknown error"),
        attempts=config.max_attempts
    )


def _describe(exc: Exception) -> str:
    """Readable message for exceptions whose str() is empty (timeouts)."""
    return str(exc) or type(exc).__name__


def _calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay between retry attempts."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    elif config.backoff_strategy == "fixed":
        delay = config.base_delay
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)
