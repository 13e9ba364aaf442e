"""
Retry and polling helpers for resilient upstream calls.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
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
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.backoff_strategy = backoff_strategy

    @classmethod
    def fixed(cls, interval: float, max_attempts: int) -> "RetryConfig":
        """Fixed interval, no jitter: the confirmation polling policy."""
        return cls(
            max_attempts=max_attempts,
            base_delay=interval,
            max_delay=interval,
            jitter=False,
            backoff_strategy="fixed"
        )


class RetryError(Exception):
    """Exception raised when all retry attempts are exhausted."""
    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def retry_on_exception(exceptions: tuple = (Exception,),
                       config: Optional[RetryConfig] = None) -> Callable:
    """Decorator for retrying async functions on exceptions."""

    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            logger = get_logger(f"retry.{func.__name__}")

            for attempt in range(1, config.max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)

                    if attempt > 1:
                        logger.info(
                            "Retry succeeded",
                            attempt=attempt,
                            function=func.__name__
                        )

                    return result

                except exceptions as e:
                    if attempt == config.max_attempts:
                        logger.error(
                            "All retry attempts exhausted",
                            attempt=attempt,
                            max_attempts=config.max_attempts,
                            function=func.__name__,
                            error=str(e)
                        )
                        raise RetryError(
                            f"Function {func.__name__} failed after {config.max_attempts} attempts",
                            last_exception=e,
                            attempts=config.max_attempts
                        ) from e

                    delay = calculate_delay(attempt, config)

                    logger.warning(
                        "Retry attempt failed, waiting before next attempt",
                        attempt=attempt,
                        delay=delay,
                        function=func.__name__,
                        error=str(e)
                    )

                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay between retry attempts."""
    if config.backoff_strategy == "exponential":
        delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    elif config.backoff_strategy == "linear":
        delay = config.base_delay * attempt
    else:
        delay = config.base_delay

    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


@dataclass
class PollOutcome:
    """Result of a bounded confirmation poll."""

    confirmed: bool
    attempts: int
    waited: float


async def poll_until(check: Callable[[], Awaitable[bool]],
                     config: RetryConfig,
                     *,
                     name: str,
                     retry_on: tuple = (Exception,),
                     sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                     on_attempt: Optional[Callable[[int, str], None]] = None) -> PollOutcome:
    """Call ``check`` until it returns True or the attempt budget runs out.

    The first attempt runs immediately and every later one waits one delay
    first. An attempt that raises one of ``retry_on`` counts the same as an
    unconfirmed one. Exhaustion is reported through the outcome, not raised.
    """
    logger = get_logger(f"retry.poll.{name}")
    waited = 0.0

    for attempt in range(1, config.max_attempts + 1):
        if attempt > 1:
            delay = calculate_delay(attempt, config)
            await sleep(delay)
            waited += delay

        try:
            confirmed = await check()
        except retry_on as e:
            logger.warning("Poll attempt failed", attempt=attempt, error=str(e))
            if on_attempt:
                on_attempt(attempt, "error")
            continue

        if confirmed:
            if on_attempt:
                on_attempt(attempt, "confirmed")
            logger.info("Poll confirmed", attempt=attempt, waited=waited)
            return PollOutcome(confirmed=True, attempts=attempt, waited=waited)

        if on_attempt:
            on_attempt(attempt, "pending")
        logger.debug("Poll not yet confirmed", attempt=attempt, max_attempts=config.max_attempts)

    logger.warning("Poll attempts exhausted", attempts=config.max_attempts, waited=waited)
    return PollOutcome(confirmed=False, attempts=config.max_attempts, waited=waited)
