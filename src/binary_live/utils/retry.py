"""Backoff policy for REST calls, driven by ``RetryConfig``."""

import asyncio
import logging
import random
from functools import wraps
from typing import Awaitable, Callable, Iterator, Tuple, Type, TypeVar

from ..config.settings import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar('T')

JITTER_FRACTION = 0.25


def backoff_delays(config: RetryConfig) -> Iterator[float]:
    """Sleeps between attempts; one fewer than ``config.max_attempts``."""
    delay = config.initial_backoff_seconds

    for _ in range(config.max_attempts - 1):
        if config.jitter:
            delay_spread = delay * JITTER_FRACTION
            yield min(delay + random.uniform(-delay_spread, delay_spread), config.max_backoff_seconds)
        else:
            yield min(delay, config.max_backoff_seconds)
        delay *= config.backoff_multiplier


async def call_with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    description: str = "call",
) -> T:
    """
    Await ``func()`` until it succeeds or the attempts in ``config`` run out.

    Only exceptions listed in ``retry_on`` are retried; anything else, and
    the last failure, propagates.
    """
    if config.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    delays = backoff_delays(config)
    attempt = 0

    while True:
        attempt += 1
        try:
            return await func()
        except retry_on as e:
            delay = next(delays, None)
            if delay is None:
                logger.error(f"{description} failed after {attempt} attempts: {e}")
                raise

            logger.warning(
                f"{description} attempt {attempt}/{config.max_attempts} failed: {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await asyncio.sleep(delay)


def retrying(*retry_on: Type[BaseException]):
    """Method decorator retrying with the owner's ``retry_config``."""
    def decorator(method):
        @wraps(method)
        async def wrapper(self, *args, **kwargs):
            return await call_with_retry(
                lambda: method(self, *args, **kwargs),
                self.retry_config,
                retry_on or (Exception,),
                description=method.__name__,
            )
        return wrapper
    return decorator
