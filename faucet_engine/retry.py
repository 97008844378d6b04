"""
Retry Policy

Fixed-delay retry used for every chain query that must eventually
succeed (balances, receipts, blocks). ``max_attempts=None`` retries
forever.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from loguru import logger

T = TypeVar('T')


class RetryExhausted(Exception):
    """Raised when a bounded retry policy runs out of attempts"""

    def __init__(self, description: str, attempts: int, last_error: Optional[BaseException]):
        self.description = description
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{description} failed after {attempts} attempts: {last_error}")


class RetryPolicy:
    """
    Fixed backoff retry

    Example:
        policy = RetryPolicy(delay=1.0, description="balance query")
        balance = await policy.call(chain.balance, address)
    """

    def __init__(
        self,
        delay: float = 1.0,
        max_attempts: Optional[int] = None,
        description: str = "chain query",
        retry_on_none: bool = False,
        log_level: str = "INFO",
    ):
        """
        Args:
            delay: Seconds to sleep between attempts
            max_attempts: Give up after this many attempts (None = never)
            description: Used in log messages
            retry_on_none: Treat a None result as "not available yet"
            log_level: Loguru level for retry messages
        """
        self.delay = delay
        self.max_attempts = max_attempts
        self.description = description
        self.retry_on_none = retry_on_none
        self.log_level = log_level

    def with_description(self, description: str) -> 'RetryPolicy':
        return RetryPolicy(
            delay=self.delay,
            max_attempts=self.max_attempts,
            description=description,
            retry_on_none=self.retry_on_none,
            log_level=self.log_level,
        )

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        attempt = 0
        last_error: Optional[BaseException] = None

        while True:
            attempt += 1
            try:
                result = await fn(*args, **kwargs)
                if result is not None or not self.retry_on_none:
                    return result
                logger.log(self.log_level, f"{self.description}: not available yet, retrying...")
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.log(self.log_level, f"{self.description} failed, retrying: {e}")

            if self.max_attempts is not None and attempt >= self.max_attempts:
                raise RetryExhausted(self.description, attempt, last_error)

            await asyncio.sleep(self.delay)
