"""
Retry Handler
=============
Bounded retries with exponential backoff for transient failures.

The handler is transparent: on exhaustion the last error propagates
unchanged, so callers handle a retried failure exactly like a single one.
"""

import asyncio
import random
from dataclasses import dataclass
from functools import wraps
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from ..errors import CircuitOpenError
from ..metrics import record_retry

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy. Delays are in seconds."""
    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    should_retry: Optional[Callable[[Exception], bool]] = None
    jitter: bool = False

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")


class RetryHandler:
    """
    Stateless retry policy object, safe to share across concurrent calls.

    Example:
        retry = RetryHandler(RetryConfig(max_retries=3, initial_delay=0.5))
        summary = await retry.execute(lambda: provider.analyze(request))
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "operation",
    ):
        self.config = config or RetryConfig()
        self.name = name
        self._sleep = sleep

    def compute_delay(self, attempt_index: int) -> float:
        """Delay before retry number attempt_index + 1 (0-based)."""
        delay = min(
            self.config.initial_delay * (self.config.backoff_multiplier ** attempt_index),
            self.config.max_delay,
        )
        if self.config.jitter:
            delay = min(delay * (0.5 + random.random()), self.config.max_delay)
        return delay

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        should_retry: Optional[Callable[[Exception], bool]] = None,
    ) -> T:
        """
        Run an operation, retrying failures with exponential backoff.

        Args:
            operation: Zero-argument callable returning an awaitable
            should_retry: Per-call predicate, overrides config.should_retry

        Returns:
            The first successful result

        Raises:
            Exception: The last error once attempts are exhausted, or the first
                error the predicate declines to retry
        """
        predicate = should_retry or self.config.should_retry
        max_retries = self.config.max_retries

        for attempt in range(max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                if attempt == max_retries:
                    logger.error(
                        "retry_exhausted",
                        operation=self.name,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise

                if predicate is not None and not predicate(e):
                    logger.debug(
                        "retry_declined",
                        operation=self.name,
                        attempt=attempt + 1,
                        error_type=type(e).__name__,
                    )
                    raise

                delay = self.compute_delay(attempt)
                logger.warning(
                    "retry_scheduled",
                    operation=self.name,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                    error=str(e),
                )
                record_retry(self.name)
                await self._sleep(delay)

        raise AssertionError("unreachable")


def not_circuit_open(error: Exception) -> bool:
    """Retry predicate that stops as soon as a circuit rejects the call."""
    return not isinstance(error, CircuitOpenError)


def with_retry(config: Optional[RetryConfig] = None):
    """
    Decorator for retry with exponential backoff.

    Usage:
        @with_retry(RetryConfig(max_retries=5))
        async def fetch_case_law(citation: str):
            ...
    """
    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        handler = RetryHandler(config, name=func.__name__)

        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await handler.execute(lambda: func(*args, **kwargs))

        return wrapper
    return decorator
