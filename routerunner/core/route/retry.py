"""
Retry policy for recoverable route errors.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, TypeVar

from ...config import settings
from .errors import RouteExecutionError

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True
    jitter_factor: float = 0.1

    @classmethod
    def from_settings(cls) -> "RetryConfig":
        return cls(
            max_attempts=settings.planning_max_attempts,
            initial_delay_seconds=settings.planning_retry_delay_seconds,
            max_delay_seconds=settings.planning_retry_max_delay_seconds,
        )

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number."""
        delay = min(
            self.initial_delay_seconds * (self.exponential_base ** attempt),
            self.max_delay_seconds,
        )
        if self.jitter:
            jitter_range = delay * self.jitter_factor
            delay += random.uniform(-jitter_range, jitter_range)
        return max(delay, 0)


class RetryStrategy:
    """
    Retries an operation while it fails with a recoverable RouteExecutionError.

    Anything else (including unrecoverable route errors) is raised immediately.
    """

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config or RetryConfig.from_settings()
        self.logger = logger or logging.getLogger(__name__)

    async def execute(self, operation: Callable[[], Coroutine[Any, Any, T]]) -> T:
        for attempt in range(self.config.max_attempts):
            try:
                return await operation()
            except RouteExecutionError as e:
                if not self.should_retry(e, attempt):
                    raise

                delay = self.config.get_delay(attempt)
                self.logger.warning(
                    "Attempt %d/%d failed: %s. Retrying in %.1fs",
                    attempt + 1,
                    self.config.max_attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)

        raise RuntimeError("All retry attempts exhausted")  # pragma: no cover

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if attempt >= self.config.max_attempts - 1:
            return False
        return isinstance(error, RouteExecutionError) and error.recoverable
