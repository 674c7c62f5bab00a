"""Bounded retry with backoff for calls to external services.

One policy object per call site: classifier, reply generator and the
report webhook each get their own attempt bound and delay.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryError(Exception):
    """All attempts failed. `last_error` holds the final failure."""

    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


@dataclass
class RetryPolicy:
    """Retry an async operation up to `max_attempts` times.

    Delay before attempt n+1 is `base_delay * n` (linear) or
    `base_delay * 2 ** (n - 1)` (exponential), capped at `max_delay`.
    """

    max_attempts: int = 3
    base_delay: float = 0.5
    backoff: str = "linear"
    max_delay: float = 5.0

    def delay_for(self, attempt: int) -> float:
        if self.backoff == "exponential":
            delay = self.base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * attempt
        return min(delay, self.max_delay)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "operation",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> T:
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e
                logger.warning("%s attempt %d/%d failed: %s", label, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await sleep(self.delay_for(attempt))
        raise RetryError(label, self.max_attempts, last_error)


CLASSIFIER_RETRY = RetryPolicy(max_attempts=3, base_delay=0.5)
GENERATOR_RETRY = RetryPolicy(max_attempts=3, base_delay=0.4)
DISPATCH_RETRY = RetryPolicy(max_attempts=3, base_delay=0.6)
