"""Retry policy with exponential backoff and jitter for provider calls."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, Field

from ..config import MAX_RETRIES

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")


class RetryPolicy(BaseModel):
    """Bounded retry with exponential backoff.

    Only exceptions whose ``is_retryable`` attribute is true are retried;
    everything else propagates on the first failure.

    Attributes:
        max_retries: Maximum number of retry attempts (0 = no retries).
        backoff_base: Base delay in seconds for exponential backoff.
        backoff_max: Maximum delay in seconds (caps the exponential growth).
        jitter: If ``True``, add random jitter to the backoff delay.
    """

    max_retries: int = Field(default=MAX_RETRIES, ge=0, le=10)
    backoff_base: float = Field(default=0.5, ge=0.0)
    backoff_max: float = Field(default=8.0, ge=0.0)
    jitter: bool = True

    @staticmethod
    def is_retryable(exc: BaseException) -> bool:
        return bool(getattr(exc, "is_retryable", False))

    def compute_delay(self, attempt: int) -> float:
        """Compute the backoff delay for the given attempt (0-indexed).

        Uses ``backoff_base * 2^attempt`` capped at ``backoff_max``; with
        jitter the delay is uniform between 0 and that value.
        """
        delay = min(self.backoff_base * (2 ** attempt), self.backoff_max)
        if self.jitter:
            delay = random.uniform(0, delay)  # noqa: S311
        return delay

    async def execute(
        self,
        fn: Callable[..., Awaitable[_T]],
        *args: Any,
        **kwargs: Any,
    ) -> _T:
        """Execute *fn* with retry logic.

        Raises:
            Exception: The last exception raised by *fn* once retries are
                exhausted, or immediately if it is not retryable.
        """
        attempt = 0
        while True:
            try:
                return await fn(*args, **kwargs)
            except Exception as exc:
                if not self.is_retryable(exc):
                    raise
                if attempt >= self.max_retries:
                    logger.warning("retry_exhausted", attempts=attempt + 1, error=str(exc))
                    raise

                delay = self.compute_delay(attempt)
                logger.info(
                    "retry_scheduled",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=round(delay, 2),
                    error=str(exc),
                )
                await asyncio.sleep(delay)
                attempt += 1
