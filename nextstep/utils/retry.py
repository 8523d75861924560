"""Retry helper providing exponential backoff for remote store operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryConfig:
    def __init__(self, *, attempts: int = 3, backoff_seconds: float = 1.0) -> None:
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds

    def delay_before(self, attempt: int) -> float:
        """Delay preceding ``attempt`` (1-based); the first attempt runs immediately."""
        if attempt <= 1:
            return 0.0
        return self.backoff_seconds * (2 ** (attempt - 2))


@dataclass(slots=True)
class RetryResult(Generic[T]):
    """Tagged outcome of :func:`retry_operation`."""

    success: bool
    result: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0


async def retry_operation(
    operation: Callable[[], Awaitable[T]],
    retry_config: RetryConfig | None = None,
) -> RetryResult[T]:
    """
    Run ``operation`` until it succeeds or the attempt budget is spent.

    Waits ``backoff * 2**(n-1)`` before the n-th retry. Errors never escape the
    helper; the last one is carried on the returned result instead.
    """
    config = retry_config or RetryConfig()
    last_exception: BaseException | None = None

    for attempt in range(1, config.attempts + 1):
        delay = config.delay_before(attempt)
        if delay > 0:
            logger.debug("Waiting %.2fs before retry attempt %s", delay, attempt)
            await asyncio.sleep(delay)
        try:
            result = await operation()
        except Exception as exc:
            logger.warning(
                "Operation failed on attempt %s of %s: %s",
                attempt,
                config.attempts,
                exc,
            )
            last_exception = exc
            continue
        return RetryResult(success=True, result=result, attempts=attempt)

    logger.error("All %s operation attempts failed", config.attempts)
    return RetryResult(success=False, error=last_exception, attempts=config.attempts)


__all__ = ["RetryConfig", "RetryResult", "retry_operation"]
