"""Retry helper for provider calls."""

import asyncio
import random
from typing import Awaitable, Callable, Collection, TypeVar

from ..errors import RetryError
from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RETRYABLE_STATUSES = (408, 429, 500, 502, 503, 504)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: int = 1000,
    max_delay: int = 10000,
    backoff_factor: float = 2,
    retryable_statuses: Collection[int] = RETRYABLE_STATUSES,
    on_retry: Callable[[int, Exception, int], None] | None = None,
) -> T:
    """
    Call ``fn`` until it succeeds or ``max_attempts`` is used up.

    Errors carrying a ``status`` outside ``retryable_statuses`` are raised
    immediately; errors without a status are treated as retryable. Delays
    (ms) grow by ``backoff_factor`` with +/-20% jitter, capped at ``max_delay``.

    Raises:
        RetryError: when every attempt failed with a retryable error.
    """
    last_error: Exception | None = None

    for attempt in range(max_attempts):
        try:
            return await fn()
        except Exception as e:
            last_error = e
            status = getattr(e, "status", None)
            if status and status not in retryable_statuses:
                raise

            if attempt == max_attempts - 1:
                break

            base_delay = initial_delay * backoff_factor**attempt
            jitter = base_delay * 0.2 * (random.random() * 2 - 1)
            delay = int(min(base_delay + jitter, max_delay))

            if on_retry:
                on_retry(attempt + 1, e, delay)
            logger.warning("Attempt %d/%d failed (%s), retrying in %dms", attempt + 1, max_attempts, e, delay)
            await asyncio.sleep(delay / 1000)

    raise RetryError(f"Failed after {max_attempts} attempts", max_attempts, last_error)
