"""Retry logic with exponential backoff"""

import asyncio
from typing import Awaitable, Callable, Any, Optional, Tuple, Type
from scrapledger.utils.logging import get_logger
from scrapledger.utils.errors import ReportingError

logger = get_logger(__name__)


def compute_backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (0-based), capped at max_delay"""
    return min(base_delay * (2 ** attempt), max_delay)


async def async_retry_with_exponential_backoff(
    func: Callable[[], Awaitable[Any]],
    max_retries: Optional[int] = 5,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None
) -> Any:
    """
    Await a coroutine factory with exponential backoff between failures

    Args:
        func: Zero-argument callable returning an awaitable
        max_retries: Maximum attempts; None retries forever
        base_delay: Base delay in seconds
        max_delay: Max delay cap in seconds
        retry_on: Exception types that trigger a retry; others propagate
        on_retry: Called with (attempt, error, delay) before each sleep

    Returns:
        Result of the first successful attempt

    Raises:
        ReportingError: If all retries exhausted
    """
    attempt = 0
    while True:
        try:
            return await func()

        except retry_on as e:
            if max_retries is not None and attempt >= max_retries - 1:
                logger.error(f"All {max_retries} retry attempts exhausted")
                raise ReportingError(f"Failed after {max_retries} attempts: {e}") from e

            delay = compute_backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
            if on_retry is not None:
                on_retry(attempt + 1, e, delay)
            await asyncio.sleep(delay)
            attempt += 1
