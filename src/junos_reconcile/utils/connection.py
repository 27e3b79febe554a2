"""Connection retry utilities."""
import logging
from typing import Any, Awaitable, Callable, Optional

from tenacity import (
    AsyncRetrying,
    stop_after_attempt,
    wait_incrementing,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)

MIN_RETRIES = 1
MAX_RETRIES = 10

# Common network exceptions to retry on
RETRYABLE_EXCEPTIONS = (
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
    OSError,
    EOFError,
)


def clamp_retries(retries: int) -> int:
    """Clamp a retry count to [MIN_RETRIES, MAX_RETRIES]."""
    return max(MIN_RETRIES, min(MAX_RETRIES, int(retries)))


def connect_retrying(
    attempts: int,
    step: float = 1,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
) -> AsyncRetrying:
    """Build a retrying controller with linear backoff.

    The n-th failed attempt waits ``n * step`` seconds before the next one.

    Args:
        attempts: Maximum number of attempts, clamped to [1, 10]
        step: Backoff step in seconds
        exceptions: Tuple of exception types to retry on
        sleep: Coroutine used for the backoff wait (asyncio.sleep by default)

    Usage::

        async for attempt in connect_retrying(3):
            with attempt:
                await link.open()
    """
    options = {"sleep": sleep} if sleep is not None else {}
    return AsyncRetrying(
        stop=stop_after_attempt(clamp_retries(attempts)),
        wait=wait_incrementing(start=step, increment=step),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
        **options,
    )
