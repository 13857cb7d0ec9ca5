"""
Bounded Retry for Store Operations

Store and cache calls are retried a fixed number of times with a fixed delay
to absorb transient failures. Exhaustion is raised as StoreUnavailableError,
never swallowed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from edgelink.core.exceptions import StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    description: str,
    attempts: int = 3,
    delay: float = 0.1,
) -> T:
    """
    Run an async operation, retrying on failure.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt)
        description: Human-readable name for logs (e.g. "put code:abc")
        attempts: Total number of attempts
        delay: Seconds to sleep between attempts

    Raises:
        StoreUnavailableError: If every attempt failed
    """
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            if attempt < attempts:
                logger.warning(
                    f"{description} failed on attempt {attempt}/{attempts}, "
                    f"retrying in {delay}s: {e}"
                )
                await asyncio.sleep(delay)

    logger.error(f"{description} failed after {attempts} attempts: {last_error}")
    raise StoreUnavailableError(description, original_error=last_error)
