"""
Background Task Helpers

Work that must not delay or fail a response (edge cache writes) runs as a
detached asyncio task. Failures are logged and never reach the caller.
"""

import asyncio
import logging
from typing import Coroutine, Set

from starlette.responses import Response

from edgelink.services.edge_cache import ResponseCache
from edgelink.services.retry import with_retry

logger = logging.getLogger(__name__)

# Strong references keep pending tasks from being garbage collected mid-flight
_pending: Set[asyncio.Task] = set()


def spawn_background(coroutine: Coroutine, description: str) -> asyncio.Task:
    """
    Schedule a coroutine detached from the current request.

    Args:
        coroutine: Work to run
        description: Name used when logging a failure
    """
    task = asyncio.create_task(coroutine)
    _pending.add(task)

    def _done(finished: asyncio.Task) -> None:
        _pending.discard(finished)
        if finished.cancelled():
            return
        error = finished.exception()
        if error is not None:
            logger.error(f"Background task '{description}' failed: {error}", exc_info=error)

    task.add_done_callback(_done)
    return task


async def cache_response_background(
    cache: ResponseCache,
    key: str,
    response: Response,
    ttl: int,
    attempts: int = 1,
    delay: float = 0.0,
) -> None:
    """Write a response to the edge cache, with the usual bounded retry."""
    await with_retry(
        lambda: cache.put(key, response, ttl),
        f"cache put {key}",
        attempts=attempts,
        delay=delay,
    )
    logger.debug(f"Cached {key} for {ttl}s")


async def drain_background_tasks() -> None:
    """Wait for in-flight background work (used on shutdown)."""
    loop = asyncio.get_running_loop()
    tasks = [task for task in _pending if task.get_loop() is loop]
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)
