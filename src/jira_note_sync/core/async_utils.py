"""Run blocking Jira REST calls from the async sync engine.

All outbound requests share one width limit. The semaphore enforcing it is
created on first use, so library callers that never run the CLI start-up
are bounded too, and it is rebuilt whenever a different event loop picks it
up (each ``asyncio.run`` gets its own loop).
"""

import asyncio
import logging
from typing import Any, Callable, Coroutine, Sequence, TypeVar

from ..constants import DEFAULT_MAX_PARALLEL

T = TypeVar("T")
logger = logging.getLogger(__name__)

_max_parallel = DEFAULT_MAX_PARALLEL
_semaphore: asyncio.Semaphore | None = None
_semaphore_loop: asyncio.AbstractEventLoop | None = None


def init_semaphore(max_parallel: int = DEFAULT_MAX_PARALLEL) -> None:
    """Set the request width limit. The CLI calls this once per run."""
    global _max_parallel, _semaphore, _semaphore_loop
    _max_parallel = max_parallel
    _semaphore = asyncio.Semaphore(max_parallel)
    _semaphore_loop = None
    logger.info("Jira request limit set: max_parallel=%d", max_parallel)


def _current_semaphore() -> asyncio.Semaphore:
    global _semaphore, _semaphore_loop
    loop = asyncio.get_running_loop()
    if _semaphore is None or (
        _semaphore_loop is not None and _semaphore_loop is not loop
    ):
        _semaphore = asyncio.Semaphore(_max_parallel)
        logger.debug("Jira request semaphore created: max_parallel=%d", _max_parallel)
    _semaphore_loop = loop
    return _semaphore


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run ``func`` in a worker thread without taking a request slot.

    For local file I/O, e.g. ``await run_sync(read_file_with_encoding, path)``.
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a blocking Jira call in a worker thread, holding a request slot.

    Example:
        issue = await run_sync_limited(client.fetch_issue, "PROJ-1")
    """
    async with _current_semaphore():
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Coroutine[Any, Any, T]],
) -> list[T]:
    """Await batch coroutines together and return their results in order.

    The bound comes from ``run_sync_limited`` inside each coroutine. The
    first exception propagates, so batch callers catch per item.
    """
    return list(await asyncio.gather(*coros))
