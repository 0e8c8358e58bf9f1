"""Async utilities for running blocking adapter calls from the sync engine."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


def make_semaphore(max_parallel: int) -> asyncio.Semaphore:
    """Create the semaphore bounding concurrent remote calls for one run."""
    if max_parallel < 1:
        raise ValueError(f"max_parallel must be >= 1, got {max_parallel}")
    logger.debug("Remote call semaphore created: max_parallel=%d", max_parallel)
    return asyncio.Semaphore(max_parallel)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        entries = await run_sync(adapter.list_entries)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def run_sync_limited(
    semaphore: asyncio.Semaphore | None,
    func: Callable[..., T],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Run a synchronous function in a thread pool, bounded by *semaphore*.

    Runs unbounded when *semaphore* is ``None``.
    """
    if semaphore is None:
        return await asyncio.to_thread(func, *args, **kwargs)
    async with semaphore:
        return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    coros: Sequence[Awaitable[T]],
) -> list[T]:
    """Run awaitables concurrently and return results in input order.

    Each awaitable should use ``run_sync_limited`` internally.  Exceptions
    propagate from the first failure; callers that need per-item isolation
    catch inside each awaitable.
    """
    return list(await asyncio.gather(*coros))
