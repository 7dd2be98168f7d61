"""Async helpers shared by the orchestrator, watchers and monitor.

- ``gather_with_timeout``: concurrent fan-out with one overall deadline
- ``bounded``: semaphore wrapper for limiting concurrent D-Bus calls
- ``best_effort_put``: non-blocking send into a bounded queue
- ``cancel_tasks``: cancel and await background tasks on shutdown
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from typing import Any, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncTimeoutError(Exception):
    """Raised when a gathered group of operations exceeds its deadline."""


async def gather_with_timeout(
    *coroutines: Awaitable[Any],
    timeout: Optional[float] = None,
    return_exceptions: bool = False,
) -> list[Any]:
    """Gather multiple coroutines with one shared deadline.

    Work still pending at the deadline is cancelled. Finished work keeps its
    result, so with ``return_exceptions=True`` a slow operation only costs
    its own slot, which holds an AsyncTimeoutError.

    Args:
        *coroutines: Coroutines to gather
        timeout: Timeout in seconds (None waits indefinitely)
        return_exceptions: Whether to return exceptions instead of raising

    Returns:
        List of results (or exceptions) in argument order

    Raises:
        AsyncTimeoutError: If timeout occurs and return_exceptions is False
    """
    tasks = [asyncio.ensure_future(c) for c in coroutines]
    if not tasks:
        return []

    try:
        _done, pending = await asyncio.wait(tasks, timeout=timeout)
    except asyncio.CancelledError:
        await cancel_tasks(tasks)
        raise

    if pending:
        logger.warning("%d of %d operations timed out after %.1fs", len(pending), len(tasks), timeout or 0.0)
        await cancel_tasks(pending)

    results: list[Any] = []
    for task in tasks:
        if task in pending:
            error: BaseException = AsyncTimeoutError(f"Operation timed out after {timeout}s")
        elif task.cancelled():
            error = asyncio.CancelledError()
        elif task.exception() is not None:
            error = task.exception()  # type: ignore[assignment]
        else:
            results.append(task.result())
            continue
        if not return_exceptions:
            raise error
        results.append(error)
    return results


async def bounded(semaphore: asyncio.Semaphore, coroutine: Awaitable[T]) -> T:
    """Await ``coroutine`` while holding ``semaphore``."""
    async with semaphore:
        return await coroutine


def best_effort_put(queue: asyncio.Queue[None], item: None = None) -> bool:
    """Put without blocking; a full queue drops the item.

    Returns:
        True if the item was queued
    """
    try:
        queue.put_nowait(item)
    except asyncio.QueueFull:
        logger.debug("Notification queue full; dropping signal")
        return False
    return True


async def cancel_tasks(tasks: Iterable[asyncio.Task[Any]]) -> None:
    """Cancel tasks and wait for them to finish unwinding."""
    pending = [task for task in tasks if not task.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
