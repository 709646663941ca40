"""Structured fan-out/fan-in for concurrent store reads."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def join(*awaitables: Awaitable[Any]) -> list[Any]:
    """Run every awaitable concurrently and return their results in order.

    The caller resumes exactly once, after all of them have settled. If any
    failed, the first failure (in completion order) is raised and the rest
    are logged and dropped.
    """
    tasks = [asyncio.ensure_future(a) for a in awaitables]
    if not tasks:
        return []

    first_error: BaseException | None = None
    try:
        for next_done in asyncio.as_completed(tasks):
            try:
                await next_done
            except Exception as e:
                if first_error is None:
                    first_error = e
                else:
                    logger.debug(f"Dropping sibling failure after first error: {e!r}")
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        raise

    if first_error is not None:
        raise first_error
    return [task.result() for task in tasks]


async def join_each(fn: Callable[[T], Awaitable[Any]], items: Iterable[T]) -> list[Any]:
    """`join` over `fn(item)` for every item."""
    return await join(*(fn(item) for item in items))
