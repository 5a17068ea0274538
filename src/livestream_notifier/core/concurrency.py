"""Deadline and bounded fan-out helpers for outbound requests."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from .errors import Timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def with_timeout(operation: Awaitable[T], timeout_ms: int) -> T:
    """Await an operation with a hard deadline.

    Raises:
        Timeout: the deadline passed first. The operation is cancelled and
            whatever it would have produced is discarded.
    """
    try:
        return await asyncio.wait_for(operation, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise Timeout(timeout_ms) from e


async def run_pool(
    items: Sequence[T],
    limit: int,
    task: Callable[[T], Awaitable[R]],
) -> list[R | None]:
    """Run task over items with at most `limit` in flight.

    Results come back in input order. An item whose task raised gets None.
    """
    if not items:
        return []

    semaphore = asyncio.Semaphore(max(1, limit))

    async def run_one(item: T) -> R:
        async with semaphore:
            return await task(item)

    results = await asyncio.gather(*(run_one(item) for item in items), return_exceptions=True)

    final_results: list[R | None] = []
    for item, result in zip(items, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.error(f"Pool task failed for {item!r}: {result}")
            final_results.append(None)
        else:
            final_results.append(result)
    return final_results
