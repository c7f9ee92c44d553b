"""
Cooperative batch-and-delay rate limiting.

The upstream APIs (Consumet, AniList) have per-minute request limits. Scheduled
jobs stay under them by processing a small batch of items immediately and then
pausing before the next batch:

    async for anime in throttled(animes, batch_size=3, delay_seconds=30):
        await check(anime)

The pause suspends only the job iterating, never the rest of the worker.
This is a single-pass limiter, not a token bucket.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def throttled(
    items: Iterable[T],
    batch_size: int,
    delay_seconds: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AsyncIterator[T]:
    """
    Yield items in batches, sleeping between batches.

    The first ``batch_size`` items are yielded without waiting; before item
    ``batch_size + 1`` (and every ``batch_size`` items after that) the
    iterator sleeps ``delay_seconds``. No sleep happens after the last item.

    Args:
        items: Items to iterate over
        batch_size: Items processed per batch (values < 1 disable throttling)
        delay_seconds: Pause between batches
        sleep: Awaitable sleep function (injectable for tests)
    """
    processed = 0
    for item in items:
        if batch_size > 0 and processed == batch_size:
            logger.debug(f"Batch of {batch_size} done, sleeping {delay_seconds}s")
            await sleep(delay_seconds)
            processed = 0

        yield item
        processed += 1
