"""Admission-controlled fan-out for provider calls."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import TypeVar

from script_review.errors import UpstreamError
from script_review.obs.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_in_batches(
    items: Sequence[T],
    async_fn: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = 3,
    pause_seconds: float = 0.0,
    desc: str | None = None,
) -> list[R | BaseException]:
    """Apply `async_fn` to every item, `batch_size` at a time.

    Each batch is a fan-out followed by a fan-in barrier; a short pause
    between batches eases provider rate limits. Failures are returned in
    place of results, in input order, so the caller decides the policy.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    outcomes: list[R | BaseException] = []
    total = len(items)
    for offset in range(0, total, batch_size):
        batch = items[offset : offset + batch_size]
        results = await asyncio.gather(
            *(async_fn(item) for item in batch), return_exceptions=True
        )
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                raise result
        outcomes.extend(results)

        done = offset + len(batch)
        if desc:
            LOGGER.info("%s: %d/%d", desc, done, total)
        if pause_seconds > 0 and done < total:
            await asyncio.sleep(pause_seconds)
    return outcomes


async def with_deadline(awaitable: Awaitable[R], seconds: float, what: str) -> R:
    """Await with a deadline; a timeout surfaces as an upstream failure."""
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise UpstreamError(f"{what} timed out after {seconds:g}s", exc) from exc


async def gather_or_cancel(awaitables: Iterable[Awaitable[R]]) -> list[R]:
    """Run `awaitables` concurrently and return results in order.

    The first failure cancels every unfinished sibling, waits for the
    cancellations to settle, then re-raises that first failure.
    """
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            LOGGER.info("Cancelling %d unfinished tasks after a failure", len(pending))
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
