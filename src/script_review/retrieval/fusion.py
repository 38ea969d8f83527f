"""Merging and degradation strategies for hybrid retrieval results."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from script_review.obs.logging import get_logger
from script_review.types import SearchResult

LOGGER = get_logger(__name__)

T = TypeVar("T")


def merge_results(result_lists: Iterable[list[SearchResult]], k: int) -> list[SearchResult]:
    """Concatenate route outputs, dedupe, sort and truncate.

    Dedupe keeps the first occurrence, so callers pass the vector route before
    the lexical route. The sort is stable and scores are compared as they come
    from each route; no renormalisation happens here.
    """
    if k <= 0:
        return []

    seen: set[str] = set()
    merged: list[SearchResult] = []
    for results in result_lists:
        for item in results:
            if item.id in seen:
                continue
            seen.add(item.id)
            merged.append(item)

    merged.sort(key=lambda item: item.score, reverse=True)
    return merged[:k]


async def with_fallback(
    primary: Callable[[], Awaitable[T]],
    fallback: Callable[[], Awaitable[T]],
    *,
    label: str = "primary",
) -> T:
    """Run `primary`; on any failure log a warning and return `fallback()` instead.

    Errors from the fallback itself propagate unchanged.
    """
    try:
        return await primary()
    except Exception as exc:
        LOGGER.warning("%s failed, using fallback: %s", label, exc)
    return await fallback()
