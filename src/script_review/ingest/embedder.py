"""Embedding provider abstractions and error classification."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from script_review.errors import InvalidArgumentError, ReviewError, UpstreamError

_TOO_LONG_MARKERS = ("length limit exceeded", "too long", "maximum context length", "too many tokens")
_RATE_LIMIT_MARKERS = ("rate limit", "rate_limit", "429", "too many requests")
_QUOTA_MARKERS = ("quota", "insufficient_quota")


class Embedder(ABC):
    """Embedding provider contract used by ingestion and retrieval."""

    @abstractmethod
    async def embed(self, text: str) -> list[float]:
        """Embed one text."""

    @abstractmethod
    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, preserving order."""


class HashingEmbedder(Embedder):
    """Deterministic feature-hashing embedding without external model calls.

    Used for tests and offline runs; production wiring swaps in
    `LangChainEmbedder`.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    async def embed(self, text: str) -> list[float]:
        return self._embed(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapter over any LangChain `Embeddings` implementation.

    Provider exceptions are classified on the way out so callers only ever
    see `ReviewError` subclasses.
    """

    def __init__(self, embeddings: Any) -> None:
        self._embeddings = embeddings

    async def embed(self, text: str) -> list[float]:
        try:
            vector = await self._embeddings.aembed_query(text)
        except ReviewError:
            raise
        except Exception as exc:
            raise classify_provider_error(exc) from exc
        return [float(value) for value in vector]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = await self._embeddings.aembed_documents(texts)
        except ReviewError:
            raise
        except Exception as exc:
            raise classify_provider_error(exc) from exc
        return [[float(value) for value in vector] for vector in vectors]


def classify_provider_error(exc: Exception) -> ReviewError:
    """Map a raw provider failure onto the error taxonomy.

    Too-long input is a client error; rate limit, quota, timeouts and anything
    else are upstream errors.
    """
    if isinstance(exc, ReviewError):
        return exc
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return UpstreamError("Embedding provider timed out", exc)

    message = f"{type(exc).__name__}: {exc}".lower()
    if any(marker in message for marker in _TOO_LONG_MARKERS):
        return InvalidArgumentError(
            "Text content is too long for embedding generation. Please reduce the text size.",
            exc,
        )
    if "ratelimiterror" in message or any(marker in message for marker in _RATE_LIMIT_MARKERS):
        return UpstreamError("Rate limit exceeded. Please try again in a moment.", exc)
    if any(marker in message for marker in _QUOTA_MARKERS):
        return UpstreamError("API quota exceeded. Please try again later.", exc)
    return UpstreamError(f"Embedding provider failed: {exc}", exc)
