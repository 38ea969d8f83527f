"""Embed-and-persist for units, with a per-run vector capability probe."""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TypeVar

from script_review.config import EmbeddingConfig
from script_review.errors import (
    InvalidArgumentError,
    PayloadTooLargeError,
    ReviewError,
)
from script_review.ingest.embedder import Embedder, classify_provider_error
from script_review.obs.logging import get_logger
from script_review.retrieval.unit_store import UnitStore
from script_review.types import SourceKind, TextChunk, Unit

LOGGER = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class VectorCapability:
    """Result of one capability probe; read-only for the rest of the run."""

    native_vectors: bool


@dataclass(slots=True)
class BatchEmbedding:
    vectors: list[list[float]]
    degraded: list[int] = field(default_factory=list)


async def probe_vector_capability(unit_store: UnitStore) -> VectorCapability:
    """Probe the store once per run; a failing probe counts as "no native vectors"."""
    try:
        native = await unit_store.probe_vector_support()
    except Exception as exc:
        LOGGER.warning("Vector capability probe failed, treating vectors as unavailable: %s", exc)
        native = False
    return VectorCapability(native_vectors=native)


class EmbeddingStore:
    """Computes a vector per unit and persists unit plus vector."""

    def __init__(
        self,
        embedder: Embedder,
        unit_store: UnitStore,
        config: EmbeddingConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.unit_store = unit_store
        self.config = config or EmbeddingConfig()

    async def probe_capability(self) -> VectorCapability:
        return await probe_vector_capability(self.unit_store)

    def validate_text(self, text: str) -> None:
        if not isinstance(text, str) or not text.strip():
            raise InvalidArgumentError("Text chunk cannot be empty")
        if len(text) > self.config.max_unit_chars:
            raise PayloadTooLargeError("Chunk", len(text), self.config.max_unit_chars)

    async def embed_and_store(
        self,
        parent_id: str,
        unit_index: int,
        text: str,
        *,
        source_kind: SourceKind,
        capability: VectorCapability,
        section: str | None = None,
        line_start: int | None = None,
        line_end: int | None = None,
    ) -> str:
        """Embed one unit and persist it; every failure propagates classified."""
        if not parent_id:
            raise InvalidArgumentError("Invalid parent id")
        if unit_index < 0:
            raise InvalidArgumentError("Invalid unit index")
        self.validate_text(text)

        vector = await self._embed_one(text)
        unit = Unit(
            id=str(uuid.uuid4()),
            parent_id=parent_id,
            source_kind=source_kind,
            unit_index=unit_index,
            text=text,
            vector=vector,
            section=section,
            line_start=line_start,
            line_end=line_end,
        )
        await self.unit_store.insert_unit(unit, native_vector=capability.native_vectors)
        return unit.id

    async def embed_and_store_batch(
        self,
        parent_id: str,
        chunks: list[TextChunk],
        *,
        source_kind: SourceKind,
        capability: VectorCapability,
    ) -> list[str]:
        """Embed many units through the batch path and persist them in order."""
        batch = await self.generate_embeddings([chunk.text for chunk in chunks])
        unit_ids: list[str] = []
        for chunk, vector in zip(chunks, batch.vectors, strict=True):
            unit = Unit(
                id=str(uuid.uuid4()),
                parent_id=parent_id,
                source_kind=source_kind,
                unit_index=chunk.index,
                text=chunk.text[: self.config.max_unit_chars],
                vector=vector,
                section=chunk.section,
                line_start=chunk.line_start,
                line_end=chunk.line_end,
            )
            await self.unit_store.insert_unit(unit, native_vector=capability.native_vectors)
            unit_ids.append(unit.id)
        return unit_ids

    async def generate_embeddings(self, texts: list[str]) -> BatchEmbedding:
        """Embed `texts` in provider-sized batches.

        Over-length texts are truncated and items that still fail get a zero
        vector; both are logged as degraded results. If nothing at all could
        be embedded the last provider error is raised.
        """
        limit = self.config.max_unit_chars
        prepared: list[str] = []
        for position, text in enumerate(texts):
            if len(text) > limit:
                LOGGER.warning(
                    "Truncating text %d from %d to %d chars for embedding", position, len(text), limit
                )
                text = text[:limit]
            prepared.append(text)

        vectors: list[list[float] | None] = []
        last_error: ReviewError | None = None
        for offset in range(0, len(prepared), self.config.batch_size):
            window = prepared[offset : offset + self.config.batch_size]
            try:
                vectors.extend(await self._call(self.embedder.embed_batch(window)))
                continue
            except ReviewError as exc:
                LOGGER.warning("Batch embedding failed, retrying items individually: %s", exc)
                last_error = exc
            for text in window:
                try:
                    vectors.append(await self._embed_one(text))
                except ReviewError as exc:
                    last_error = exc
                    vectors.append(None)

        dimension = next((len(vector) for vector in vectors if vector is not None), None)
        if dimension is None:
            if last_error is not None:
                raise last_error
            return BatchEmbedding(vectors=[])

        result = BatchEmbedding(vectors=[])
        for position, vector in enumerate(vectors):
            if vector is None:
                result.degraded.append(position)
                vector = [0.0] * dimension
            result.vectors.append(vector)
        if result.degraded:
            LOGGER.warning(
                "Substituted zero vectors for %d of %d texts", len(result.degraded), len(texts)
            )
        return result

    async def _embed_one(self, text: str) -> list[float]:
        return await self._call(self.embedder.embed(text))

    async def _call(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.timeout_seconds)
        except ReviewError:
            raise
        except Exception as exc:
            raise classify_provider_error(exc) from exc
