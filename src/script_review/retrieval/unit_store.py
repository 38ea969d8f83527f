"""Unit store interface and in-memory adapter."""

from __future__ import annotations

import json
from collections.abc import Collection
from dataclasses import dataclass, replace
from math import sqrt
from typing import Protocol

from script_review.errors import InvalidArgumentError
from script_review.retrieval.lexical import LexicalHit, LexicalIndex, unit_metadata
from script_review.types import SearchResult, SourceKind, Unit


class UnitStore(Protocol):
    """Persistence and search contract for units."""

    async def probe_vector_support(self) -> bool:
        """Report whether native vector columns are available."""

    async def delete_units(self, parent_id: str) -> int:
        """Delete every unit owned by `parent_id`; return the count removed."""

    async def insert_unit(self, unit: Unit, *, native_vector: bool) -> None:
        """Persist one unit, as a native vector or a serialized blob."""

    async def list_units(self, parent_id: str) -> list[Unit]:
        """Return a parent's units ordered by unit index, vectors decoded."""

    async def vector_search(
        self,
        query_vector: list[float],
        k: int,
        *,
        source_kind: SourceKind,
        parent_ids: Collection[str] | None = None,
    ) -> list[SearchResult]:
        """Search by cosine similarity; higher score is more similar."""

    async def lexical_search(
        self,
        query: str,
        k: int,
        *,
        source_kind: SourceKind,
        parent_ids: Collection[str] | None = None,
    ) -> list[LexicalHit]:
        """Search by full-text rank; higher rank is more relevant."""


@dataclass(slots=True)
class _StoredUnit:
    unit: Unit
    vector_blob: bytes | None = None


def serialize_vector(vector: list[float]) -> bytes:
    return json.dumps(vector).encode("utf-8")


def deserialize_vector(blob: bytes) -> list[float]:
    return [float(value) for value in json.loads(blob.decode("utf-8"))]


class InMemoryUnitStore:
    """Deterministic unit store used for tests and local runs.

    `vector_enabled` models whether the backend has a native vector type.
    Without it, vectors are kept as opaque serialized blobs and decoded on
    read, and `probe_vector_support` reports False so retrieval degrades to
    lexical search.
    """

    def __init__(self, *, vector_enabled: bool = True) -> None:
        self.vector_enabled = vector_enabled
        self._units: dict[str, dict[int, _StoredUnit]] = {}
        self._lexical = LexicalIndex()
        self.probe_calls = 0

    async def probe_vector_support(self) -> bool:
        self.probe_calls += 1
        return self.vector_enabled

    async def delete_units(self, parent_id: str) -> int:
        removed = self._units.pop(parent_id, {})
        self._lexical.remove_parent(parent_id)
        return len(removed)

    async def insert_unit(self, unit: Unit, *, native_vector: bool) -> None:
        owned = self._units.setdefault(unit.parent_id, {})
        if unit.unit_index in owned:
            raise InvalidArgumentError(
                f"Unit {unit.unit_index} already exists for parent {unit.parent_id}"
            )

        if unit.vector is not None and not (native_vector and self.vector_enabled):
            stored = _StoredUnit(
                unit=replace(unit, vector=None),
                vector_blob=serialize_vector(unit.vector),
            )
        else:
            stored = _StoredUnit(unit=unit)
        owned[unit.unit_index] = stored
        self._lexical.add(stored.unit)

    async def list_units(self, parent_id: str) -> list[Unit]:
        owned = self._units.get(parent_id, {})
        return [self._materialize(owned[index]) for index in sorted(owned)]

    async def count_units(self, parent_id: str) -> int:
        return len(self._units.get(parent_id, {}))

    async def vector_search(
        self,
        query_vector: list[float],
        k: int,
        *,
        source_kind: SourceKind,
        parent_ids: Collection[str] | None = None,
    ) -> list[SearchResult]:
        scored: list[SearchResult] = []
        for parent_id, owned in self._units.items():
            if parent_ids is not None and parent_id not in parent_ids:
                continue
            for index in sorted(owned):
                unit = self._materialize(owned[index])
                if unit.source_kind != source_kind or unit.vector is None:
                    continue
                scored.append(
                    SearchResult(
                        id=unit.id,
                        text=unit.text,
                        score=_cosine_similarity(query_vector, unit.vector),
                        metadata=unit_metadata(unit),
                        origin="vector",
                    )
                )
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:k]

    async def lexical_search(
        self,
        query: str,
        k: int,
        *,
        source_kind: SourceKind,
        parent_ids: Collection[str] | None = None,
    ) -> list[LexicalHit]:
        hits = self._lexical.search(query, k, source_kind=source_kind, parent_ids=parent_ids)
        return [LexicalHit(unit=self._decode(hit.unit), rank=hit.rank) for hit in hits]

    def _materialize(self, stored: _StoredUnit) -> Unit:
        if stored.vector_blob is None:
            return stored.unit
        return replace(stored.unit, vector=deserialize_vector(stored.vector_blob))

    def _decode(self, unit: Unit) -> Unit:
        owned = self._units.get(unit.parent_id, {})
        stored = owned.get(unit.unit_index)
        return self._materialize(stored) if stored is not None else unit


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
