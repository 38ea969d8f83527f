"""Hybrid retriever over the reference-document and script corpora."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Collection
from typing import Protocol, TypeVar

from script_review.config import RetrievalConfig
from script_review.errors import InvalidArgumentError, ReviewError
from script_review.ingest.embedder import Embedder, classify_provider_error
from script_review.ingest.embedding_store import VectorCapability, probe_vector_capability
from script_review.obs.logging import get_logger
from script_review.retrieval.fusion import merge_results, with_fallback
from script_review.retrieval.unit_store import UnitStore
from script_review.types import (
    DocFilters,
    Document,
    DocumentStatus,
    SearchResult,
    SourceKind,
)

LOGGER = get_logger(__name__)

T = TypeVar("T")


class DocumentCatalog(Protocol):
    async def list_documents(self) -> list[Document]:
        """Return every known reference document."""


def document_matches(document: Document, filters: DocFilters) -> bool:
    """Eligibility rule for the docs corpus.

    Only active documents qualify. doc_type and doc_id must match exactly when
    given; platform and region match when equal or when the document leaves
    them unset.
    """
    if document.status != DocumentStatus.ACTIVE:
        return False
    if filters.doc_type and document.doc_type != filters.doc_type:
        return False
    if filters.doc_id and document.id != filters.doc_id:
        return False
    if filters.platform and document.platform not in (None, filters.platform):
        return False
    if filters.region and document.region not in (None, filters.region):
        return False
    return True


async def _no_results() -> list[SearchResult]:
    return []


class HybridRetriever:
    """Runs the vector and lexical routes concurrently and merges them.

    When the store has no native vectors (per the capability probe) or the
    vector route fails, results come from the lexical route alone with
    `score` equal to the lexical rank.
    """

    def __init__(
        self,
        unit_store: UnitStore,
        embedder: Embedder,
        documents: DocumentCatalog,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.unit_store = unit_store
        self.embedder = embedder
        self.documents = documents
        self.config = config or RetrievalConfig()

    async def probe(self) -> VectorCapability:
        return await probe_vector_capability(self.unit_store)

    async def search_docs(
        self,
        query: str,
        filters: DocFilters | None = None,
        k: int | None = None,
        *,
        capability: VectorCapability | None = None,
    ) -> list[SearchResult]:
        filters = filters or DocFilters()
        limit = self._limit(k, self.config.docs_k)
        _validate_query(query)

        eligible = {
            document.id: document
            for document in await self.documents.list_documents()
            if document_matches(document, filters)
        }
        if not eligible:
            LOGGER.info("No eligible documents for filters %s", filters)
            return []

        results = await self._hybrid(
            query,
            limit,
            source_kind=SourceKind.DOC,
            parent_ids=eligible.keys(),
            capability=capability,
        )
        for item in results:
            document = eligible.get(item.metadata.get("parent_id", ""))
            if document is None:
                continue
            item.metadata.update(
                doc_id=document.id,
                title=document.title,
                version=document.version,
                doc_type=document.doc_type,
                platform=document.platform,
                region=document.region,
            )
        return results

    async def search_script(
        self,
        query: str,
        submission_id: str,
        k: int | None = None,
        *,
        capability: VectorCapability | None = None,
    ) -> list[SearchResult]:
        if not submission_id:
            raise InvalidArgumentError("Submission id is required")
        limit = self._limit(k, self.config.script_k)
        _validate_query(query)

        results = await self._hybrid(
            query,
            limit,
            source_kind=SourceKind.SCRIPT,
            parent_ids={submission_id},
            capability=capability,
        )
        for item in results:
            item.metadata["submission_id"] = submission_id
        return results

    async def _hybrid(
        self,
        query: str,
        k: int,
        *,
        source_kind: SourceKind,
        parent_ids: Collection[str],
        capability: VectorCapability | None,
    ) -> list[SearchResult]:
        if capability is None:
            capability = await self.probe()

        async def lexical_route() -> list[SearchResult]:
            hits = await self._bounded(
                self.unit_store.lexical_search(
                    query, k, source_kind=source_kind, parent_ids=parent_ids
                )
            )
            return [hit.to_result() for hit in hits]

        if not capability.native_vectors:
            LOGGER.warning("Vector search unavailable, using lexical search only")
            return merge_results([await lexical_route()], k)

        async def vector_route() -> list[SearchResult]:
            query_vector = await self._bounded(self.embedder.embed(query))
            return await self._bounded(
                self.unit_store.vector_search(
                    query_vector, k, source_kind=source_kind, parent_ids=parent_ids
                )
            )

        vector_results, lexical_results = await asyncio.gather(
            with_fallback(vector_route, _no_results, label="Vector search"),
            lexical_route(),
        )
        return merge_results([vector_results, lexical_results], k)

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.timeout_seconds)
        except ReviewError:
            raise
        except Exception as exc:
            raise classify_provider_error(exc) from exc

    @staticmethod
    def _limit(k: int | None, default: int) -> int:
        if k is None:
            return default
        if k < 1:
            raise InvalidArgumentError("k must be at least 1")
        return k


def _validate_query(query: str) -> None:
    if not isinstance(query, str) or not query.strip():
        raise InvalidArgumentError("Query cannot be empty")
