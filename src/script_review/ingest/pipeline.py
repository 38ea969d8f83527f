"""End-to-end ingestion: extract -> chunk -> delete -> embed -> aggregate."""

from __future__ import annotations

from typing import Protocol

from script_review.config import IngestionConfig
from script_review.errors import FailedPreconditionError, InvalidArgumentError, NotFoundError
from script_review.ingest.chunker import HeadingWindowChunker
from script_review.ingest.embedding_store import EmbeddingStore, VectorCapability
from script_review.ingest.extractor import TextExtractor
from script_review.obs.logging import get_logger
from script_review.retrieval.unit_store import UnitStore
from script_review.types import Document, DocumentStatus, IngestionReport, SourceKind, TextChunk
from script_review.utils.parallel import map_in_batches

LOGGER = get_logger(__name__)


class DocumentStatusStore(Protocol):
    async def get_document(self, document_id: str) -> Document | None:
        """Return the document or None."""

    async def set_document_status(self, document_id: str, status: DocumentStatus) -> None:
        """Persist a new status for the document."""


class IngestionPipeline:
    """Coordinates extractor, chunker and embedding store for one parent.

    Existing units for the parent are deleted before anything is inserted, so
    a rerun replaces the previous units rather than mixing with them. Units
    are embedded `max_concurrency` at a time; individual failures are counted
    and judged against the failure-rate policy at the end of the run.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        chunker: HeadingWindowChunker,
        embedding_store: EmbeddingStore,
        unit_store: UnitStore,
        config: IngestionConfig | None = None,
    ) -> None:
        self._extractor = extractor
        self._chunker = chunker
        self._embedding_store = embedding_store
        self._unit_store = unit_store
        self.config = config or IngestionConfig()

    async def ingest(
        self,
        parent_id: str,
        source_ref: str,
        *,
        source_kind: SourceKind = SourceKind.SCRIPT,
        capability: VectorCapability | None = None,
    ) -> IngestionReport:
        """Ingest one source for `parent_id` and return processed/total counts.

        Raises `FailedPreconditionError` when nothing was stored or when more
        than `max_failure_rate` of the units failed.
        """
        if not parent_id:
            raise InvalidArgumentError("Invalid parent id")
        if not source_ref:
            raise InvalidArgumentError("Invalid source reference")

        if capability is None:
            capability = await self._embedding_store.probe_capability()

        extracted = await self._extractor.extract(source_ref)
        chunks = self._chunker.chunk_fixed(extracted.text)
        if not chunks:
            raise InvalidArgumentError("No chunks generated from extracted text")
        LOGGER.info(
            "Extracted %d chars (~%d pages) for %s, %d chunks",
            extracted.stats.chars,
            extracted.stats.estimated_pages,
            parent_id,
            len(chunks),
        )

        removed = await self._unit_store.delete_units(parent_id)
        if removed:
            LOGGER.info("Deleted %d existing units for %s", removed, parent_id)

        async def _store(chunk: TextChunk) -> str:
            return await self._embedding_store.embed_and_store(
                parent_id,
                chunk.index,
                chunk.text,
                source_kind=source_kind,
                capability=capability,
                section=chunk.section,
                line_start=chunk.line_start,
                line_end=chunk.line_end,
            )

        outcomes = await map_in_batches(
            chunks,
            _store,
            batch_size=self.config.max_concurrency,
            pause_seconds=self.config.batch_pause_seconds,
            desc=f"Embedding {parent_id}",
        )

        report = IngestionReport(parent_id=parent_id, processed=0, total=len(chunks))
        for chunk, outcome in zip(chunks, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                LOGGER.error("Failed to store unit %d for %s: %s", chunk.index, parent_id, outcome)
                report.errors.append(f"unit {chunk.index}: {outcome}")
            else:
                report.processed += 1
        return self._apply_policy(report)

    async def ingest_document(
        self,
        documents: DocumentStatusStore,
        document_id: str,
        *,
        capability: VectorCapability | None = None,
    ) -> IngestionReport:
        """Ingest a reference document and flip it active, or inactive on failure."""
        document = await documents.get_document(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")

        try:
            report = await self.ingest(
                document.id,
                document.source_ref,
                source_kind=SourceKind.DOC,
                capability=capability,
            )
        except Exception:
            LOGGER.exception("Failed to process document %s", document_id)
            await documents.set_document_status(document_id, DocumentStatus.INACTIVE)
            raise

        await documents.set_document_status(document_id, DocumentStatus.ACTIVE)
        LOGGER.info(
            "Processed document %s with %d/%d units", document_id, report.processed, report.total
        )
        return report

    def _apply_policy(self, report: IngestionReport) -> IngestionReport:
        if report.processed == 0:
            raise FailedPreconditionError(
                f"Failed to process any units for {report.parent_id} "
                f"(0/{report.total}); check embedding provider availability"
            )
        if report.failure_rate > self.config.max_failure_rate:
            raise FailedPreconditionError(
                f"Too many units failed for {report.parent_id} "
                f"({report.failed}/{report.total}); retry the ingestion"
            )
        if report.failed:
            LOGGER.warning(
                "Ingested %s with partial failures: %d/%d units stored",
                report.parent_id,
                report.processed,
                report.total,
            )
        return report
