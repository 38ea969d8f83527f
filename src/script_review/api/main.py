"""FastAPI entrypoint for the review engine."""

from __future__ import annotations

import os
import uuid
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from script_review.config import (
    ChunkingConfig,
    EmbeddingConfig,
    IngestionConfig,
    RetrievalConfig,
    ReviewConfig,
)
from script_review.errors import NotFoundError, ReviewError, to_http_error
from script_review.ingest.chunker import HeadingWindowChunker
from script_review.ingest.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from script_review.ingest.embedding_store import EmbeddingStore
from script_review.ingest.extractor import FileTextExtractor
from script_review.ingest.pipeline import IngestionPipeline
from script_review.obs.logging import get_logger
from script_review.obs.tracing import TraceStore
from script_review.retrieval.retriever import HybridRetriever
from script_review.retrieval.unit_store import InMemoryUnitStore
from script_review.review.evaluators import (
    DeterministicEvaluator,
    EvaluatorRegistry,
    LLMAgentEvaluator,
)
from script_review.review.judge import LLMJudge, RubricJudge
from script_review.review.orchestrator import ReviewOrchestrator
from script_review.review.repository import (
    InMemoryDocumentRepository,
    InMemoryReportRepository,
    InMemorySubmissionRepository,
)
from script_review.review.synthesizer import LLMSynthesizer, TemplateSynthesizer
from script_review.types import DocFilters, Document, SearchResult, SubmissionMetadata

LOGGER = get_logger(__name__)

_DOC_TYPE_PATTERN = "^(rubric|style|platform|legal|playbook|other)$"


def _create_llm() -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"), temperature=0)


def _create_embedder() -> Embedder:
    if not os.getenv("OPENAI_API_KEY"):
        return HashingEmbedder()

    from langchain_openai import OpenAIEmbeddings

    return LangChainEmbedder(
        OpenAIEmbeddings(model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"))
    )


@dataclass(slots=True)
class Services:
    documents: InMemoryDocumentRepository
    submissions: InMemorySubmissionRepository
    reports: InMemoryReportRepository
    chunker: HeadingWindowChunker
    unit_store: InMemoryUnitStore
    pipeline: IngestionPipeline
    retriever: HybridRetriever
    orchestrator: ReviewOrchestrator
    trace_store: TraceStore
    llm_configured: bool


def build_services(
    *,
    llm: Any = None,
    embedder: Embedder | None = None,
    unit_store: InMemoryUnitStore | None = None,
    data_dir: str | None = None,
) -> Services:
    """Wire every component explicitly; nothing below the API holds globals."""
    documents = InMemoryDocumentRepository()
    submissions = InMemorySubmissionRepository()
    reports = InMemoryReportRepository()
    unit_store = unit_store or InMemoryUnitStore()
    embedder = embedder or HashingEmbedder()
    trace_store = TraceStore()
    chunker = HeadingWindowChunker(ChunkingConfig())

    pipeline = IngestionPipeline(
        FileTextExtractor(root=data_dir),
        chunker,
        EmbeddingStore(embedder, unit_store, EmbeddingConfig()),
        unit_store,
        IngestionConfig(),
    )
    retriever = HybridRetriever(unit_store, embedder, documents, RetrievalConfig())

    review_config = ReviewConfig()
    if llm is not None:
        evaluators = EvaluatorRegistry.uniform(LLMAgentEvaluator(llm=llm))
        judge: LLMJudge | RubricJudge = LLMJudge(llm=llm, config=review_config)
        synthesizer: LLMSynthesizer | TemplateSynthesizer = LLMSynthesizer(llm=llm)
    else:
        evaluators = EvaluatorRegistry.uniform(DeterministicEvaluator())
        judge = RubricJudge(review_config)
        synthesizer = TemplateSynthesizer()

    orchestrator = ReviewOrchestrator(
        submissions=submissions,
        reports=reports,
        pipeline=pipeline,
        retriever=retriever,
        evaluators=evaluators,
        judge=judge,
        synthesizer=synthesizer,
        config=review_config,
        trace_store=trace_store,
    )
    return Services(
        documents=documents,
        submissions=submissions,
        reports=reports,
        chunker=chunker,
        unit_store=unit_store,
        pipeline=pipeline,
        retriever=retriever,
        orchestrator=orchestrator,
        trace_store=trace_store,
        llm_configured=llm is not None,
    )


class DocumentRequest(BaseModel):
    title: str = Field(min_length=1)
    version: str = Field(min_length=1)
    doc_type: str = Field(pattern=_DOC_TYPE_PATTERN)
    source_ref: str = Field(min_length=1)
    region: str | None = None
    platform: str | None = None
    tags: list[str] = Field(default_factory=list)
    id: str | None = None


class DocumentUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    version: str | None = Field(default=None, min_length=1)
    doc_type: str | None = Field(default=None, pattern=_DOC_TYPE_PATTERN)
    region: str | None = None
    platform: str | None = None
    tags: list[str] | None = None
    status: str | None = Field(default=None, pattern="^(active|inactive|experimental)$")


class ChunkRequest(BaseModel):
    text: str
    max_tokens: int | None = None
    overlap: int | None = None


class SubmissionRequest(BaseModel):
    writer: str = Field(min_length=1)
    title: str = Field(min_length=1)
    format: str = Field(min_length=1)
    draft_version: str = Field(min_length=1)
    platform: str = "YouTube"
    genre: str | None = None
    region: str | None = None
    source_ref: str | None = None
    id: str | None = None


class DocSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    doc_type: str | None = None
    region: str | None = None
    platform: str | None = None
    doc_id: str | None = None
    k: int | None = Field(default=None, ge=1, le=50)


class ScriptSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    submission_id: str = Field(min_length=1)
    k: int | None = Field(default=None, ge=1, le=50)


def _result_payload(results: list[SearchResult]) -> dict[str, Any]:
    return {"results": [asdict(item) for item in results]}


def create_app(services: Services | None = None) -> FastAPI:
    if services is None:
        services = build_services(
            llm=_create_llm(),
            embedder=_create_embedder(),
            data_dir=os.getenv("SCRIPT_REVIEW_DATA_DIR"),
        )

    app = FastAPI(title="Script Review Engine", version="0.1.0")
    app.state.services = services

    @app.exception_handler(ReviewError)
    async def review_error_handler(request: Request, exc: ReviewError) -> JSONResponse:
        status, body = to_http_error(exc)
        if status >= 500:
            LOGGER.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content=body)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "llm_configured": services.llm_configured,
            "review_mode": "langchain" if services.llm_configured else "deterministic",
            "run_count": services.trace_store.count(),
        }

    @app.post("/documents")
    async def create_document(request: DocumentRequest) -> dict[str, Any]:
        document = await services.documents.add(
            Document(
                id=request.id or str(uuid.uuid4()),
                title=request.title,
                version=request.version,
                doc_type=request.doc_type,
                source_ref=request.source_ref,
                region=request.region,
                platform=request.platform,
                tags=request.tags,
            )
        )
        return asdict(document)

    @app.get("/documents")
    async def list_documents() -> dict[str, Any]:
        return {"items": [asdict(document) for document in await services.documents.list_documents()]}

    @app.get("/documents/{document_id}")
    async def get_document(document_id: str) -> dict[str, Any]:
        document = await services.documents.get_document(document_id)
        if document is None:
            raise NotFoundError("Document not found")
        return asdict(document)

    @app.patch("/documents/{document_id}")
    async def update_document(document_id: str, request: DocumentUpdateRequest) -> dict[str, Any]:
        document = await services.documents.update_document(
            document_id, **request.model_dump(exclude_none=True)
        )
        return asdict(document)

    @app.delete("/documents/{document_id}")
    async def delete_document(document_id: str) -> dict[str, Any]:
        await services.documents.delete_document(document_id)
        removed = await services.unit_store.delete_units(document_id)
        return {"ok": True, "document_id": document_id, "units_deleted": removed}

    @app.post("/documents/{document_id}/ingest")
    async def ingest_document(document_id: str) -> dict[str, Any]:
        report = await services.pipeline.ingest_document(services.documents, document_id)
        return {
            "ok": True,
            "document_id": document_id,
            "processed": report.processed,
            "total": report.total,
        }

    @app.post("/submissions")
    async def create_submission(request: SubmissionRequest) -> dict[str, Any]:
        submission = await services.submissions.create(
            SubmissionMetadata(
                writer=request.writer,
                title=request.title,
                format=request.format,
                draft_version=request.draft_version,
                platform=request.platform,
                genre=request.genre,
                region=request.region,
            ),
            source_ref=request.source_ref,
            submission_id=request.id,
        )
        return asdict(submission)

    @app.get("/submissions/{submission_id}")
    async def get_submission(submission_id: str) -> dict[str, Any]:
        submission = await services.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError("Submission not found")
        return asdict(submission)

    @app.post("/text/chunk")
    async def chunk_text(request: ChunkRequest) -> dict[str, Any]:
        chunks = services.chunker.chunk(request.text, request.max_tokens, request.overlap)
        return {"chunks": [asdict(chunk) for chunk in chunks]}

    @app.post("/review/run/{submission_id}")
    async def run_review(submission_id: str) -> dict[str, Any]:
        report = await services.orchestrator.run(submission_id)
        return {"ok": True, "submission_id": submission_id, "overall_score": report.overall_score}

    @app.get("/reports/{submission_id}")
    async def get_report(submission_id: str) -> dict[str, Any]:
        report = await services.reports.get(submission_id)
        if report is None:
            raise NotFoundError(f"Report not found for submission {submission_id}")
        return report.model_dump(mode="json")

    @app.post("/search/docs")
    async def search_docs(request: DocSearchRequest) -> dict[str, Any]:
        results = await services.retriever.search_docs(
            request.query,
            DocFilters(
                doc_type=request.doc_type,
                region=request.region,
                platform=request.platform,
                doc_id=request.doc_id,
            ),
            request.k,
        )
        return _result_payload(results)

    @app.post("/search/script")
    async def search_script(request: ScriptSearchRequest) -> dict[str, Any]:
        results = await services.retriever.search_script(
            request.query, request.submission_id, request.k
        )
        return _result_payload(results)

    @app.get("/metrics")
    async def metrics() -> dict[str, Any]:
        return services.trace_store.summary()

    return app


app = create_app()
