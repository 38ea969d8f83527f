"""Shared fakes and a factory for fully wired in-memory stacks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import pytest

from script_review.config import ChunkingConfig, IngestionConfig, ReviewConfig
from script_review.errors import UpstreamError
from script_review.ingest.chunker import HeadingWindowChunker
from script_review.ingest.embedder import Embedder, HashingEmbedder
from script_review.ingest.embedding_store import EmbeddingStore
from script_review.ingest.extractor import ExtractedText, build_stats
from script_review.ingest.pipeline import IngestionPipeline
from script_review.obs.tracing import TraceStore
from script_review.retrieval.retriever import HybridRetriever
from script_review.retrieval.unit_store import InMemoryUnitStore
from script_review.review.evaluators import (
    AgentEvaluator,
    AgentRequest,
    DeterministicEvaluator,
    EvaluatorRegistry,
)
from script_review.review.judge import Judge, RubricJudge
from script_review.review.models import AgentReview, Finding
from script_review.review.orchestrator import ReviewOrchestrator
from script_review.review.repository import (
    InMemoryDocumentRepository,
    InMemoryReportRepository,
    InMemorySubmissionRepository,
)
from script_review.review.roster import AgentName
from script_review.review.synthesizer import Synthesizer, TemplateSynthesizer
from script_review.types import SubmissionMetadata

SCENE = (
    "INT. LAGOS MARKET - DAY\n"
    "Ada haggles with a fabric seller while her phone buzzes with missed calls.\n"
    "She ignores it, counting notes twice before handing them over.\n"
    "EXT. THIRD MAINLAND BRIDGE - NIGHT\n"
    "Traffic crawls. Ada rehearses the speech she will give her father.\n"
    "Her brother Tunde watches from the passenger seat and says nothing.\n"
)


def make_script(pages: int = 3, chars_per_page: int = 3000) -> str:
    """Build a screenplay-like text of roughly `pages` pages."""
    target = pages * chars_per_page
    parts: list[str] = []
    size = 0
    scene = 0
    while size < target:
        block = SCENE.replace("DAY", f"DAY {scene}").replace("NIGHT", f"NIGHT {scene}")
        parts.append(block)
        size += len(block)
        scene += 1
    return "".join(parts)[:target]


class StaticExtractor:
    """Extractor that returns fixed text for any source reference."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.calls: list[str] = []

    async def extract(self, source_ref: str) -> ExtractedText:
        self.calls.append(source_ref)
        return ExtractedText(text=self.text, stats=build_stats(self.text))


class FlakyEmbedder(Embedder):
    """Hashing embedder that fails for any text containing `marker`.

    With `fail_queries` set, single-text calls fail regardless of content.
    """

    def __init__(self, marker: str = "FAIL", dimension: int = 64) -> None:
        self.marker = marker
        self.fail_queries = False
        self._inner = HashingEmbedder(dimension=dimension)

    async def embed(self, text: str) -> list[float]:
        if self.fail_queries or self.marker in text:
            raise UpstreamError("Embedding provider failed: simulated outage")
        return await self._inner.embed(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if any(self.marker in text for text in texts):
            raise UpstreamError("Embedding provider failed: simulated batch outage")
        return await self._inner.embed_batch(texts)


class ScriptedEvaluator:
    """Evaluator returning preset scores and findings per agent."""

    def __init__(
        self,
        scores: dict[str, float] | None = None,
        findings: dict[str, list[Finding]] | None = None,
        *,
        fail_agent: AgentName | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.scores = scores or {}
        self.findings = findings or {}
        self.fail_agent = fail_agent
        self.error = error or RuntimeError("agent crashed")
        self.delay = delay
        self.requests: list[AgentRequest] = []

    async def evaluate(self, agent: AgentName, request: AgentRequest) -> AgentReview:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if agent == self.fail_agent:
            raise self.error
        return AgentReview(
            agent_name=agent.value,
            score=self.scores.get(agent.value, 8.0),
            findings=self.findings.get(agent.value, []),
            recommendations=[f"Tighten {agent.value}."],
            confidence=0.8,
        )


@dataclass
class Stack:
    documents: InMemoryDocumentRepository
    submissions: InMemorySubmissionRepository
    reports: InMemoryReportRepository
    unit_store: InMemoryUnitStore
    embedder: Embedder
    extractor: StaticExtractor
    chunker: HeadingWindowChunker
    pipeline: IngestionPipeline
    retriever: HybridRetriever
    orchestrator: ReviewOrchestrator
    trace_store: TraceStore


def make_stack(
    *,
    text: str | None = None,
    vector_enabled: bool = True,
    embedder: Embedder | None = None,
    evaluator: AgentEvaluator | None = None,
    judge: Judge | None = None,
    synthesizer: Synthesizer | None = None,
    chunking: ChunkingConfig | None = None,
    ingestion: IngestionConfig | None = None,
    review: ReviewConfig | None = None,
) -> Stack:
    documents = InMemoryDocumentRepository()
    submissions = InMemorySubmissionRepository()
    reports = InMemoryReportRepository()
    unit_store = InMemoryUnitStore(vector_enabled=vector_enabled)
    embedder = embedder or HashingEmbedder(dimension=64)
    extractor = StaticExtractor(text if text is not None else make_script())
    chunker = HeadingWindowChunker(chunking or ChunkingConfig())
    pipeline = IngestionPipeline(
        extractor,
        chunker,
        EmbeddingStore(embedder, unit_store),
        unit_store,
        ingestion or IngestionConfig(batch_pause_seconds=0.0),
    )
    retriever = HybridRetriever(unit_store, embedder, documents)
    review = review or ReviewConfig()
    trace_store = TraceStore()
    orchestrator = ReviewOrchestrator(
        submissions=submissions,
        reports=reports,
        pipeline=pipeline,
        retriever=retriever,
        evaluators=EvaluatorRegistry.uniform(evaluator or DeterministicEvaluator()),
        judge=judge or RubricJudge(review),
        synthesizer=synthesizer or TemplateSynthesizer(),
        config=review,
        trace_store=trace_store,
    )
    return Stack(
        documents=documents,
        submissions=submissions,
        reports=reports,
        unit_store=unit_store,
        embedder=embedder,
        extractor=extractor,
        chunker=chunker,
        pipeline=pipeline,
        retriever=retriever,
        orchestrator=orchestrator,
        trace_store=trace_store,
    )


def sample_metadata(**overrides: object) -> SubmissionMetadata:
    values: dict[str, object] = {
        "writer": "Chiamaka Obi",
        "title": "Bridge at Midnight",
        "format": "feature",
        "draft_version": "v2",
        "platform": "YouTube",
        "region": "NG",
    }
    values.update(overrides)
    return SubmissionMetadata(**values)  # type: ignore[arg-type]


@pytest.fixture
def stack_factory():
    return make_stack
