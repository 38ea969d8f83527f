"""Review run state machine: ingest -> agents -> judge -> synthesis -> report."""

from __future__ import annotations

import asyncio

from script_review.config import ReviewConfig
from script_review.errors import InvalidArgumentError, NotFoundError, ReviewError
from script_review.ingest.embedding_store import VectorCapability
from script_review.ingest.pipeline import IngestionPipeline
from script_review.obs.logging import get_logger
from script_review.obs.tracing import RunRecord, Timer, TraceStore
from script_review.retrieval.retriever import HybridRetriever
from script_review.review.evaluators import AgentRequest, EvaluatorRegistry
from script_review.review.judge import Judge, enforce_ethics_cap
from script_review.review.models import AgentReview, FinalReport
from script_review.review.repository import (
    InMemoryReportRepository,
    InMemorySubmissionRepository,
)
from script_review.review.roster import AgentName, ContextAssembler
from script_review.review.synthesizer import Synthesizer
from script_review.types import SourceKind, Submission
from script_review.utils.parallel import gather_or_cancel, with_deadline

LOGGER = get_logger(__name__)


class ReviewOrchestrator:
    """Drives one submission from `queued` (or `failed`) to `completed`.

    The transition into `processing` is an atomic check-and-set in the
    submission repository. Whatever fails after that point marks the
    submission `failed` and re-raises the original exception unchanged.
    Agent evaluations run all at once; the first failure cancels the agents
    still running and fails the run.
    """

    def __init__(
        self,
        *,
        submissions: InMemorySubmissionRepository,
        reports: InMemoryReportRepository,
        pipeline: IngestionPipeline,
        retriever: HybridRetriever,
        evaluators: EvaluatorRegistry,
        judge: Judge,
        synthesizer: Synthesizer,
        config: ReviewConfig | None = None,
        trace_store: TraceStore | None = None,
        require_source: bool = True,
    ) -> None:
        evaluators.ensure_complete()
        self.submissions = submissions
        self.reports = reports
        self.pipeline = pipeline
        self.retriever = retriever
        self.assembler = ContextAssembler(retriever)
        self.evaluators = evaluators
        self.judge = judge
        self.synthesizer = synthesizer
        self.config = config or ReviewConfig()
        self.trace_store = trace_store or TraceStore()
        self.require_source = require_source

    async def run(self, submission_id: str) -> FinalReport:
        if not submission_id or not isinstance(submission_id, str):
            raise InvalidArgumentError("Invalid submission ID")
        submission = await self.submissions.get(submission_id)
        if submission is None:
            raise NotFoundError("Submission not found")
        if self.require_source and not submission.source_ref:
            raise InvalidArgumentError("No script file found for submission")

        submission = await self.submissions.begin_processing(submission_id)
        record = self.trace_store.start_run(submission_id)
        LOGGER.info("Review %s started (trace %s)", submission_id, record.trace_id)

        try:
            with Timer() as total:
                report = await self._process(submission, record)
        except (Exception, asyncio.CancelledError) as exc:
            LOGGER.exception("Review %s failed", submission_id)
            record.status = "failed"
            record.latency_ms = total.elapsed_ms
            record.error_kind = exc.kind.value if isinstance(exc, ReviewError) else "internal"
            try:
                await self.submissions.mark_failed(submission_id)
            except Exception:
                LOGGER.exception("Could not mark submission %s as failed", submission_id)
            raise

        record.latency_ms = total.elapsed_ms
        record.status = "completed"
        LOGGER.info(
            "Review %s completed: overall %.2f in %.0fms",
            submission_id,
            report.overall_score,
            total.elapsed_ms,
        )
        return report

    async def _process(self, submission: Submission, record: RunRecord) -> FinalReport:
        capability = await self.retriever.probe()

        if submission.source_ref:
            with Timer() as timer:
                ingestion = await self.pipeline.ingest(
                    submission.id,
                    submission.source_ref,
                    source_kind=SourceKind.SCRIPT,
                    capability=capability,
                )
            record.stage_latency_ms["ingest"] = timer.elapsed_ms
            record.units_processed = ingestion.processed
            record.units_total = ingestion.total

        with Timer() as timer:
            reviews = await gather_or_cancel(
                self._evaluate(agent, submission, capability, record) for agent in AgentName
            )
        record.stage_latency_ms["agents"] = timer.elapsed_ms

        with Timer() as timer:
            report = await with_deadline(
                self.judge.judge(submission.id, list(reviews), self.config.rubric_weights),
                self.config.judge_timeout_seconds,
                "Judge",
            )
            report = enforce_ethics_cap(report, list(reviews), self.config.ethics_cap)
        record.stage_latency_ms["judge"] = timer.elapsed_ms

        with Timer() as timer:
            synthesis = await with_deadline(
                self.synthesizer.synthesize(submission.metadata, report),
                self.config.synthesis_timeout_seconds,
                "Synthesis",
            )
        record.stage_latency_ms["synthesis"] = timer.elapsed_ms

        stored = await self.reports.upsert(
            report.model_copy(
                update={
                    "report_text": synthesis.report_text,
                    "notification_subject": synthesis.notification_subject,
                    "notification_body": synthesis.notification_body,
                }
            )
        )
        await self.submissions.mark_completed(submission.id)
        return stored

    async def _evaluate(
        self,
        agent: AgentName,
        submission: Submission,
        capability: VectorCapability,
        record: RunRecord,
    ) -> AgentReview:
        with Timer() as timer:
            context = await self.assembler.assemble(agent, submission, capability=capability)
            review = await with_deadline(
                self.evaluators.evaluate(
                    agent,
                    AgentRequest(
                        submission_id=submission.id,
                        metadata=submission.metadata,
                        context=context,
                    ),
                ),
                self.config.agent_timeout_seconds,
                f"Agent '{agent.value}'",
            )
        record.agent_latency_ms[agent.value] = timer.elapsed_ms
        return review
