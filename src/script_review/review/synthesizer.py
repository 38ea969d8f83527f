"""Writer-facing rendering of calibrated reports."""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate

from script_review.retrieval.fusion import with_fallback
from script_review.review.models import FinalReport, Notification, Synthesis
from script_review.types import SubmissionMetadata


class Synthesizer(Protocol):
    async def synthesize(self, metadata: SubmissionMetadata, report: FinalReport) -> Synthesis:
        """Produce report prose plus a notification for the writer."""


def default_notification(metadata: SubmissionMetadata) -> Notification:
    return Notification(
        subject=f"Script Review Complete: {metadata.title}",
        body=(
            f"Dear {metadata.writer},\n\n"
            "Your script review is complete. Please see the report for detailed feedback.\n\n"
            "Best regards,\nThe Review Team"
        ),
    )


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items) or "- None noted."


class TemplateSynthesizer:
    """Renders the report as Markdown without any model calls."""

    async def synthesize(self, metadata: SubmissionMetadata, report: FinalReport) -> Synthesis:
        buckets = "\n".join(
            f"| {bucket.name} | {bucket.score:.1f} | {bucket.weight:.2f} |"
            for bucket in report.bucket_scores
        )
        actions = "\n".join(
            f"- [{item.priority.upper()}] {item.description}"
            + (f" (Owner: {item.owner})" if item.owner else "")
            for item in report.action_plan
        ) or "- No actions."
        references = "\n".join(
            f"- {ref.source_id} v{ref.version}" + (f" ({ref.section})" if ref.section else "")
            for ref in report.references
        ) or "- None."
        cap_note = (
            "\n> Overall score capped because of an unresolved critical ethics finding.\n"
            if report.ethics_cap_applied
            else ""
        )

        text = (
            f"# {metadata.title}\n\n"
            f"Writer: {metadata.writer} | Format: {metadata.format} | "
            f"Draft: {metadata.draft_version} | Platform: {metadata.platform}\n\n"
            f"## Overall score: {report.overall_score:.1f}/10\n{cap_note}\n"
            f"## Strengths\n{_bullets(report.highlights)}\n\n"
            f"## Key risks\n{_bullets(report.risks)}\n\n"
            f"## Action plan\n{actions}\n\n"
            f"## Bucket scores\n| Bucket | Score | Weight |\n| --- | --- | --- |\n{buckets}\n\n"
            f"## References\n{references}\n"
        )

        takeaways = (report.highlights[:2] + report.risks[:1]) or ["Your review is ready."]
        body = (
            f"Dear {metadata.writer},\n\n"
            f"Your script \"{metadata.title}\" scored {report.overall_score:.1f}/10.\n\n"
            f"{_bullets(takeaways)}\n\n"
            "The full report lists prioritized next steps.\n\n"
            "Best regards,\nThe Review Team"
        )
        return Synthesis(
            report_text=text,
            notification_subject=f"Script Review Complete: {metadata.title}",
            notification_body=body,
        )


class LLMSynthesizer:
    """Synthesizer backed by a LangChain chat model.

    Report prose and notification are generated concurrently. A notification
    that fails to parse falls back to a fixed template.
    """

    def __init__(self, *, llm: Any) -> None:
        self.llm = llm
        report_prompt = ChatPromptTemplate.from_messages(
            [
                (
                    "system",
                    "You create writer-facing script review reports in Markdown: executive "
                    "summary, strengths, key risks, prioritized action plan, notes by bucket.",
                ),
                ("human", "{submission}\n\nFINAL REPORT DATA:\n{report}"),
            ]
        )
        notification_prompt = ChatPromptTemplate.from_messages(
            [
                (
                    "system",
                    "You draft a short, encouraging email to a screenwriter about their "
                    "script review with 2-3 headline takeaways and next steps.",
                ),
                ("human", "{submission}\n\nFINAL REPORT DATA:\n{report}"),
            ]
        )
        self._report_chain = report_prompt | self.llm | StrOutputParser()
        self._notification_chain = notification_prompt | self.llm.with_structured_output(
            Notification
        )

    async def synthesize(self, metadata: SubmissionMetadata, report: FinalReport) -> Synthesis:
        payload = {
            "submission": (
                f'SUBMISSION: "{metadata.title}" by {metadata.writer}\n'
                f"Format: {metadata.format} | Draft: {metadata.draft_version} | "
                f"Platform: {metadata.platform}"
            ),
            "report": report.model_dump_json(
                include={"overall_score", "bucket_scores", "highlights", "risks", "action_plan"},
                indent=2,
            ),
        }

        async def notification() -> Notification:
            result = await self._notification_chain.ainvoke(payload)
            if isinstance(result, dict):
                result = Notification.model_validate(result)
            return result

        async def fallback_notification() -> Notification:
            return default_notification(metadata)

        text, note = await asyncio.gather(
            self._report_chain.ainvoke(payload),
            with_fallback(notification, fallback_notification, label="Notification synthesis"),
        )
        return Synthesis(
            report_text=text,
            notification_subject=note.subject,
            notification_body=note.body,
        )
