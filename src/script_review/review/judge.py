"""Calibration of agent outputs into one final report."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol

from langchain_core.prompts import ChatPromptTemplate

from script_review.config import ReviewConfig
from script_review.errors import InvalidArgumentError
from script_review.obs.logging import get_logger
from script_review.review.models import (
    ActionItem,
    AgentReview,
    BucketScore,
    Citation,
    Contradiction,
    FinalReport,
)

LOGGER = get_logger(__name__)

_SEVERITY_ORDER = {"critical": 0, "major": 1, "minor": 2, "info": 3}


@dataclass(frozen=True, slots=True)
class ContradictionRule:
    high: str
    low: str
    guidance: str


CONTRADICTION_RULES: tuple[ContradictionRule, ...] = (
    ContradictionRule(
        high="structure",
        low="pacing",
        guidance="Prioritize pacing fixes that preserve the existing beat logic.",
    ),
    ContradictionRule(
        high="dialogue",
        low="cultural",
        guidance="Propose line-level cultural adjustments without flattening voice.",
    ),
)


class Judge(Protocol):
    async def judge(
        self,
        submission_id: str,
        reviews: list[AgentReview],
        rubric_weights: dict[str, float],
    ) -> FinalReport:
        """Calibrate agent reviews into a final report."""


def weighted_score(reviews: list[AgentReview], weights: dict[str, float]) -> float:
    """Weighted mean of agent scores; agents without a weight count zero.

    Falls back to the plain mean when no reviewed agent carries weight.
    """
    if not reviews:
        raise InvalidArgumentError("No agent outputs to judge")
    total_weight = sum(weights.get(review.agent_name, 0.0) for review in reviews)
    if total_weight <= 0:
        return sum(review.score for review in reviews) / len(reviews)
    return (
        sum(review.score * weights.get(review.agent_name, 0.0) for review in reviews)
        / total_weight
    )


def has_unresolved_critical_ethics(reviews: list[AgentReview]) -> bool:
    return any(
        review.agent_name == "ethics" and review.unresolved("critical") for review in reviews
    )


def enforce_ethics_cap(report: FinalReport, reviews: list[AgentReview], cap: float) -> FinalReport:
    """Cap the overall score when the ethics agent reports an unresolved critical finding.

    Applied to whatever the judge returned, so the rule holds for every judge
    implementation.
    """
    if not has_unresolved_critical_ethics(reviews):
        return report
    if report.overall_score <= cap:
        return report.model_copy(update={"ethics_cap_applied": True})
    LOGGER.info(
        "Capping overall score for %s from %.2f to %.2f (critical ethics finding)",
        report.submission_id,
        report.overall_score,
        cap,
    )
    return report.model_copy(update={"overall_score": cap, "ethics_cap_applied": True})


def detect_contradictions(
    reviews: list[AgentReview],
    *,
    high_threshold: float = 7.5,
    low_threshold: float = 5.5,
) -> list[Contradiction]:
    scores = {review.agent_name: review.score for review in reviews}
    found: list[Contradiction] = []
    for rule in CONTRADICTION_RULES:
        high = scores.get(rule.high)
        low = scores.get(rule.low)
        if high is None or low is None:
            continue
        if high >= high_threshold and low <= low_threshold:
            found.append(Contradiction(high=rule.high, low=rule.low, guidance=rule.guidance))
    return found


def balance_insights(
    strengths: list[str], risks: list[str], limit: int
) -> tuple[list[str], list[str]]:
    """Split `limit` slots evenly between strengths and risks.

    Unused slots on one side go to the other side.
    """
    half = limit // 2
    take_strengths = min(len(strengths), half)
    take_risks = min(len(risks), limit - take_strengths)
    take_strengths = min(len(strengths), limit - take_risks)
    return strengths[:take_strengths], risks[:take_risks]


class RubricJudge:
    """Deterministic judge: rubric-weighted mean plus rule-based insights."""

    def __init__(self, config: ReviewConfig | None = None) -> None:
        self.config = config or ReviewConfig()

    async def judge(
        self,
        submission_id: str,
        reviews: list[AgentReview],
        rubric_weights: dict[str, float],
    ) -> FinalReport:
        overall = weighted_score(reviews, rubric_weights)
        contradictions = detect_contradictions(reviews)
        highlights, risks = balance_insights(
            _strengths(reviews), _risks(reviews), self.config.max_insights
        )

        report = FinalReport(
            submission_id=submission_id,
            overall_score=round(overall, 2),
            bucket_scores=[
                BucketScore(
                    name=review.agent_name,
                    score=review.score,
                    weight=rubric_weights.get(review.agent_name, 0.0),
                )
                for review in reviews
            ],
            highlights=highlights,
            risks=risks,
            action_plan=_action_plan(reviews, contradictions),
            references=_references(reviews),
            contradictions=contradictions,
        )
        return enforce_ethics_cap(report, reviews, self.config.ethics_cap)


class LLMJudge:
    """Judge backed by a LangChain chat model with structured output."""

    _SYSTEM_PROMPT = """
You are the judge and calibrator for a script review system.
Normalize scores across agents, detect contradictions and produce final bucket
scores plus one overall score. If any ethics finding is critical, cap the
overall score at {cap} unless it is resolved. Summarize at most {max_insights}
insights across agents, balanced between strengths and risks.
If structure is high and pacing is low, prioritize pacing fixes that preserve
beat logic. If dialogue is high but cultural is low, propose line-level
cultural adjustments without flattening voice.
""".strip()

    def __init__(self, *, llm: Any, config: ReviewConfig | None = None) -> None:
        self.llm = llm
        self.config = config or ReviewConfig()
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", self._SYSTEM_PROMPT),
                (
                    "human",
                    "SUBMISSION ID: {submission_id}\n\nRUBRIC WEIGHTS:\n{weights}\n\n"
                    "AGENT OUTPUTS:\n{outputs}",
                ),
            ]
        )
        self._chain = prompt | self.llm.with_structured_output(FinalReport)

    async def judge(
        self,
        submission_id: str,
        reviews: list[AgentReview],
        rubric_weights: dict[str, float],
    ) -> FinalReport:
        if not reviews:
            raise InvalidArgumentError("No agent outputs to judge")
        result = await self._chain.ainvoke(
            {
                "cap": self.config.ethics_cap,
                "max_insights": self.config.max_insights,
                "submission_id": submission_id,
                "weights": json.dumps(rubric_weights, indent=2),
                "outputs": "\n\n".join(_render_review(review) for review in reviews),
            }
        )
        if isinstance(result, dict):
            result = FinalReport.model_validate(result)
        report = result.model_copy(update={"submission_id": submission_id})
        return enforce_ethics_cap(report, reviews, self.config.ethics_cap)


def _render_review(review: AgentReview) -> str:
    findings = "; ".join(f"{f.severity}: {f.summary}" for f in review.findings) or "none"
    return (
        f"{review.agent_name.upper()} (Score: {review.score}, Confidence: {review.confidence})\n"
        f"Findings: {findings}\n"
        f"Recommendations: {'; '.join(review.recommendations) or 'none'}\n"
        f"Citations: {len(review.citations)} references"
    )


def _strengths(reviews: list[AgentReview]) -> list[str]:
    ranked = sorted(
        (review for review in reviews if review.score >= 7.0),
        key=lambda review: (-review.score, review.agent_name),
    )
    return [f"{review.agent_name.capitalize()} is a strength ({review.score:.1f}/10)." for review in ranked]


def _risks(reviews: list[AgentReview]) -> list[str]:
    flagged = [
        (finding, review)
        for review in reviews
        for finding in review.findings
        if finding.severity in ("critical", "major") and not finding.resolved
    ]
    flagged.sort(key=lambda pair: (_SEVERITY_ORDER[pair[0].severity], pair[1].score))
    risks = [f"{review.agent_name.capitalize()}: {finding.summary}" for finding, review in flagged]

    for review in sorted(reviews, key=lambda review: (review.score, review.agent_name)):
        if review.score < 6.0 and not any(r.startswith(review.agent_name.capitalize()) for r in risks):
            risks.append(f"{review.agent_name.capitalize()} needs work ({review.score:.1f}/10).")
    return risks


def _action_plan(reviews: list[AgentReview], contradictions: list[Contradiction]) -> list[ActionItem]:
    items = [
        ActionItem(description=contradiction.guidance, priority="high", owner=contradiction.low)
        for contradiction in contradictions
    ]
    for review in sorted(reviews, key=lambda review: (review.score, review.agent_name)):
        blocking = review.unresolved("critical") or review.unresolved("major")
        if review.score < 5.0 or blocking:
            priority = "high"
        elif review.score < 7.0:
            priority = "med"
        else:
            priority = "low"
        for recommendation in review.recommendations:
            items.append(
                ActionItem(description=recommendation, priority=priority, owner=review.agent_name)
            )
    return items


def _references(reviews: list[AgentReview]) -> list[Citation]:
    seen: set[tuple[str, str, str | None]] = set()
    references: list[Citation] = []
    for review in reviews:
        for citation in review.citations:
            key = (citation.source_id, citation.version, citation.section)
            if key in seen:
                continue
            seen.add(key)
            references.append(citation)
    return references
