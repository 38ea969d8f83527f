import pytest

from script_review.config import DEFAULT_RUBRIC_WEIGHTS
from script_review.errors import InvalidArgumentError
from script_review.review.judge import (
    RubricJudge,
    balance_insights,
    detect_contradictions,
    enforce_ethics_cap,
    weighted_score,
)
from script_review.review.models import AgentReview, Citation, FinalReport, Finding
from script_review.review.roster import AgentName


def _reviews(score: float = 9.0, **overrides: float) -> list[AgentReview]:
    return [
        AgentReview(agent_name=agent.value, score=overrides.get(agent.value, score))
        for agent in AgentName
    ]


def _critical(resolved: bool = False) -> Finding:
    return Finding(id="eth-1", summary="Depicts a minor in danger", severity="critical", resolved=resolved)


@pytest.mark.asyncio
async def test_critical_ethics_finding_caps_overall_score() -> None:
    reviews = _reviews(9.0)
    reviews[-1] = reviews[-1].model_copy(update={"findings": [_critical()]})

    report = await RubricJudge().judge("sub-1", reviews, DEFAULT_RUBRIC_WEIGHTS)

    assert report.overall_score <= 5.9
    assert report.ethics_cap_applied
    assert report.risks[0].startswith("Ethics:")


@pytest.mark.asyncio
async def test_resolved_critical_finding_does_not_cap() -> None:
    reviews = _reviews(9.0)
    reviews[-1] = reviews[-1].model_copy(update={"findings": [_critical(resolved=True)]})

    report = await RubricJudge().judge("sub-1", reviews, DEFAULT_RUBRIC_WEIGHTS)

    assert report.overall_score == pytest.approx(9.0)
    assert not report.ethics_cap_applied


def test_cap_only_applies_to_ethics_agent() -> None:
    reviews = _reviews(9.0)
    reviews[0] = reviews[0].model_copy(update={"findings": [_critical()]})
    report = FinalReport(submission_id="sub-1", overall_score=9.0)

    assert enforce_ethics_cap(report, reviews, 5.9).overall_score == 9.0


def test_weighted_score_uses_rubric_weights() -> None:
    reviews = _reviews(5.0, structure=10.0)

    expected = 5.0 + 5.0 * DEFAULT_RUBRIC_WEIGHTS["structure"] / sum(DEFAULT_RUBRIC_WEIGHTS.values())
    assert weighted_score(reviews, DEFAULT_RUBRIC_WEIGHTS) == pytest.approx(expected)
    assert weighted_score(reviews[:2], {}) == pytest.approx(7.5)
    with pytest.raises(InvalidArgumentError):
        weighted_score([], DEFAULT_RUBRIC_WEIGHTS)


def test_contradiction_rules() -> None:
    found = detect_contradictions(_reviews(7.0, structure=8.5, pacing=4.0, dialogue=9.0, cultural=5.0))

    assert [(item.high, item.low) for item in found] == [("structure", "pacing"), ("dialogue", "cultural")]
    assert detect_contradictions(_reviews(7.0)) == []


@pytest.mark.parametrize(
    ("strengths", "risks", "expected"),
    [
        (5, 5, (3, 3)),
        (5, 1, (5, 1)),
        (0, 9, (0, 6)),
        (2, 2, (2, 2)),
    ],
)
def test_insights_are_balanced_and_capped(strengths, risks, expected) -> None:
    picked = balance_insights(
        [f"s{i}" for i in range(strengths)], [f"r{i}" for i in range(risks)], 6
    )

    assert (len(picked[0]), len(picked[1])) == expected


@pytest.mark.asyncio
async def test_report_collects_actions_and_deduplicated_references() -> None:
    citation = Citation(source_id="rubric-1", version="2", section="Acts")
    reviews = _reviews(8.0, structure=8.5, pacing=4.0)
    reviews = [
        review.model_copy(update={"recommendations": [f"Fix {review.agent_name}"], "citations": [citation]})
        for review in reviews
    ]

    report = await RubricJudge().judge("sub-1", reviews, DEFAULT_RUBRIC_WEIGHTS)

    assert report.references == [citation]
    assert report.action_plan[0].priority == "high"
    assert report.action_plan[0].owner == "pacing"
    assert len(report.highlights) + len(report.risks) <= 6
    assert {bucket.name for bucket in report.bucket_scores} == {agent.value for agent in AgentName}
