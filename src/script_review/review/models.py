"""Structured review payloads exchanged between agents, judge and synthesizer.

These are pydantic models so the same classes validate LLM structured output
and serialize the stored report.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from script_review.types import utc_now

Severity = Literal["info", "minor", "major", "critical"]
Priority = Literal["high", "med", "low"]


class Evidence(BaseModel):
    scene_index: int | None = None
    page_range: list[int] | None = None
    text_excerpt: str | None = None


class Finding(BaseModel):
    id: str
    summary: str
    severity: Severity = "info"
    evidence: list[Evidence] = Field(default_factory=list)
    resolved: bool = False


class Citation(BaseModel):
    """Pointer back to a reference document section."""

    source_id: str
    version: str
    section: str | None = None
    line_range: list[int] | None = None


class AgentReview(BaseModel):
    """One specialist agent's assessment of a submission."""

    model_config = ConfigDict(extra="ignore")

    agent_name: str
    score: float = Field(ge=0.0, le=10.0)
    findings: list[Finding] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    citations: list[Citation] = Field(default_factory=list)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    def unresolved(self, severity: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity == severity and not f.resolved]


class BucketScore(BaseModel):
    name: str
    score: float = Field(ge=0.0, le=10.0)
    weight: float = Field(default=0.0, ge=0.0)


class ActionItem(BaseModel):
    description: str
    priority: Priority = "med"
    owner: str | None = None


class Contradiction(BaseModel):
    """A pair of buckets whose scores pull in opposite directions."""

    high: str
    low: str
    guidance: str


class FinalReport(BaseModel):
    """Calibrated report for one submission; stored by submission id."""

    submission_id: str
    overall_score: float = Field(ge=0.0, le=10.0)
    bucket_scores: list[BucketScore] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    action_plan: list[ActionItem] = Field(default_factory=list)
    references: list[Citation] = Field(default_factory=list)
    contradictions: list[Contradiction] = Field(default_factory=list)
    ethics_cap_applied: bool = False
    report_text: str | None = None
    notification_subject: str | None = None
    notification_body: str | None = None
    updated_at: datetime = Field(default_factory=utc_now)


class Synthesis(BaseModel):
    """Writer-facing rendering of a final report."""

    report_text: str
    notification_subject: str
    notification_body: str


class Notification(BaseModel):
    subject: str
    body: str
