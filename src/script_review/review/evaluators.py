"""Specialist agent evaluators and the registry that resolves them."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Protocol

from langchain_core.prompts import ChatPromptTemplate

from script_review.errors import InternalError
from script_review.review.models import AgentReview, Citation, Evidence, Finding
from script_review.review.roster import AgentContext, AgentName
from script_review.types import SearchResult, SubmissionMetadata


@dataclass(slots=True)
class AgentRequest:
    submission_id: str
    metadata: SubmissionMetadata
    context: AgentContext


class AgentEvaluator(Protocol):
    async def evaluate(self, agent: AgentName, request: AgentRequest) -> AgentReview:
        """Score one submission from one agent's perspective."""


class EvaluatorRegistry:
    """Maps every agent in the closed roster to its evaluator."""

    def __init__(self) -> None:
        self._evaluators: dict[AgentName, AgentEvaluator] = {}

    @classmethod
    def uniform(cls, evaluator: AgentEvaluator) -> "EvaluatorRegistry":
        """Register the same evaluator for every agent."""
        registry = cls()
        for agent in AgentName:
            registry.register(agent, evaluator)
        return registry

    def register(self, agent: AgentName, evaluator: AgentEvaluator) -> None:
        if agent in self._evaluators:
            raise ValueError(f"Evaluator already registered: {agent.value}")
        self._evaluators[agent] = evaluator

    def resolve(self, agent: AgentName) -> AgentEvaluator:
        evaluator = self._evaluators.get(agent)
        if evaluator is None:
            raise InternalError(f"No evaluator registered for agent: {agent.value}")
        return evaluator

    def ensure_complete(self) -> None:
        missing = [agent.value for agent in AgentName if agent not in self._evaluators]
        if missing:
            raise InternalError(f"Missing evaluators for agents: {', '.join(missing)}")

    async def evaluate(self, agent: AgentName, request: AgentRequest) -> AgentReview:
        evaluator = self.resolve(agent)
        review = await evaluator.evaluate(agent, request)
        if review.agent_name != agent.value:
            review = review.model_copy(update={"agent_name": agent.value})
        return review


_SYSTEM_PROMPT = """
You are a specialist rater for scripts. Use ONLY the provided context (script
excerpts and retrieved documentation) and return structured output.

Rules:
1) No plot invention beyond the given excerpts.
2) Keep evidence excerpts short.
3) Cite documentation chunks by source id and version.
4) Give recommendations a writer can apply in the next draft.
5) Score 0-10 and report your confidence 0-1.
""".strip()

_AGENT_TASKS: dict[AgentName, str] = {
    AgentName.STRUCTURE: "Assess act structure, beats, turning points and setups/payoffs.",
    AgentName.CHARACTER: "Assess character arcs, motivation, agency and stakes.",
    AgentName.DIALOGUE: "Assess dialogue voice, subtext, clarity and distinctiveness.",
    AgentName.PACING: "Assess pacing, hook density, early clarity and retention beats.",
    AgentName.MARKET: "Assess audience fit, comparables and commercial positioning.",
    AgentName.CULTURAL: "Assess cultural authenticity and language use without stereotyping.",
    AgentName.PLATFORM: "Assess fit with the target platform's format and policies.",
    AgentName.ETHICS: (
        "Screen for defamation, depiction of minors, medical or legal claims, religious "
        "sensitivity and dangerous acts. Mark blocking issues as critical."
    ),
}


def render_excerpts(items: list[SearchResult]) -> str:
    lines: list[str] = []
    for item in items:
        meta = item.metadata
        location = f"lines {meta.get('line_start')}-{meta.get('line_end')}"
        lines.append(f"[{item.id}] ({location}) {item.text}")
    return "\n\n".join(lines) or "(none)"


def render_doc_chunks(items: list[SearchResult]) -> str:
    lines: list[str] = []
    for item in items:
        meta = item.metadata
        header = (
            f"Source: {meta.get('doc_id')} v{meta.get('version')} "
            f"({meta.get('section') or 'n/a'}) | Type: {meta.get('doc_type')} "
            f"| Region: {meta.get('region') or 'N/A'} | Platform: {meta.get('platform') or 'N/A'}"
        )
        lines.append(f"{header}\n{item.text}")
    return "\n\n".join(lines) or "(none)"


class LLMAgentEvaluator:
    """Evaluator backed by a LangChain chat model with structured output."""

    def __init__(self, *, llm: Any, tasks: dict[AgentName, str] | None = None) -> None:
        self.llm = llm
        self.tasks = tasks or _AGENT_TASKS
        prompt = ChatPromptTemplate.from_messages(
            [
                ("system", _SYSTEM_PROMPT),
                (
                    "human",
                    "AGENT: {agent}\nTASK: {task}\n\nSUBMISSION METADATA:\n{metadata}\n\n"
                    "SCRIPT EXCERPTS:\n{excerpts}\n\nDOCUMENTATION CHUNKS:\n{docs}",
                ),
            ]
        )
        self._chain = prompt | self.llm.with_structured_output(AgentReview)

    async def evaluate(self, agent: AgentName, request: AgentRequest) -> AgentReview:
        result = await self._chain.ainvoke(
            {
                "agent": agent.value,
                "task": self.tasks[agent],
                "metadata": json.dumps(asdict(request.metadata), indent=2),
                "excerpts": render_excerpts(request.context.script_excerpts),
                "docs": render_doc_chunks(request.context.doc_chunks),
            }
        )
        if isinstance(result, dict):
            result = AgentReview.model_validate(result)
        return result.model_copy(update={"agent_name": agent.value})


_SENSITIVE_TERMS: dict[str, str] = {
    "minor": "major",
    "child": "major",
    "suicide": "critical",
    "overdose": "critical",
    "bomb": "critical",
    "defamation": "major",
    "cure": "minor",
    "blasphemy": "major",
}

_RECOMMENDATIONS: dict[AgentName, str] = {
    AgentName.STRUCTURE: "Make each act break a visible change of goal for the lead.",
    AgentName.CHARACTER: "State the protagonist's want and need within the first pages.",
    AgentName.DIALOGUE: "Cut on-the-nose lines and let subtext carry exposition.",
    AgentName.PACING: "Land a hook in the opening minute and trim scenes without a turn.",
    AgentName.MARKET: "Name two comparable titles and the audience they share.",
    AgentName.CULTURAL: "Check idiom and code-switching with a native speaker pass.",
    AgentName.PLATFORM: "Match runtime and episode shape to the target platform.",
    AgentName.ETHICS: "Add safe rewrites for any sensitive depiction flagged here.",
}


class DeterministicEvaluator:
    """Offline evaluator that scores from retrieval coverage alone.

    Keeps the same output contract as `LLMAgentEvaluator` and is used when no
    chat model is configured. The ethics agent also scans excerpts for a short
    list of sensitive terms.
    """

    def __init__(self, base_score: float = 6.0) -> None:
        self.base_score = base_score

    async def evaluate(self, agent: AgentName, request: AgentRequest) -> AgentReview:
        context = request.context
        citations = _citations_from_docs(context.doc_chunks)

        if not context.script_excerpts:
            return AgentReview(
                agent_name=agent.value,
                score=5.0,
                findings=[
                    Finding(
                        id=f"{agent.value}-no-evidence",
                        summary=f"No script excerpts were retrieved for {agent.value} review.",
                        severity="minor",
                    )
                ],
                recommendations=[_RECOMMENDATIONS[agent]],
                citations=citations,
                confidence=0.2,
            )

        score = self.base_score
        score += min(1.0, 0.25 * len(context.script_excerpts))
        score += min(2.0, 0.5 * len(citations))
        findings: list[Finding] = []
        if agent == AgentName.ETHICS:
            findings = _scan_sensitive(context.script_excerpts)
            score -= sum(2.0 if f.severity == "critical" else 1.0 for f in findings)

        return AgentReview(
            agent_name=agent.value,
            score=round(max(0.0, min(10.0, score)), 1),
            findings=findings,
            recommendations=[_RECOMMENDATIONS[agent]],
            citations=citations,
            confidence=0.6 if citations else 0.4,
        )


def _citations_from_docs(items: list[SearchResult]) -> list[Citation]:
    citations: list[Citation] = []
    seen: set[tuple[str, str, str | None]] = set()
    for item in items:
        meta = item.metadata
        source_id = meta.get("doc_id")
        if not source_id:
            continue
        key = (str(source_id), str(meta.get("version", "")), meta.get("section"))
        if key in seen:
            continue
        seen.add(key)
        line_range = None
        if meta.get("line_start") is not None and meta.get("line_end") is not None:
            line_range = [int(meta["line_start"]), int(meta["line_end"])]
        citations.append(
            Citation(
                source_id=key[0],
                version=key[1],
                section=key[2],
                line_range=line_range,
            )
        )
    return citations


def _scan_sensitive(excerpts: list[SearchResult]) -> list[Finding]:
    findings: list[Finding] = []
    for term, severity in _SENSITIVE_TERMS.items():
        pattern = re.compile(rf"\b{term}\b", flags=re.IGNORECASE)
        for excerpt in excerpts:
            match = pattern.search(excerpt.text)
            if match is None:
                continue
            start = max(0, match.start() - 60)
            findings.append(
                Finding(
                    id=f"ethics-{term}",
                    summary=f"Sensitive content referencing '{term}' needs review.",
                    severity=severity,
                    evidence=[Evidence(text_excerpt=excerpt.text[start : match.end() + 60])],
                )
            )
            break
    return findings
