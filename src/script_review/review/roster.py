"""Specialist agent roster, retrieval profiles and context assembly."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from script_review.config import RetrievalConfig
from script_review.ingest.embedding_store import VectorCapability
from script_review.obs.logging import get_logger
from script_review.retrieval.retriever import HybridRetriever
from script_review.types import DocFilters, SearchResult, Submission

LOGGER = get_logger(__name__)


class AgentName(str, Enum):
    STRUCTURE = "structure"
    CHARACTER = "character"
    DIALOGUE = "dialogue"
    PACING = "pacing"
    MARKET = "market"
    CULTURAL = "cultural"
    PLATFORM = "platform"
    ETHICS = "ethics"


@dataclass(frozen=True, slots=True)
class AgentProfile:
    """How an agent biases the documentation query.

    `preferred_platform=None` means "the submission's own platform".
    """

    preferred_doc_type: str | None
    preferred_platform: str | None
    k: int
    focus: str


AGENT_PROFILES: dict[AgentName, AgentProfile] = {
    AgentName.STRUCTURE: AgentProfile("rubric", None, 6, "structure acts beats turning points"),
    AgentName.CHARACTER: AgentProfile("rubric", None, 6, "character arcs motivation stakes"),
    AgentName.DIALOGUE: AgentProfile("style", None, 6, "dialogue voice subtext"),
    AgentName.PACING: AgentProfile("platform", None, 6, "pacing hook retention runtime"),
    AgentName.MARKET: AgentProfile("playbook", None, 6, "market audience comparables"),
    AgentName.CULTURAL: AgentProfile("style", None, 6, "cultural authenticity language"),
    AgentName.PLATFORM: AgentProfile("platform", None, 6, "platform policy format"),
    AgentName.ETHICS: AgentProfile("legal", None, 8, "ethics legal sensitivity"),
}


@dataclass(slots=True)
class AgentContext:
    """Retrieved evidence handed to one agent."""

    agent: AgentName
    script_excerpts: list[SearchResult] = field(default_factory=list)
    doc_chunks: list[SearchResult] = field(default_factory=list)


def script_query(agent: AgentName, submission: Submission) -> str:
    return f"{agent.value} {submission.metadata.format}"


def docs_query(agent: AgentName, submission: Submission) -> str:
    profile = AGENT_PROFILES[agent]
    return f"{profile.focus} {submission.metadata.format} {submission.metadata.platform}"


def docs_filters(agent: AgentName, submission: Submission) -> DocFilters:
    profile = AGENT_PROFILES[agent]
    return DocFilters(
        doc_type=profile.preferred_doc_type,
        platform=profile.preferred_platform or submission.metadata.platform,
        region=submission.metadata.region,
    )


class ContextAssembler:
    """Builds per-agent context from the two corpora.

    The docs search and the script search each fan out to a vector and a
    lexical sub-query, so one assembly issues four concurrent sub-queries.
    """

    def __init__(self, retriever: HybridRetriever, config: RetrievalConfig | None = None) -> None:
        self.retriever = retriever
        self.config = config or retriever.config

    async def assemble(
        self,
        agent: AgentName,
        submission: Submission,
        *,
        capability: VectorCapability | None = None,
    ) -> AgentContext:
        profile = AGENT_PROFILES[agent]
        doc_chunks, script_excerpts = await asyncio.gather(
            self.retriever.search_docs(
                docs_query(agent, submission),
                docs_filters(agent, submission),
                profile.k,
                capability=capability,
            ),
            self.retriever.search_script(
                script_query(agent, submission),
                submission.id,
                self.config.script_k,
                capability=capability,
            ),
        )
        LOGGER.debug(
            "Context for %s/%s: %d doc chunks, %d script excerpts",
            submission.id,
            agent.value,
            len(doc_chunks),
            len(script_excerpts),
        )
        return AgentContext(agent=agent, script_excerpts=script_excerpts, doc_chunks=doc_chunks)
