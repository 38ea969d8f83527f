"""Shared domain records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class SourceKind(str, Enum):
    DOC = "doc"
    SCRIPT = "script"


class DocumentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    EXPERIMENTAL = "experimental"


class SubmissionStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class TextChunk:
    """A chunker output before it becomes a persisted unit."""

    text: str
    index: int
    section: str | None = None
    line_start: int | None = None
    line_end: int | None = None


@dataclass(slots=True, frozen=True)
class Unit:
    """An indexable slice of a document or script."""

    id: str
    parent_id: str
    source_kind: SourceKind
    unit_index: int
    text: str
    vector: list[float] | None = None
    section: str | None = None
    line_start: int | None = None
    line_end: int | None = None
    page_start: int | None = None
    page_end: int | None = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class Document:
    """Versioned reference material."""

    id: str
    title: str
    version: str
    doc_type: str
    source_ref: str
    region: str | None = None
    platform: str | None = None
    tags: list[str] = field(default_factory=list)
    status: DocumentStatus = DocumentStatus.EXPERIMENTAL


@dataclass(slots=True)
class SubmissionMetadata:
    writer: str
    title: str
    format: str
    draft_version: str
    platform: str = "YouTube"
    genre: str | None = None
    region: str | None = None


@dataclass(slots=True)
class Submission:
    """A script under review."""

    id: str
    metadata: SubmissionMetadata
    status: SubmissionStatus = SubmissionStatus.QUEUED
    source_ref: str | None = None


@dataclass(slots=True)
class DocFilters:
    doc_type: str | None = None
    region: str | None = None
    platform: str | None = None
    doc_id: str | None = None


@dataclass(slots=True)
class SearchResult:
    """A retrieval hit; `origin` records which signal produced it."""

    id: str
    text: str
    score: float
    metadata: dict[str, Any]
    origin: str = "vector"


@dataclass(slots=True)
class IngestionReport:
    """Outcome of one ingestion run."""

    parent_id: str
    processed: int
    total: int
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.total - self.processed

    @property
    def failure_rate(self) -> float:
        if self.total == 0:
            return 1.0
        return self.failed / self.total
