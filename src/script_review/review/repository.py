"""In-memory repositories for documents, submissions and reports."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from typing import Any

from script_review.errors import InvalidArgumentError, NotFoundError
from script_review.review.models import FinalReport
from script_review.types import (
    Document,
    DocumentStatus,
    Submission,
    SubmissionMetadata,
    SubmissionStatus,
    utc_now,
)

# Statuses from which a run may start.
_RUNNABLE = frozenset({SubmissionStatus.QUEUED, SubmissionStatus.FAILED})

_EDITABLE_DOCUMENT_FIELDS = frozenset(
    {"title", "version", "doc_type", "region", "platform", "tags", "status"}
)


class InMemoryDocumentRepository:
    def __init__(self, documents: list[Document] | None = None) -> None:
        self._documents: dict[str, Document] = {}
        for document in documents or []:
            self._documents[document.id] = document

    async def add(self, document: Document) -> Document:
        if not document.id:
            raise InvalidArgumentError("Document id is required")
        self._documents[document.id] = document
        return document

    async def get_document(self, document_id: str) -> Document | None:
        return self._documents.get(document_id)

    async def list_documents(self) -> list[Document]:
        return list(self._documents.values())

    async def set_document_status(self, document_id: str, status: DocumentStatus) -> None:
        await self.update_document(document_id, status=status)

    async def update_document(self, document_id: str, **changes: Any) -> Document:
        """Apply metadata changes; fields left out keep their current values."""
        document = self._documents.get(document_id)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        unknown = set(changes) - _EDITABLE_DOCUMENT_FIELDS
        if unknown:
            raise InvalidArgumentError(f"Cannot update document fields: {', '.join(sorted(unknown))}")
        if "status" in changes:
            changes["status"] = DocumentStatus(changes["status"])
        updated = replace(document, **changes)
        self._documents[document_id] = updated
        return updated

    async def delete_document(self, document_id: str) -> Document:
        document = self._documents.pop(document_id, None)
        if document is None:
            raise NotFoundError(f"Document not found: {document_id}")
        return document


class InMemorySubmissionRepository:
    """Submission records plus their status machine.

    Every status write happens under one lock, so the check-and-set into
    `processing` behaves like a conditional update: of two concurrent callers
    exactly one wins.
    """

    def __init__(self) -> None:
        self._submissions: dict[str, Submission] = {}
        self._lock = asyncio.Lock()

    async def create(
        self,
        metadata: SubmissionMetadata,
        *,
        source_ref: str | None = None,
        submission_id: str | None = None,
    ) -> Submission:
        if not metadata.platform:
            metadata = replace(metadata, platform="YouTube")
        submission = Submission(
            id=submission_id or str(uuid.uuid4()),
            metadata=metadata,
            status=SubmissionStatus.QUEUED,
            source_ref=source_ref,
        )
        async with self._lock:
            if submission.id in self._submissions:
                raise InvalidArgumentError(f"Submission already exists: {submission.id}")
            self._submissions[submission.id] = submission
        return submission

    async def get(self, submission_id: str) -> Submission | None:
        return self._submissions.get(submission_id)

    async def begin_processing(self, submission_id: str) -> Submission:
        """Move a queued or failed submission to `processing`.

        Raises `InvalidArgumentError` when a run is already in progress or the
        submission has completed.
        """
        async with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None:
                raise NotFoundError(f"Submission not found: {submission_id}")
            if submission.status not in _RUNNABLE:
                raise InvalidArgumentError(
                    f"Submission {submission_id} cannot start a review from "
                    f"status '{submission.status.value}'"
                )
            submission.status = SubmissionStatus.PROCESSING
            return submission

    async def mark_completed(self, submission_id: str) -> None:
        await self._transition(submission_id, SubmissionStatus.COMPLETED)

    async def mark_failed(self, submission_id: str) -> None:
        await self._transition(submission_id, SubmissionStatus.FAILED)

    async def _transition(self, submission_id: str, status: SubmissionStatus) -> None:
        async with self._lock:
            submission = self._submissions.get(submission_id)
            if submission is None:
                raise NotFoundError(f"Submission not found: {submission_id}")
            if submission.status != SubmissionStatus.PROCESSING:
                raise InvalidArgumentError(
                    f"Submission {submission_id} is '{submission.status.value}', "
                    f"expected 'processing'"
                )
            submission.status = status


class InMemoryReportRepository:
    def __init__(self) -> None:
        self._reports: dict[str, FinalReport] = {}

    async def upsert(self, report: FinalReport) -> FinalReport:
        stored = report.model_copy(update={"updated_at": utc_now()})
        self._reports[report.submission_id] = stored
        return stored

    async def get(self, submission_id: str) -> FinalReport | None:
        return self._reports.get(submission_id)
