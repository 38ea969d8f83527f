import asyncio

import pytest

from conftest import sample_metadata

from script_review.errors import InvalidArgumentError, NotFoundError
from script_review.review.models import FinalReport
from script_review.review.repository import (
    InMemoryDocumentRepository,
    InMemoryReportRepository,
    InMemorySubmissionRepository,
)
from script_review.types import Document, DocumentStatus, SubmissionStatus


@pytest.mark.asyncio
async def test_status_machine_happy_path() -> None:
    repo = InMemorySubmissionRepository()
    submission = await repo.create(sample_metadata(), source_ref="script.txt", submission_id="sub-1")
    assert submission.status == SubmissionStatus.QUEUED

    await repo.begin_processing("sub-1")
    await repo.mark_completed("sub-1")

    assert (await repo.get("sub-1")).status == SubmissionStatus.COMPLETED
    with pytest.raises(InvalidArgumentError):
        await repo.begin_processing("sub-1")


@pytest.mark.asyncio
async def test_failed_submission_can_be_rerun() -> None:
    repo = InMemorySubmissionRepository()
    await repo.create(sample_metadata(), submission_id="sub-1")
    await repo.begin_processing("sub-1")
    await repo.mark_failed("sub-1")

    submission = await repo.begin_processing("sub-1")

    assert submission.status == SubmissionStatus.PROCESSING


@pytest.mark.asyncio
async def test_concurrent_begin_processing_has_one_winner() -> None:
    repo = InMemorySubmissionRepository()
    await repo.create(sample_metadata(), submission_id="sub-1")

    outcomes = await asyncio.gather(
        repo.begin_processing("sub-1"), repo.begin_processing("sub-1"), return_exceptions=True
    )

    assert sum(1 for outcome in outcomes if isinstance(outcome, InvalidArgumentError)) == 1


@pytest.mark.asyncio
async def test_terminal_marks_require_processing_and_known_ids() -> None:
    repo = InMemorySubmissionRepository()
    await repo.create(sample_metadata(), submission_id="sub-1")

    with pytest.raises(InvalidArgumentError):
        await repo.mark_completed("sub-1")
    with pytest.raises(NotFoundError):
        await repo.begin_processing("missing")
    with pytest.raises(InvalidArgumentError):
        await repo.create(sample_metadata(), submission_id="sub-1")


@pytest.mark.asyncio
async def test_blank_platform_defaults_to_youtube() -> None:
    repo = InMemorySubmissionRepository()

    submission = await repo.create(sample_metadata(platform=""))

    assert submission.metadata.platform == "YouTube"
    assert submission.id


@pytest.mark.asyncio
async def test_report_upsert_replaces_and_stamps() -> None:
    reports = InMemoryReportRepository()

    first = await reports.upsert(FinalReport(submission_id="sub-1", overall_score=4.0))
    second = await reports.upsert(FinalReport(submission_id="sub-1", overall_score=7.0))

    stored = await reports.get("sub-1")
    assert stored.overall_score == 7.0
    assert second.updated_at >= first.updated_at
    assert await reports.get("sub-2") is None


@pytest.mark.asyncio
async def test_document_metadata_and_status_can_be_edited() -> None:
    repo = InMemoryDocumentRepository()
    await repo.add(Document(id="doc-1", title="Rubric", version="1", doc_type="rubric", source_ref="r.md"))

    updated = await repo.update_document("doc-1", status="active", version="2")

    assert updated.status is DocumentStatus.ACTIVE
    assert updated.version == "2"
    assert updated.title == "Rubric"
    assert (await repo.get_document("doc-1")).status is DocumentStatus.ACTIVE
    with pytest.raises(InvalidArgumentError):
        await repo.update_document("doc-1", source_ref="other.md")
    with pytest.raises(NotFoundError):
        await repo.update_document("missing", status="inactive")


@pytest.mark.asyncio
async def test_document_delete() -> None:
    repo = InMemoryDocumentRepository()
    await repo.add(Document(id="doc-1", title="Rubric", version="1", doc_type="rubric", source_ref="r.md"))

    await repo.delete_document("doc-1")

    assert await repo.list_documents() == []
    with pytest.raises(NotFoundError):
        await repo.delete_document("doc-1")
