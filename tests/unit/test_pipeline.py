import pytest

from conftest import FlakyEmbedder, make_stack

from script_review.config import ChunkingConfig, IngestionConfig
from script_review.errors import FailedPreconditionError, InvalidArgumentError, NotFoundError
from script_review.types import Document, DocumentStatus
from script_review.utils.parallel import map_in_batches

_TEN_UNITS = ChunkingConfig(window_chars=1000, overlap_chars=0)


def _text_with_failures(failing: int, total: int = 10) -> str:
    """Build `total` 1000-char segments; the first `failing` carry the failure marker."""
    segments = []
    for i in range(total):
        tag = "FAIL" if i < failing else "PASS"
        head = f"segment {i} {tag} "
        segments.append((head + "lorem ipsum " * 100)[:999] + "\n")
    return "".join(segments)


def _stack_for(failing: int):
    return make_stack(
        text=_text_with_failures(failing),
        embedder=FlakyEmbedder(),
        chunking=_TEN_UNITS,
        ingestion=IngestionConfig(max_concurrency=3, batch_pause_seconds=0.0),
    )


@pytest.mark.asyncio
async def test_all_units_failing_is_a_failed_precondition() -> None:
    stack = _stack_for(failing=10)

    with pytest.raises(FailedPreconditionError):
        await stack.pipeline.ingest("sub-1", "memory://script")


@pytest.mark.asyncio
async def test_four_of_ten_succeeding_fails_the_run() -> None:
    stack = _stack_for(failing=6)

    with pytest.raises(FailedPreconditionError):
        await stack.pipeline.ingest("sub-1", "memory://script")


@pytest.mark.asyncio
async def test_six_of_ten_succeeding_reports_partial_success() -> None:
    stack = _stack_for(failing=4)

    report = await stack.pipeline.ingest("sub-1", "memory://script")

    assert (report.processed, report.total) == (6, 10)
    assert len(report.errors) == 4
    assert await stack.unit_store.count_units("sub-1") == 6


@pytest.mark.asyncio
async def test_three_page_script_stores_one_unit_per_chunk() -> None:
    stack = make_stack()

    report = await stack.pipeline.ingest("sub-1", "memory://script")

    chunks = stack.chunker.chunk_fixed(stack.extractor.text)
    units = await stack.unit_store.list_units("sub-1")
    assert report.processed == report.total == len(chunks) == len(units)
    assert all(unit.vector is not None for unit in units)
    assert [unit.unit_index for unit in units] == list(range(len(chunks)))


@pytest.mark.asyncio
async def test_rerun_replaces_previous_units() -> None:
    stack = make_stack()

    await stack.pipeline.ingest("sub-1", "memory://script")
    first_ids = {unit.id for unit in await stack.unit_store.list_units("sub-1")}
    await stack.pipeline.ingest("sub-1", "memory://script")
    second = await stack.unit_store.list_units("sub-1")

    assert len(second) == len(first_ids)
    assert first_ids.isdisjoint(unit.id for unit in second)


@pytest.mark.asyncio
async def test_blank_extraction_is_invalid() -> None:
    stack = make_stack(text="   \n ")

    with pytest.raises(InvalidArgumentError):
        await stack.pipeline.ingest("sub-1", "memory://script")


@pytest.mark.asyncio
async def test_document_ingestion_flips_status() -> None:
    stack = make_stack()
    await stack.documents.add(
        Document(id="rubric-1", title="Rubric", version="3", doc_type="rubric", source_ref="rubric.md")
    )

    report = await stack.pipeline.ingest_document(stack.documents, "rubric-1")

    document = await stack.documents.get_document("rubric-1")
    assert document is not None and document.status is DocumentStatus.ACTIVE
    assert report.processed == report.total


@pytest.mark.asyncio
async def test_failed_document_ingestion_marks_inactive() -> None:
    stack = _stack_for(failing=10)
    await stack.documents.add(
        Document(id="legal-1", title="Legal", version="1", doc_type="legal", source_ref="legal.md")
    )

    with pytest.raises(FailedPreconditionError):
        await stack.pipeline.ingest_document(stack.documents, "legal-1")

    document = await stack.documents.get_document("legal-1")
    assert document is not None and document.status is DocumentStatus.INACTIVE


@pytest.mark.asyncio
async def test_unknown_document_is_not_found() -> None:
    stack = make_stack()

    with pytest.raises(NotFoundError):
        await stack.pipeline.ingest_document(stack.documents, "missing")


@pytest.mark.asyncio
async def test_map_in_batches_preserves_order_and_captures_failures() -> None:
    active = 0
    peak = 0

    async def work(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        try:
            if value == 4:
                raise ValueError("bad item")
            return value * 2
        finally:
            active -= 1

    outcomes = await map_in_batches(list(range(7)), work, batch_size=3)

    assert outcomes[:4] == [0, 2, 4, 6]
    assert isinstance(outcomes[4], ValueError)
    assert outcomes[5:] == [10, 12]
    assert peak <= 3
