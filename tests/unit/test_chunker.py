import random

import pytest

from script_review.config import ChunkingConfig
from script_review.errors import InvalidArgumentError, PayloadTooLargeError
from script_review.ingest.chunker import (
    HeadingWindowChunker,
    estimate_tokens,
    is_heading,
    overlap_word_count,
    window_spans,
)

_VOCAB = ["ada", "market", "bridge", "phone", "father", "tunde", "night", "fabric", "notes", "speech"]


def _random_words(rng: random.Random, count: int) -> list[str]:
    return [rng.choice(_VOCAB) * rng.randint(1, 3) for _ in range(count)]


@pytest.mark.parametrize(
    "line",
    [
        "# Act One",
        "1. Opening Image",
        "1.2 Scope",
        "2.1.3 Midpoint Reversal",
        "3) Finale",
        "INT. LAGOS MARKET - DAY",
        "EXT. BRIDGE - NIGHT",
        "FADE IN:",
    ],
)
def test_heading_heuristic_accepts_headings(line: str) -> None:
    assert is_heading(line)


@pytest.mark.parametrize(
    "line", ["", "Ada haggles with a seller.", "ADA", "12345", "3 buses wait outside."]
)
def test_heading_heuristic_rejects_body_lines(line: str) -> None:
    assert not is_heading(line)


def test_headings_start_new_sections_with_line_numbers() -> None:
    chunker = HeadingWindowChunker()
    text = (
        "INT. LAGOS MARKET - DAY\n"
        "Ada haggles with a fabric seller.\n"
        "\n"
        "EXT. BRIDGE - NIGHT\n"
        "Traffic crawls across the water.\n"
    )

    chunks = chunker.chunk(text)

    assert [chunk.section for chunk in chunks] == ["INT. LAGOS MARKET - DAY", "EXT. BRIDGE - NIGHT"]
    assert chunks[0].line_start == 1
    assert chunks[1].line_start == 4
    assert chunks[1].text.startswith("EXT. BRIDGE - NIGHT")
    assert [chunk.index for chunk in chunks] == [0, 1]


def test_token_windows_respect_budget_and_overlap() -> None:
    chunker = HeadingWindowChunker()
    words = [f"w{i:03d}" for i in range(600)]

    chunks = chunker.chunk(" ".join(words), max_unit_size=100, overlap=20)

    assert len(chunks) > 1
    for chunk in chunks:
        assert sum(estimate_tokens(word + " ") for word in chunk.text.split()) <= 100
    overlap = overlap_word_count(20)
    first, second = chunks[0].text.split(), chunks[1].text.split()
    assert second[:overlap] == first[-overlap:]


def test_oversized_single_word_still_yields_a_unit() -> None:
    chunker = HeadingWindowChunker()
    giant = "x" * 5000

    chunks = chunker.chunk(f"{giant} tail", max_unit_size=100, overlap=10)

    assert chunks[0].text == giant
    assert chunks[-1].text.endswith("tail")


@pytest.mark.parametrize("seed", range(8))
def test_units_are_never_empty_and_reconstruct_content(seed: int) -> None:
    rng = random.Random(seed)
    words = _random_words(rng, rng.randint(50, 400))
    chunker = HeadingWindowChunker()

    chunks = chunker.chunk(" ".join(words), max_unit_size=rng.randint(100, 300), overlap=0)

    assert all(chunk.text.split() for chunk in chunks)
    rebuilt = [word for chunk in chunks for word in chunk.text.split()]
    assert rebuilt == words


@pytest.mark.parametrize("seed", range(25))
def test_window_start_strictly_advances(seed: int) -> None:
    rng = random.Random(seed)
    words = _random_words(rng, rng.randint(1, 300))
    max_tokens = rng.randint(1, 200)
    overlap_tokens = rng.randint(0, max_tokens - 1)

    spans = list(window_spans(words, max_tokens, overlap_tokens))

    starts = [start for start, _ in spans]
    assert starts == sorted(set(starts))
    assert all(end > start for start, end in spans)
    assert spans[-1][1] == len(words)


def test_invalid_parameters_are_rejected() -> None:
    chunker = HeadingWindowChunker()

    with pytest.raises(InvalidArgumentError):
        chunker.chunk("   \n  ")
    with pytest.raises(InvalidArgumentError):
        chunker.chunk("some text", max_unit_size=100, overlap=100)
    with pytest.raises(InvalidArgumentError):
        chunker.chunk("some text", max_unit_size=99, overlap=0)
    with pytest.raises(InvalidArgumentError):
        chunker.chunk("some text", max_unit_size=2001, overlap=0)


def test_oversized_input_reports_size_and_limit() -> None:
    chunker = HeadingWindowChunker(ChunkingConfig(max_input_chars=1000))

    with pytest.raises(PayloadTooLargeError) as exc_info:
        chunker.chunk("a" * 1001)

    assert exc_info.value.size == 1001
    assert exc_info.value.limit == 1000
    assert "1001" in str(exc_info.value)
    assert "1000" in str(exc_info.value)


def test_unit_ceiling_truncates() -> None:
    chunker = HeadingWindowChunker(ChunkingConfig(max_units=3))
    text = "\n".join(f"# Section {i}\nbody text {i}" for i in range(10))

    chunks = chunker.chunk(text)

    assert len(chunks) == 3


def test_config_rejects_overlap_not_below_window() -> None:
    with pytest.raises(ValueError):
        ChunkingConfig(window_chars=1000, overlap_chars=1000)


def test_fixed_windows_step_by_window_minus_overlap() -> None:
    chunker = HeadingWindowChunker(ChunkingConfig(window_chars=1000, overlap_chars=100))
    text = "".join(chr(ord("a") + (i % 26)) for i in range(2500))

    chunks = chunker.chunk_fixed(text)

    assert [chunk.text for chunk in chunks] == [text[0:1000], text[900:1900], text[1800:2800]]
    assert [chunk.index for chunk in chunks] == [0, 1, 2]
    assert all(chunk.section is None for chunk in chunks)


def test_fixed_windows_track_lines_and_skip_blank_input() -> None:
    chunker = HeadingWindowChunker(ChunkingConfig(window_chars=1000, overlap_chars=0))
    text = ("line of script text\n" * 100)[:1500]

    chunks = chunker.chunk_fixed(text)

    assert chunks[0].line_start == 1
    assert chunks[1].line_start == 51
    assert chunker.chunk_fixed("   ") == []


def test_dotted_numbers_without_terminator_open_sections() -> None:
    chunker = HeadingWindowChunker()
    text = "1.1 Purpose\nWhy the show exists.\n1.2 Scope\nWhat the pilot covers.\n"

    chunks = chunker.chunk(text)

    assert [chunk.section for chunk in chunks] == ["1.1 Purpose", "1.2 Scope"]
