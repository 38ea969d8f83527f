"""Heading-aware word windows and fixed character windows."""

from __future__ import annotations

import math
import re
from collections.abc import Iterator
from dataclasses import dataclass, field

from script_review.config import ChunkingConfig
from script_review.errors import InvalidArgumentError, PayloadTooLargeError
from script_review.obs.logging import get_logger
from script_review.types import TextChunk

LOGGER = get_logger(__name__)

MIN_UNIT_TOKENS = 100
MAX_UNIT_TOKENS = 2000

_LINE_SPLIT = re.compile(r"\r?\n")
_MARKDOWN_HEADING = re.compile(r"^#{1,6}\s*\S")
_NUMBERED_HEADING = re.compile(r"^\d+(?:(?:\.\d+)+[.)]?|[.)])\s+\S")
_SCENE_HEADING = re.compile(r"^(?:INT\./EXT|INT/EXT|I/E|INT|EXT|EST)[.\s]")
_CAPS_HEADING = re.compile(r"^[A-Z][A-Z0-9\s'&:,.()/\-!?]{4,}$")


def estimate_tokens(text: str) -> int:
    """Length heuristic: roughly four characters per token."""
    return math.ceil(len(text) / 4)


def is_heading(line: str) -> bool:
    """Return True when a line opens a new section."""
    stripped = line.strip()
    if not stripped:
        return False
    if _MARKDOWN_HEADING.match(stripped) or _NUMBERED_HEADING.match(stripped):
        return True
    if _SCENE_HEADING.match(stripped):
        return True
    return bool(_CAPS_HEADING.match(stripped)) and any(ch.isalpha() for ch in stripped)


def overlap_word_count(overlap_tokens: int) -> int:
    """Translate an overlap budget in estimated tokens into a word count."""
    return overlap_tokens // max(1, estimate_tokens("avgword"))


def window_spans(words: list[str], max_tokens: int, overlap_tokens: int) -> Iterator[tuple[int, int]]:
    """Yield `[start, end)` word spans covering `words`.

    Every span holds at least one word and the start advances by at least one
    word per iteration, so an oversized word cannot stall the window.
    """
    overlap_words = overlap_word_count(overlap_tokens)
    start = 0
    while start < len(words):
        end = start
        size = 0
        while end < len(words):
            cost = estimate_tokens(words[end] + " ")
            if size + cost > max_tokens:
                break
            size += cost
            end += 1
        if end == start:
            end = start + 1

        yield start, end

        if end >= len(words):
            break
        start = max(start + 1, end - overlap_words)


@dataclass(slots=True)
class _SectionBuffer:
    section: str | None = None
    line_start: int = 1
    lines: list[str] = field(default_factory=list)


class HeadingWindowChunker:
    """Splits text into overlapping, section-aware units.

    Two regimes are exposed because they serve different consumers:

    - `chunk` (token-budgeted): lines are grouped into sections at every
      detected heading, then each section is cut into word windows whose
      estimated size stays within `max_tokens`. Used for agent context.
    - `chunk_fixed` (byte-budgeted): fixed character windows with a character
      overlap and no heading awareness. Used for raw ingestion, where every
      unit must stay under the embedding provider's length limit.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk(
        self,
        text: str,
        max_unit_size: int | None = None,
        overlap: int | None = None,
    ) -> list[TextChunk]:
        max_tokens = max_unit_size if max_unit_size is not None else self.config.max_tokens
        overlap_tokens = overlap if overlap is not None else self.config.overlap_tokens
        if not MIN_UNIT_TOKENS <= max_tokens <= MAX_UNIT_TOKENS:
            raise InvalidArgumentError(
                f"max_unit_size must be between {MIN_UNIT_TOKENS} and {MAX_UNIT_TOKENS}"
            )
        if overlap_tokens < 0 or overlap_tokens >= max_tokens:
            raise InvalidArgumentError("overlap must be between 0 and max_unit_size")
        if not isinstance(text, str) or not text.strip():
            raise InvalidArgumentError("Text input is required and must be non-empty")
        if len(text) > self.config.max_input_chars:
            raise PayloadTooLargeError("Text", len(text), self.config.max_input_chars)

        chunks: list[TextChunk] = []
        lines = _LINE_SPLIT.split(text)
        buffer = _SectionBuffer()

        for index, line in enumerate(lines):
            if is_heading(line):
                self._flush(buffer, index, max_tokens, overlap_tokens, chunks)
                buffer = _SectionBuffer(section=line.strip(), line_start=index + 1)
            buffer.lines.append(line)
        self._flush(buffer, len(lines), max_tokens, overlap_tokens, chunks)

        if not chunks:
            raise InvalidArgumentError("No valid chunks could be created from the text")
        if len(chunks) > self.config.max_units:
            LOGGER.warning(
                "Too many chunks (%d), limiting to %d", len(chunks), self.config.max_units
            )
            chunks = chunks[: self.config.max_units]
        return chunks

    def chunk_fixed(self, text: str) -> list[TextChunk]:
        """Cut `text` into fixed character windows; returns [] for blank input."""
        if not text or not text.strip():
            return []

        window = self.config.window_chars
        step = window - self.config.overlap_chars
        chunks: list[TextChunk] = []
        for offset in range(0, len(text), step):
            piece = text[offset : offset + window]
            if not piece.strip():
                continue
            chunks.append(
                TextChunk(
                    text=piece.strip(),
                    index=len(chunks),
                    line_start=text.count("\n", 0, offset) + 1,
                    line_end=text.count("\n", 0, min(offset + window, len(text))) + 1,
                )
            )
            if offset + window >= len(text):
                break
        return chunks

    @staticmethod
    def _flush(
        buffer: _SectionBuffer,
        line_end: int,
        max_tokens: int,
        overlap_tokens: int,
        out: list[TextChunk],
    ) -> None:
        body = "\n".join(buffer.lines).strip()
        if not body:
            return
        words = body.split()
        for start, end in window_spans(words, max_tokens, overlap_tokens):
            out.append(
                TextChunk(
                    text=" ".join(words[start:end]),
                    index=len(out),
                    section=buffer.section,
                    line_start=buffer.line_start,
                    line_end=line_end,
                )
            )
