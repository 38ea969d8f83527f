"""Text extraction contract and plain-format extractors.

Binary formats (PDF, DOCX, FDX) are handled by external extractors that
implement `TextExtractor`; the registry here covers formats that need no
parsing library.
"""

from __future__ import annotations

import asyncio
import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from script_review.errors import InvalidArgumentError, PayloadTooLargeError

MAX_FILE_BYTES = 50 * 1024 * 1024
CHARS_PER_PAGE = 3000


@dataclass(slots=True)
class ExtractionStats:
    chars: int
    estimated_pages: int


@dataclass(slots=True)
class ExtractedText:
    text: str
    stats: ExtractionStats


class TextExtractor(Protocol):
    """Turns a stored source into plain text."""

    async def extract(self, source_ref: str) -> ExtractedText:
        """Return non-empty text or raise `InvalidArgumentError`."""


class FormatDecoder(ABC):
    """Decodes raw bytes of one file family into text."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def decode(self, payload: bytes) -> str:
        """Return the text content of `payload`."""


class PlainTextDecoder(FormatDecoder):
    extensions = (".txt", ".text", ".fountain")

    def decode(self, payload: bytes) -> str:
        return payload.decode("utf-8")


class MarkdownDecoder(FormatDecoder):
    extensions = (".md", ".markdown")

    def decode(self, payload: bytes) -> str:
        return payload.decode("utf-8")


class JsonDecoder(FormatDecoder):
    """Renders JSON deterministically so identical payloads chunk identically."""

    extensions = (".json",)

    def decode(self, payload: bytes) -> str:
        data: Any = json.loads(payload.decode("utf-8"))
        if isinstance(data, (dict, list)):
            return json.dumps(data, ensure_ascii=False, sort_keys=True, indent=2)
        return str(data)


def build_stats(text: str) -> ExtractionStats:
    return ExtractionStats(
        chars=len(text),
        estimated_pages=max(1, math.ceil(len(text) / CHARS_PER_PAGE)),
    )


class FileTextExtractor:
    """Extracts text from local files, dispatching on extension."""

    def __init__(
        self,
        decoders: list[FormatDecoder] | None = None,
        *,
        root: str | Path | None = None,
        max_bytes: int = MAX_FILE_BYTES,
    ) -> None:
        self._decoders: dict[str, FormatDecoder] = {}
        self._root = Path(root) if root is not None else None
        self._max_bytes = max_bytes
        for decoder in decoders or [PlainTextDecoder(), MarkdownDecoder(), JsonDecoder()]:
            self.register(decoder)

    def register(self, decoder: FormatDecoder) -> None:
        for extension in decoder.extensions:
            self._decoders[extension.lower()] = decoder

    async def extract(self, source_ref: str) -> ExtractedText:
        if not source_ref:
            raise InvalidArgumentError("Invalid source reference")
        path = self._resolve(source_ref)
        decoder = self._decoders.get(path.suffix.lower())
        if decoder is None:
            raise InvalidArgumentError(f"No extractor registered for extension: {path.suffix}")

        try:
            payload = await asyncio.to_thread(path.read_bytes)
        except OSError as exc:
            raise InvalidArgumentError(f"Unable to read source: {source_ref}", exc) from exc
        if len(payload) > self._max_bytes:
            raise PayloadTooLargeError("File", len(payload), self._max_bytes)

        try:
            text = decoder.decode(payload)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidArgumentError(f"Corrupt or unreadable source: {source_ref}", exc) from exc

        if not text.strip():
            raise InvalidArgumentError(f"No text could be extracted from {source_ref}")
        return ExtractedText(text=text, stats=build_stats(text))

    def _resolve(self, source_ref: str) -> Path:
        path = Path(source_ref)
        if self._root is not None and not path.is_absolute():
            path = self._root / path
        return path
