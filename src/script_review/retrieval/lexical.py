"""BM25 lexical index over stored units."""

from __future__ import annotations

import re
from collections.abc import Collection
from dataclasses import dataclass

from rank_bm25 import BM25Plus

from script_review.types import SearchResult, SourceKind, Unit

_WORD = re.compile(r"\w+", flags=re.UNICODE)
_STOPWORDS = frozenset(
    "a an and are as at be but by for from has have in into is it its of on or "
    "that the their this to was were will with".split()
)


def tokenize(text: str) -> list[str]:
    return [token for token in (t.lower() for t in _WORD.findall(text)) if token not in _STOPWORDS]


@dataclass(slots=True)
class LexicalHit:
    """A lexical match; `rank` is higher for more relevant units."""

    unit: Unit
    rank: float

    def to_result(self) -> SearchResult:
        return SearchResult(
            id=self.unit.id,
            text=self.unit.text,
            score=self.rank,
            metadata={**unit_metadata(self.unit), "rank": self.rank},
            origin="lexical",
        )


def unit_metadata(unit: Unit) -> dict[str, object]:
    return {
        "parent_id": unit.parent_id,
        "source_kind": unit.source_kind.value,
        "unit_index": unit.unit_index,
        "section": unit.section,
        "line_start": unit.line_start,
        "line_end": unit.line_end,
        "page_start": unit.page_start,
        "page_end": unit.page_end,
    }


class LexicalIndex:
    """Keeps a token list per unit and ranks candidates with BM25+.

    Statistics are computed over the candidate set of each query (the scoped
    corpus), so ranks are deterministic for a given store state and scope.
    A unit is a candidate only if it shares at least one query term.
    """

    def __init__(self) -> None:
        self._tokens: dict[str, list[str]] = {}
        self._units: dict[str, Unit] = {}

    def add(self, unit: Unit) -> None:
        text = f"{unit.section}\n{unit.text}" if unit.section else unit.text
        self._tokens[unit.id] = tokenize(text)
        self._units[unit.id] = unit

    def remove_parent(self, parent_id: str) -> int:
        doomed = [uid for uid, unit in self._units.items() if unit.parent_id == parent_id]
        for uid in doomed:
            del self._tokens[uid]
            del self._units[uid]
        return len(doomed)

    def search(
        self,
        query: str,
        k: int,
        *,
        source_kind: SourceKind,
        parent_ids: Collection[str] | None = None,
    ) -> list[LexicalHit]:
        query_tokens = tokenize(query)
        if not query_tokens or k <= 0:
            return []

        scoped = [
            unit
            for unit in self._units.values()
            if unit.source_kind == source_kind
            and (parent_ids is None or unit.parent_id in parent_ids)
        ]
        if not scoped:
            return []

        corpus = [self._tokens[unit.id] for unit in scoped]
        if not any(corpus):
            return []
        bm25 = BM25Plus(corpus)
        scores = bm25.get_scores(query_tokens)
        wanted = set(query_tokens)

        hits = [
            LexicalHit(unit=unit, rank=float(score))
            for unit, tokens, score in zip(scoped, corpus, scores, strict=True)
            if wanted.intersection(tokens)
        ]
        hits.sort(key=lambda hit: (-hit.rank, hit.unit.parent_id, hit.unit.unit_index))
        return hits[:k]
