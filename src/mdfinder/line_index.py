"""In-memory fuzzy index over every non-blank line of the corpus."""
from __future__ import annotations

import time
from dataclasses import dataclass, field, replace

from .config import SEARCH_RESULT_LIMIT
from .corpus import Document, split_lines
from .fuzzy import FuzzyPattern
from .observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SearchEntry:
    """One searchable line. `line` is 1-based; `match_indices` are offsets into `content`."""
    file: str
    line: int
    content: str
    match_indices: tuple[int, ...] = field(default=())


class LineIndex:
    """
    Flat list of (file, line, content) entries rebuilt wholesale from documents.
    Queries re-rank every entry; there is no incremental update.
    """

    def __init__(self, entries: list[SearchEntry]):
        self._entries = list(entries)
        self._haystacks = [f"{entry.file} {entry.content}" for entry in self._entries]

    @classmethod
    def from_documents(cls, documents: list[Document]) -> "LineIndex":
        started = time.perf_counter()
        entries: list[SearchEntry] = []
        for doc in documents:
            for idx, raw_line in enumerate(split_lines(doc.content), start=1):
                trimmed = raw_line.strip()
                if not trimmed:
                    continue
                entries.append(SearchEntry(file=doc.name, line=idx, content=trimmed))
        index = cls(entries)
        logger.info(
            "line_index_built",
            entries=len(entries),
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return index

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> list[SearchEntry]:
        return list(self._entries)

    def search(self, query: str, limit: int = SEARCH_RESULT_LIMIT) -> list[SearchEntry]:
        """
        Ranks entries against "file content" and highlights against content alone.
        The two passes may disagree on which characters matched.
        """
        if not query:
            return []
        pattern = FuzzyPattern.parse(query)
        if pattern.is_empty:
            return []

        scored: list[tuple[int, int, int]] = []
        for idx, haystack in enumerate(self._haystacks):
            score = pattern.score(haystack)
            if score is None:
                continue
            scored.append((-score, len(haystack), idx))
        scored.sort()

        results: list[SearchEntry] = []
        for _neg_score, _length, idx in scored[:limit]:
            entry = self._entries[idx]
            results.append(replace(entry, match_indices=tuple(pattern.indices(entry.content))))
        return results


def score_paths(query: str, paths: list[str]) -> list[str]:
    """Filters and orders paths by fuzzy score; used by the directory picker."""
    pattern = FuzzyPattern.parse(query)
    scored: list[tuple[int, int, str]] = []
    for idx, path in enumerate(paths):
        score = pattern.score(path)
        if score is None:
            continue
        scored.append((-score, idx, path))
    scored.sort()
    return [path for _neg, _idx, path in scored]
