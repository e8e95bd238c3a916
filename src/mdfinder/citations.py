"""Inline [file:line] references pulled out of finished assistant answers."""
from __future__ import annotations

import re
from dataclasses import dataclass

_CITATION_PATTERN = re.compile(r"\[([^\]]+):(\d+)\]")


@dataclass(frozen=True)
class Citation:
    file: str
    line: int


def parse_citations(text: str) -> list[Citation]:
    """
    Collects every [file:line] reference in order of first appearance.
    Nothing is checked against the corpus; a cited file may not exist.
    """
    citations: list[Citation] = []
    seen: set[Citation] = set()
    for match in _CITATION_PATTERN.finditer(text or ""):
        citation = Citation(file=match.group(1), line=int(match.group(2)))
        if citation in seen:
            continue
        seen.add(citation)
        citations.append(citation)
    return citations


def filter_citations(citations: list[Citation], query: str) -> list[Citation]:
    if not query:
        return list(citations)
    needle = query.lower()
    return [citation for citation in citations if needle in citation.file.lower()]
