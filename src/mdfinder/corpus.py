"""
Corpus loading for a markdown root.
Walks the tree honoring ignore files, reads markdown documents and builds the
line-tagged context handed to the assistant.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Iterator

import pathspec

from .config import DIR_ANCESTOR_LEVELS, DIR_MAX_DEPTH, IGNORE_FILE_NAMES, MARKDOWN_SUFFIXES
from .observability import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Document:
    """A markdown file keyed by its path relative to the corpus root."""
    name: str
    content: str


@dataclass(frozen=True)
class _IgnoreRules:
    base: Path
    spec: pathspec.PathSpec


def split_lines(text: str) -> list[str]:
    """Splits on newlines only, dropping a trailing CR and the final empty line."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _load_ignore_rules(directory: Path) -> _IgnoreRules | None:
    patterns: list[str] = []
    for name in IGNORE_FILE_NAMES:
        try:
            patterns.extend((directory / name).read_text(encoding="utf-8").splitlines())
        except (OSError, UnicodeDecodeError):
            continue
    if not patterns:
        return None
    return _IgnoreRules(base=directory, spec=pathspec.GitIgnoreSpec.from_lines(patterns))


def _is_ignored(path: Path, is_dir: bool, rules: tuple[_IgnoreRules, ...]) -> bool:
    for rule in rules:
        relative = path.relative_to(rule.base).as_posix()
        if is_dir:
            relative += "/"
        if rule.spec.match_file(relative):
            return True
    return False


def _walk(
    root: Path,
    *,
    skip_hidden_dirs: bool,
    max_depth: int | None = None,
) -> Iterator[tuple[Path, bool]]:
    """Yields (path, is_dir) for every entry under root that survives the ignore rules."""
    stack: list[tuple[Path, int, tuple[_IgnoreRules, ...]]] = [(root, 0, ())]
    while stack:
        directory, depth, rules = stack.pop()
        local_rules = _load_ignore_rules(directory)
        if local_rules is not None:
            rules = rules + (local_rules,)
        try:
            entries = sorted(os.scandir(directory), key=lambda item: item.name)
        except OSError:
            continue

        child_dirs: list[Path] = []
        for entry in entries:
            path = Path(entry.path)
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                is_file = not is_dir and entry.is_file()
            except OSError:
                continue
            if is_dir:
                if entry.name == ".git":
                    continue
                if skip_hidden_dirs and entry.name.startswith("."):
                    continue
                if _is_ignored(path, True, rules):
                    continue
                yield path, True
                if max_depth is None or depth + 1 < max_depth:
                    child_dirs.append(path)
            elif is_file:
                if _is_ignored(path, False, rules):
                    continue
                yield path, False

        for child in reversed(child_dirs):
            stack.append((child, depth + 1, rules))


def load_documents(root: str | Path) -> list[Document]:
    """Loads every markdown file under root. Unreadable files are skipped."""
    base = Path(root)
    documents: list[Document] = []
    for path, is_dir in _walk(base, skip_hidden_dirs=False):
        if is_dir or path.suffix not in MARKDOWN_SUFFIXES:
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            continue
        documents.append(Document(name=path.relative_to(base).as_posix(), content=content))

    documents.sort(key=lambda doc: doc.name)
    logger.info("corpus_loaded", root=str(base), documents=len(documents))
    return documents


def build_context(documents: list[Document]) -> str:
    """Renders every source line with an inline [file:line] tag for the chat preamble."""
    parts: list[str] = []
    for doc in documents:
        parts.append(f"\n--- {doc.name} ---\n")
        for idx, line in enumerate(split_lines(doc.content), start=1):
            parts.append(f"[{doc.name}:{idx}] {line}\n")
    return "".join(parts)


def scan_directories(
    root: str | Path,
    ancestor_levels: int = DIR_ANCESTOR_LEVELS,
    max_depth: int = DIR_MAX_DEPTH,
) -> list[str]:
    """
    Lists candidate roots for the directory picker.
    Ancestors come out as "../name", "../../name"; descendants as relative paths.
    """
    base = Path(root).resolve()
    found: list[str] = []

    ancestor = base
    for level in range(1, ancestor_levels + 1):
        parent = ancestor.parent
        if parent == ancestor:
            break
        if parent.name:
            found.append("../" * level + parent.name)
        ancestor = parent

    for path, is_dir in _walk(base, skip_hidden_dirs=True, max_depth=max_depth):
        if is_dir:
            found.append(path.relative_to(base).as_posix())

    found.sort(key=lambda item: PurePosixPath(item).parts)
    return found


def resolve_directory_choice(root: str | Path, choice: str) -> Path:
    """Maps a scan_directories label back to a directory: "../../name" is the second ancestor itself."""
    base = Path(root).resolve()
    rest = choice
    level = 0
    while rest.startswith("../"):
        rest = rest[3:]
        level += 1
    if level and "/" not in rest and level <= len(base.parents):
        ancestor = base.parents[level - 1]
        if ancestor.name == rest:
            return ancestor
    return (base / choice).resolve()
