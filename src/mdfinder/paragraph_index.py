# /mdfinder/paragraph_index.py
"""
Persisted full-text index over corpus paragraphs.

Each corpus root gets its own cache namespace (a hashed directory under the
cache root) holding an SQLite FTS5 database, an mtime fingerprint and a small
metadata file. The fingerprint is the only staleness test: any drift, or a
missing metadata file, throws the namespace away and re-indexes everything.
"""
from __future__ import annotations

import hashlib
import json
import re
import shutil
import sqlite3
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import CACHE_ROOT
from .corpus import Document, split_lines
from .db_migrations import SqliteMigration, applied_versions, apply_sqlite_migrations
from .observability import get_logger

logger = get_logger(__name__)

PARAGRAPH_INDEX_SCHEMA_VERSION = 1
INDEX_COMPONENT = "paragraph_index"
INDEX_DB_NAME = "paragraphs.sqlite"
FINGERPRINT_FILE_NAME = "mtimes.json"
META_FILE_NAME = "meta.json"

# Queries using any of these are handed to FTS5 verbatim.
_FTS5_OPERATOR_RE = re.compile(r'\b(?:AND|OR|NOT|NEAR)\b|["*^]|\b(?:file|line|content)\s*:')
_QUERY_TERM_RE = re.compile(r"\w+", flags=re.UNICODE)

_MIGRATIONS = [
    SqliteMigration(
        version=1,
        name="create_paragraphs_fts",
        statements=(
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS paragraphs USING fts5(
                file UNINDEXED,
                line UNINDEXED,
                content,
                tokenize = 'unicode61 remove_diacritics 2'
            )
            """,
        ),
    ),
]


@dataclass(frozen=True)
class SemanticChunk:
    """A retrieved paragraph. `line` is the 1-based first line; higher score is better."""
    file: str
    line: int
    content: str
    score: float


def extract_paragraphs(content: str) -> list[tuple[int, str]]:
    """Groups runs of non-blank lines into single-line paragraphs tagged with their first line."""
    paragraphs: list[tuple[int, str]] = []
    current: list[str] = []
    start_line = 0
    for idx, raw_line in enumerate(split_lines(content), start=1):
        trimmed = raw_line.strip()
        if not trimmed:
            if current:
                paragraphs.append((start_line, " ".join(current)))
                current = []
            continue
        if not current:
            start_line = idx
        current.append(trimmed)
    if current:
        paragraphs.append((start_line, " ".join(current)))
    return paragraphs


def build_match_query(query: str) -> str:
    """
    Turns a plain question into an OR of quoted terms, so punctuation is
    harmless and any shared word can match. Queries that already use FTS5
    syntax are returned unchanged.
    """
    if _FTS5_OPERATOR_RE.search(query):
        return query
    terms: list[str] = []
    for term in _QUERY_TERM_RE.findall(query):
        if term not in terms:
            terms.append(term)
    return " OR ".join(f'"{term}"' for term in terms)


def cache_dir_for(root: str | Path, cache_root: str | Path = CACHE_ROOT) -> Path:
    """Returns the per-root namespace; the hash is only a stable name, not a security boundary."""
    absolute = str(Path(root).resolve())
    digest = hashlib.md5(absolute.encode("utf-8"), usedforsecurity=False).hexdigest()
    return Path(cache_root).resolve() / digest[:16]


def file_fingerprint(documents: list[Document], root: str | Path) -> dict[str, int]:
    """Maps each document name to its mtime in whole seconds; unstat-able files are left out."""
    base = Path(root)
    fingerprint: dict[str, int] = {}
    for doc in documents:
        try:
            fingerprint[doc.name] = int((base / doc.name).stat().st_mtime)
        except OSError:
            continue
    return fingerprint


def load_fingerprint(cache_dir: Path) -> dict[str, int] | None:
    path = Path(cache_dir) / FINGERPRINT_FILE_NAME
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    if not isinstance(payload, dict):
        return None
    fingerprint: dict[str, int] = {}
    for name, mtime in payload.items():
        if not isinstance(name, str) or not isinstance(mtime, int):
            return None
        fingerprint[name] = mtime
    return fingerprint


def clear_cache(root: str | Path, cache_root: str | Path = CACHE_ROOT) -> Path:
    """Deletes the root's namespace so the next open rebuilds regardless of mtimes."""
    cache_dir = cache_dir_for(root, cache_root)
    shutil.rmtree(cache_dir, ignore_errors=True)
    logger.info("semantic_cache_cleared", cache_dir=str(cache_dir))
    return cache_dir


def _atomic_write_json(path: Path, payload: dict[str, Any]):
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, ensure_ascii=True, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ParagraphIndex:
    """Relevance-ranked paragraph lookup backed by an on-disk FTS5 table."""

    def __init__(
        self,
        conn: sqlite3.Connection | None,
        cache_dir: Path,
        *,
        rebuilt: bool,
    ):
        self._conn = conn
        self.cache_dir = Path(cache_dir)
        self.rebuilt = bool(rebuilt)

    @property
    def available(self) -> bool:
        return self._conn is not None

    @classmethod
    def open(
        cls,
        documents: list[Document],
        root: str | Path,
        cache_root: str | Path = CACHE_ROOT,
    ) -> "ParagraphIndex":
        """Opens the cached index when the fingerprint still matches, otherwise rebuilds it."""
        cache_dir = cache_dir_for(root, cache_root)
        try:
            current = file_fingerprint(documents, root)
            cached = load_fingerprint(cache_dir)
            if cached == current and (cache_dir / META_FILE_NAME).exists():
                conn = cls._open_existing(cache_dir)
                if conn is not None:
                    logger.info("semantic_index_opened", cache_dir=str(cache_dir), files=len(current))
                    return cls(conn, cache_dir, rebuilt=False)
            return cls._rebuild(documents, root, cache_dir, current)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("semantic_index_unavailable", cache_dir=str(cache_dir), error=str(exc))
            return cls(None, cache_dir, rebuilt=False)

    @staticmethod
    def _open_existing(cache_dir: Path) -> sqlite3.Connection | None:
        db_path = cache_dir / INDEX_DB_NAME
        if not db_path.is_file():
            return None
        conn = sqlite3.connect(f"{db_path.as_uri()}?mode=ro", uri=True, check_same_thread=False)
        try:
            versions = applied_versions(conn, INDEX_COMPONENT)
        except sqlite3.DatabaseError as exc:
            conn.close()
            logger.warning("semantic_index_corrupt", cache_dir=str(cache_dir), error=str(exc))
            return None
        if PARAGRAPH_INDEX_SCHEMA_VERSION not in versions:
            conn.close()
            return None
        return conn

    @classmethod
    def _rebuild(
        cls,
        documents: list[Document],
        root: str | Path,
        cache_dir: Path,
        fingerprint: dict[str, int],
    ) -> "ParagraphIndex":
        started = time.perf_counter()
        shutil.rmtree(cache_dir, ignore_errors=True)
        cache_dir.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(cache_dir / INDEX_DB_NAME), check_same_thread=False)
        try:
            with conn:
                migrated = apply_sqlite_migrations(conn, component=INDEX_COMPONENT, migrations=_MIGRATIONS)
            rows = [
                (doc.name, line, paragraph)
                for doc in documents
                for line, paragraph in extract_paragraphs(doc.content)
            ]
            with conn:
                conn.executemany(
                    "INSERT INTO paragraphs (file, line, content) VALUES (?, ?, ?)",
                    rows,
                )
        except sqlite3.Error:
            conn.close()
            raise

        _atomic_write_json(cache_dir / FINGERPRINT_FILE_NAME, dict(fingerprint))
        # Written last: a build interrupted before this point is treated as stale.
        _atomic_write_json(
            cache_dir / META_FILE_NAME,
            {
                "schema_version": PARAGRAPH_INDEX_SCHEMA_VERSION,
                "root": str(Path(root).resolve()),
                "paragraph_count": len(rows),
                "built_at": _utcnow_iso(),
            },
        )
        logger.info(
            "semantic_index_rebuilt",
            cache_dir=str(cache_dir),
            files=len(documents),
            paragraphs=len(rows),
            migrations=migrated,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return cls(conn, cache_dir, rebuilt=True)

    def search_chunks(self, query: str, limit: int) -> list[SemanticChunk]:
        """
        Plain questions match on any of their words; queries written in FTS5
        syntax (AND/OR/NOT, "phrases", prefix*) run as given.
        Parse or I/O errors come back as an empty list.
        """
        if self._conn is None or limit < 1:
            return []
        match = build_match_query(query)
        if not match:
            return []
        try:
            rows = self._conn.execute(
                """
                SELECT file, line, content, bm25(paragraphs) AS rank
                FROM paragraphs
                WHERE paragraphs MATCH ?
                ORDER BY rank
                LIMIT ?
                """,
                (match, int(limit)),
            ).fetchall()
        except sqlite3.Error as exc:
            logger.info("semantic_query_failed", query=query, error=str(exc))
            return []

        chunks: list[SemanticChunk] = []
        for file, line, content, rank in rows:
            try:
                line_num = int(line)
            except (TypeError, ValueError):
                line_num = 0
            chunks.append(SemanticChunk(file=str(file), line=line_num, content=str(content), score=-float(rank)))
        return chunks

    def close(self):
        if self._conn is None:
            return
        try:
            self._conn.close()
        except sqlite3.Error:
            pass
        self._conn = None
