# /mdfinder/session.py
"""
Mode state machine for one finder session.

The host loop is the only caller. Each input event maps to one method here,
and `drain_streams` is called once per tick to fold streamed fragments into
the two response buffers. Exactly one per-mode state object is active at a
time; entering a mode always starts from a fresh state object. Chat history,
the two response buffers and the extracted citations live on long-lived
surfaces that survive mode changes.
"""
from __future__ import annotations

import contextlib
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, ClassVar, Iterator, Protocol, Union

from .citations import Citation, filter_citations, parse_citations
from .config import CACHE_ROOT, QUICK_ANSWER_CHUNK_LIMIT, SEARCH_RESULT_LIMIT
from .corpus import Document, build_context, load_documents, resolve_directory_choice, scan_directories
from .credentials import CredentialProvider
from .line_index import LineIndex, SearchEntry, score_paths
from .observability import get_logger
from .paragraph_index import ParagraphIndex, SemanticChunk, clear_cache
from .prompts import build_chat_system_prompt, build_quick_system_prompt
from .streaming import END_OF_STREAM, ChatMessage, FragmentQueue

logger = get_logger(__name__)

CHAT_TRIGGER = "?"
QUICK_ANSWER_TRIGGER = "@"
CANCELLED_MARKER = "\n\n[cancelled]"


class Mode(Enum):
    SEARCH = "search"
    CHAT = "chat"
    CITATIONS = "citations"
    DIRECTORY_PICKER = "directory_picker"
    QUICK_ANSWER = "quick_answer"


class ChatDispatcher(Protocol):
    def submit(self, api_key: str, messages: list[ChatMessage], out: FragmentQueue) -> Any:
        ...


SourceOpener = Callable[[Path, int], Any]


@dataclass
class SearchState:
    mode: ClassVar[Mode] = Mode.SEARCH
    query: str = ""
    results: list[SearchEntry] = field(default_factory=list)
    selected: int = 0
    scroll: int = 0


@dataclass
class ChatState:
    mode: ClassVar[Mode] = Mode.CHAT
    input: str = ""
    scroll: int = 0


@dataclass
class CitationsState:
    mode: ClassVar[Mode] = Mode.CITATIONS
    query: str = ""
    results: list[Citation] = field(default_factory=list)
    selected: int = 0
    scroll: int = 0


@dataclass
class DirectoryPickerState:
    """`entries` is scanned once on entry; `results` is the filtered view of it."""
    mode: ClassVar[Mode] = Mode.DIRECTORY_PICKER
    entries: list[str] = field(default_factory=list)
    query: str = ""
    results: list[str] = field(default_factory=list)
    selected: int = 0
    scroll: int = 0


@dataclass
class QuickAnswerState:
    mode: ClassVar[Mode] = Mode.QUICK_ANSWER
    query: str = ""
    sources_expanded: bool = False
    sources_selected: int = 0


ModeState = Union[SearchState, ChatState, CitationsState, DirectoryPickerState, QuickAnswerState]


@dataclass
class StreamBuffer:
    """
    Response text plus the queue feeding it. The queue lives as long as the
    surface, so fragments from a request cancelled earlier still land here.
    """
    text: str = ""
    streaming: bool = False
    queue: FragmentQueue = field(default_factory=FragmentQueue)

    def begin(self):
        self.text = ""
        self.streaming = True

    def cancel(self) -> bool:
        if not self.streaming:
            return False
        self.streaming = False
        self.text += CANCELLED_MARKER
        return True


@dataclass
class ChatSurface:
    history: list[ChatMessage] = field(default_factory=list)
    buffer: StreamBuffer = field(default_factory=StreamBuffer)
    citations: list[Citation] = field(default_factory=list)


@dataclass
class QuickSurface:
    buffer: StreamBuffer = field(default_factory=StreamBuffer)
    sources: list[SemanticChunk] = field(default_factory=list)


def _clamp(selected: int, length: int) -> int:
    return max(0, min(int(selected), max(0, length - 1)))


class Session:
    def __init__(
        self,
        root: str | Path,
        *,
        credentials: CredentialProvider,
        dispatcher: ChatDispatcher,
        cache_root: str | Path = CACHE_ROOT,
        opener: SourceOpener | None = None,
        on_busy: Callable[["Session"], Any] | None = None,
    ):
        self.root = Path(root).resolve()
        self.cache_root = Path(cache_root)
        self._credentials = credentials
        self._dispatcher = dispatcher
        self._opener = opener
        self._on_busy = on_busy

        self.state: ModeState = SearchState()
        self.chat = ChatSurface()
        self.quick = QuickSurface()
        self.should_quit = False
        self.destination: SearchEntry | None = None
        self.busy: str | None = None

        self.documents: list[Document] = []
        self.line_index = LineIndex([])
        self.context = ""
        self.paragraph_index: ParagraphIndex | None = None

        with self._blocking(f"Indexing {self.root}"):
            self._load_corpus()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @property
    def mode(self) -> Mode:
        return self.state.mode

    @property
    def entry_count(self) -> int:
        return self.line_index.entry_count

    @property
    def citations(self) -> list[Citation]:
        return list(self.chat.citations)

    # ------------------------------------------------------------------
    # Blocking work
    # ------------------------------------------------------------------
    @contextlib.contextmanager
    def _blocking(self, label: str) -> Iterator[None]:
        self.busy = label
        if self._on_busy is not None:
            self._on_busy(self)
        try:
            yield
        finally:
            self.busy = None

    def _load_corpus(self):
        self.documents = load_documents(self.root)
        self.line_index = LineIndex.from_documents(self.documents)
        self.context = build_context(self.documents)
        if self.paragraph_index is not None:
            self.paragraph_index.close()
        self.paragraph_index = ParagraphIndex.open(self.documents, self.root, self.cache_root)

    def close(self):
        if self.paragraph_index is not None:
            self.paragraph_index.close()

    # ------------------------------------------------------------------
    # Mode entry
    # ------------------------------------------------------------------
    def _enter_search(self):
        self.state = SearchState()

    def _enter_chat(self):
        self.state = ChatState()

    def _enter_quick_answer(self):
        self.state = QuickAnswerState()
        if not self.quick.buffer.streaming:
            self.quick.buffer.text = ""

    def enter_directory_picker(self) -> bool:
        if self.mode is Mode.CHAT and self.chat.buffer.streaming:
            return False
        if self.mode not in (Mode.SEARCH, Mode.CHAT):
            return False
        entries = scan_directories(self.root)
        self.state = DirectoryPickerState(entries=entries, results=list(entries))
        return True

    def enter_citations(self) -> bool:
        if self.mode is not Mode.CHAT or not self.chat.citations:
            return False
        self.state = CitationsState(results=list(self.chat.citations))
        return True

    # ------------------------------------------------------------------
    # Input events
    # ------------------------------------------------------------------
    def on_char(self, ch: str):
        state = self.state
        if isinstance(state, SearchState):
            if ch == CHAT_TRIGGER:
                self._enter_chat()
            elif ch == QUICK_ANSWER_TRIGGER and not state.query:
                self._enter_quick_answer()
            else:
                state.query += ch
                self._update_search()
        elif isinstance(state, ChatState):
            if not self.chat.buffer.streaming:
                state.input += ch
        elif isinstance(state, CitationsState):
            state.query += ch
            self._filter_citations()
        elif isinstance(state, DirectoryPickerState):
            state.query += ch
            self._filter_directories()
        elif isinstance(state, QuickAnswerState):
            if not self.quick.buffer.streaming:
                state.query += ch

    def on_backspace(self):
        state = self.state
        if isinstance(state, SearchState):
            state.query = state.query[:-1]
            self._update_search()
        elif isinstance(state, ChatState):
            if not self.chat.buffer.streaming:
                state.input = state.input[:-1]
        elif isinstance(state, CitationsState):
            state.query = state.query[:-1]
            self._filter_citations()
        elif isinstance(state, DirectoryPickerState):
            state.query = state.query[:-1]
            self._filter_directories()
        elif isinstance(state, QuickAnswerState):
            if self.quick.buffer.streaming:
                return
            if not state.query:
                self._enter_search()
            else:
                state.query = state.query[:-1]

    def on_up(self):
        state = self.state
        if isinstance(state, (SearchState, CitationsState, DirectoryPickerState)):
            if state.selected > 0:
                state.selected -= 1
                if state.selected < state.scroll:
                    state.scroll = state.selected
        elif isinstance(state, ChatState):
            if state.scroll > 0:
                state.scroll -= 1
        elif isinstance(state, QuickAnswerState):
            if state.sources_expanded and state.sources_selected > 0:
                state.sources_selected -= 1

    def on_down(self, visible: int):
        visible = max(1, int(visible))
        state = self.state
        if isinstance(state, (SearchState, CitationsState, DirectoryPickerState)):
            if state.selected + 1 < len(state.results):
                state.selected += 1
                if state.selected >= state.scroll + visible:
                    state.scroll = state.selected - visible + 1
        elif isinstance(state, ChatState):
            state.scroll += 1
        elif isinstance(state, QuickAnswerState):
            if state.sources_expanded and state.sources_selected + 1 < len(self.quick.sources):
                state.sources_selected += 1

    def on_enter(self):
        state = self.state
        if isinstance(state, SearchState):
            if state.results:
                self.destination = state.results[_clamp(state.selected, len(state.results))]
                self.should_quit = True
        elif isinstance(state, ChatState):
            self.submit_chat()
        elif isinstance(state, CitationsState):
            self.jump_to_citation(state.selected)
        elif isinstance(state, DirectoryPickerState):
            self.select_directory()
        elif isinstance(state, QuickAnswerState):
            if state.sources_expanded and self.quick.sources:
                self.open_quick_source()
            else:
                self.submit_quick_answer()

    def on_escape(self):
        state = self.state
        if isinstance(state, SearchState):
            self.should_quit = True
        elif isinstance(state, ChatState):
            if not self.chat.buffer.streaming:
                self._enter_search()
        elif isinstance(state, CitationsState):
            self._enter_chat()
        elif isinstance(state, DirectoryPickerState):
            self._enter_search()
        elif isinstance(state, QuickAnswerState):
            if not self.quick.buffer.streaming:
                self.quick.buffer.text = ""
                self._enter_search()

    def on_cancel(self):
        """Ctrl-C: stop listening to the active stream, or behave like escape."""
        if self.mode is Mode.CHAT and self.chat.buffer.cancel():
            logger.info("chat_stream_cancelled", surface="chat")
            return
        if self.mode is Mode.QUICK_ANSWER and self.quick.buffer.cancel():
            logger.info("chat_stream_cancelled", surface="quick_answer")
            return
        self.on_escape()

    def on_tab(self):
        state = self.state
        if isinstance(state, QuickAnswerState):
            state.sources_expanded = not state.sources_expanded
            state.sources_selected = _clamp(state.sources_selected, len(self.quick.sources))

    # ------------------------------------------------------------------
    # Search, filtering and navigation
    # ------------------------------------------------------------------
    def _update_search(self):
        state = self.state
        if not isinstance(state, SearchState):
            return
        state.selected = 0
        state.scroll = 0
        state.results = self.line_index.search(state.query, SEARCH_RESULT_LIMIT) if state.query else []

    def _filter_citations(self):
        state = self.state
        if not isinstance(state, CitationsState):
            return
        state.results = filter_citations(self.chat.citations, state.query)
        state.selected = 0
        state.scroll = 0

    def _filter_directories(self):
        state = self.state
        if not isinstance(state, DirectoryPickerState):
            return
        state.results = score_paths(state.query, state.entries) if state.query else list(state.entries)
        state.selected = 0
        state.scroll = 0

    def jump_to_citation(self, idx: int | None = None) -> bool:
        """Ends the session on a placeholder entry at the cited file and line."""
        state = self.state
        if not isinstance(state, CitationsState):
            return False
        if idx is None:
            idx = state.selected
        if idx < 0 or idx >= len(state.results):
            return False
        citation = state.results[idx]
        self.destination = SearchEntry(file=citation.file, line=citation.line, content="", match_indices=())
        self.should_quit = True
        return True

    def select_directory(self) -> bool:
        """Re-bases the session onto the selected directory and returns to search."""
        state = self.state
        if not isinstance(state, DirectoryPickerState):
            return False
        rebased = False
        if state.results:
            selected = state.results[_clamp(state.selected, len(state.results))]
            target = resolve_directory_choice(self.root, selected)
            if target.is_dir():
                previous = self.root
                with self._blocking(f"Indexing {target}"):
                    self.root = target
                    self._load_corpus()
                logger.info(
                    "session_rebased",
                    previous_root=str(previous),
                    root=str(self.root),
                    entries=self.entry_count,
                )
                rebased = True
        self._enter_search()
        return rebased

    # ------------------------------------------------------------------
    # Assistant surfaces
    # ------------------------------------------------------------------
    def build_chat_messages(self) -> list[ChatMessage]:
        """System preamble, then the whole history, then the pending input if any."""
        messages = [ChatMessage(role="system", content=build_chat_system_prompt(self.context))]
        messages.extend(self.chat.history)
        state = self.state
        if isinstance(state, ChatState) and state.input:
            messages.append(ChatMessage(role="user", content=state.input))
        return messages

    def submit_chat(self) -> bool:
        state = self.state
        if not isinstance(state, ChatState):
            return False
        if not state.input or self.chat.buffer.streaming:
            return False
        api_key = self._credentials.api_key()
        if not api_key:
            return False

        messages = self.build_chat_messages()
        self.chat.history.append(ChatMessage(role="user", content=state.input))
        state.input = ""
        state.scroll = 0
        self.chat.buffer.begin()
        self._dispatcher.submit(api_key, messages, self.chat.buffer.queue)
        return True

    def build_quick_messages(self) -> list[ChatMessage]:
        state = self.state
        query = state.query if isinstance(state, QuickAnswerState) else ""
        return [
            ChatMessage(role="system", content=build_quick_system_prompt(self.quick.sources)),
            ChatMessage(role="user", content=query),
        ]

    def submit_quick_answer(self) -> bool:
        """Retrieves grounding paragraphs for the query and streams a short answer."""
        state = self.state
        if not isinstance(state, QuickAnswerState):
            return False
        if not state.query or self.quick.buffer.streaming:
            return False
        api_key = self._credentials.api_key()
        if not api_key:
            return False

        index = self.paragraph_index
        self.quick.sources = index.search_chunks(state.query, QUICK_ANSWER_CHUNK_LIMIT) if index else []
        state.sources_selected = 0
        messages = self.build_quick_messages()
        self.quick.buffer.begin()
        self._dispatcher.submit(api_key, messages, self.quick.buffer.queue)
        return True

    def new_quick_conversation(self) -> bool:
        if not isinstance(self.state, QuickAnswerState) or self.quick.buffer.streaming:
            return False
        self.quick.buffer.text = ""
        self.quick.sources = []
        self.state = QuickAnswerState()
        return True

    def rebuild_semantic_index(self) -> bool:
        """Wipes this root's cache namespace and re-indexes the corpus from disk."""
        if self.quick.buffer.streaming:
            return False
        with self._blocking("Rebuilding semantic index"):
            if self.paragraph_index is not None:
                self.paragraph_index.close()
                self.paragraph_index = None
            clear_cache(self.root, self.cache_root)
            self._load_corpus()
        self.quick.sources = []
        state = self.state
        if isinstance(state, QuickAnswerState):
            state.sources_selected = 0
        elif isinstance(state, SearchState):
            self._update_search()
        return True

    def open_quick_source(self) -> bool:
        state = self.state
        if not isinstance(state, QuickAnswerState) or not self.quick.sources:
            return False
        state.sources_selected = _clamp(state.sources_selected, len(self.quick.sources))
        chunk = self.quick.sources[state.sources_selected]
        if self._opener is None:
            return False
        self._opener(self.root / chunk.file, chunk.line)
        return True

    # ------------------------------------------------------------------
    # Stream folding
    # ------------------------------------------------------------------
    def _finish_chat(self):
        buffer = self.chat.buffer
        buffer.streaming = False
        self.chat.citations = parse_citations(buffer.text)
        self.chat.history.append(ChatMessage(role="assistant", content=buffer.text))

    def _finish_quick(self):
        self.quick.buffer.streaming = False

    def drain_streams(self) -> bool:
        """
        Folds every queued fragment into its response buffer, in arrival order.
        Returns True when anything changed.
        """
        changed = False
        for item in self.chat.buffer.queue.drain():
            changed = True
            if item is END_OF_STREAM:
                self._finish_chat()
            else:
                self.chat.buffer.text += item
        for item in self.quick.buffer.queue.drain():
            changed = True
            if item is END_OF_STREAM:
                self._finish_quick()
            else:
                self.quick.buffer.text += item
        return changed
