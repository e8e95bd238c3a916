# /mdfinder/render.py
"""
Read-only rendering of a session into rich renderables.
Nothing here mutates the session; the host loop calls `render` once per tick.
"""
from __future__ import annotations

from pathlib import Path

from rich.console import Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text

from .config import APP_VERSION, RESULT_ROW_HEIGHT
from .session import (
    ChatState,
    CitationsState,
    DirectoryPickerState,
    QuickAnswerState,
    SearchState,
    Session,
)

ACCENT = "rgb(100,149,237)"
DIM = "rgb(128,128,128)"
HEADER_ROWS = 5
INPUT_ROWS = 3
CONTENT_PREVIEW_CHARS = 60


def visible_result_count(height: int) -> int:
    """Number of result rows that fit below the header and input boxes."""
    available = max(0, int(height) - HEADER_ROWS - INPUT_ROWS - 2)
    return max(1, available // RESULT_ROW_HEIGHT)


def _display_root(root: Path) -> str:
    home = str(Path.home())
    text = str(root)
    if home and text.startswith(home):
        return "~" + text[len(home):]
    return text


def _header(session: Session) -> Panel:
    lines = Text()
    lines.append("Finder ", style="bold white")
    lines.append(f"v{APP_VERSION}", style=DIM)
    lines.append("\n")
    lines.append(_display_root(session.root), style=DIM)
    lines.append("\n")
    if session.busy:
        lines.append(f"{session.busy}...", style=f"bold {ACCENT}")
    else:
        lines.append(f"{session.entry_count} lines indexed", style=DIM)
    return Panel(lines, border_style=DIM)


def _input_box(session: Session) -> Panel:
    state = session.state
    if isinstance(state, ChatState):
        prompt, value = "? ", state.input
    elif isinstance(state, QuickAnswerState):
        prompt, value = "@ ", state.query
    elif isinstance(state, DirectoryPickerState):
        prompt, value = "cd ", state.query
    elif isinstance(state, CitationsState):
        prompt, value = "# ", state.query
    else:
        prompt, value = "> ", state.query
    line = Text()
    line.append(prompt, style=ACCENT)
    line.append(value, style="white")
    line.append("_", style=f"{ACCENT} blink")
    return Panel(line, border_style=DIM)


def _highlighted(content: str, indices: tuple[int, ...]) -> Text:
    truncated = content[:CONTENT_PREVIEW_CHARS]
    text = Text(truncated, style=DIM)
    for idx in indices:
        if idx < len(truncated):
            text.stylize(f"bold {ACCENT}", idx, idx + 1)
    if len(content) > CONTENT_PREVIEW_CHARS:
        text.append("...", style=DIM)
    return text


def _search_body(state: SearchState, visible: int) -> RenderableType:
    if not state.results:
        return Text("Type to search..." if not state.query else "No results", style=DIM)
    rows: list[RenderableType] = []
    window = state.results[state.scroll:state.scroll + visible]
    for offset, entry in enumerate(window):
        idx = state.scroll + offset
        selected = idx == state.selected
        head = Text()
        head.append(">" if selected else " ", style=ACCENT)
        head.append(f" {entry.file}:{entry.line}", style="bold white" if selected else "white")
        body = Text("  \"")
        body.append_text(_highlighted(entry.content, entry.match_indices))
        body.append("\"")
        rows.extend([head, body])
    return Group(*rows)


def _chat_body(session: Session) -> RenderableType:
    buffer = session.chat.buffer
    if not buffer.text and not buffer.streaming:
        return Text("Ask about the documents. Enter to send, Alt-C for citations, Esc to go back.", style=DIM)
    parts: list[RenderableType] = [Markdown(buffer.text or " ")]
    if buffer.streaming:
        parts.append(Text("streaming... (Ctrl-C to cancel)", style=DIM))
    elif session.chat.citations:
        parts.append(Text(f"{len(session.chat.citations)} citations (Alt-C)", style=DIM))
    return Group(*parts)


def _list_body(labels: list[str], selected: int, scroll: int, visible: int, empty: str) -> RenderableType:
    if not labels:
        return Text(empty, style=DIM)
    rows = []
    for offset, label in enumerate(labels[scroll:scroll + visible]):
        idx = scroll + offset
        line = Text()
        line.append("> " if idx == selected else "  ", style=ACCENT)
        line.append(label, style="bold white" if idx == selected else "white")
        rows.append(line)
    return Group(*rows)


def _quick_body(session: Session, state: QuickAnswerState, visible: int) -> RenderableType:
    buffer = session.quick.buffer
    parts: list[RenderableType] = []
    if buffer.text:
        parts.append(Text(buffer.text))
    elif buffer.streaming:
        parts.append(Text("thinking...", style=DIM))
    else:
        parts.append(Text("Ask a quick question. Tab shows sources, Ctrl-R rebuilds the index.", style=DIM))

    sources = session.quick.sources
    if sources:
        marker = "v" if state.sources_expanded else ">"
        parts.append(Text(f"\n{marker} {len(sources)} sources (Tab)", style=DIM))
        if state.sources_expanded:
            labels = [f"{chunk.file}:{chunk.line}  {chunk.content[:CONTENT_PREVIEW_CHARS]}" for chunk in sources]
            start = max(0, state.sources_selected - visible + 1)
            parts.append(_list_body(labels, state.sources_selected, start, visible, ""))
    return Group(*parts)


def render(session: Session, height: int = 24) -> RenderableType:
    visible = visible_result_count(height)
    state = session.state
    if isinstance(state, SearchState):
        body = _search_body(state, visible)
        title = "Results"
    elif isinstance(state, ChatState):
        body = _chat_body(session)
        title = "Chat"
    elif isinstance(state, CitationsState):
        labels = [f"{citation.file}:{citation.line}" for citation in state.results]
        body = _list_body(labels, state.selected, state.scroll, visible, "No matching citations")
        title = "Citations"
    elif isinstance(state, DirectoryPickerState):
        body = _list_body(state.results, state.selected, state.scroll, visible, "No directories")
        title = "Directories"
    else:
        body = _quick_body(session, state, visible)
        title = "Quick answer"
    return Group(
        _header(session),
        _input_box(session),
        Panel(body, title=title, title_align="left", border_style=DIM),
    )
