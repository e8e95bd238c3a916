"""Routes decoded key presses to session operations, one table per mode."""
from __future__ import annotations

from dataclasses import dataclass

from .session import Mode, Session


@dataclass(frozen=True)
class Key:
    """
    A decoded key press. `name` is one of: char, enter, esc, backspace, up,
    down, tab. `char` is set only for name == "char".
    """
    name: str
    char: str | None = None
    ctrl: bool = False
    alt: bool = False

    @classmethod
    def of(cls, ch: str, *, ctrl: bool = False, alt: bool = False) -> "Key":
        return cls(name="char", char=ch, ctrl=ctrl, alt=alt)


def _dispatch_common(session: Session, key: Key, visible: int) -> bool:
    """Shared navigation keys; returns True when the key was consumed."""
    if key.name == "up":
        session.on_up()
    elif key.name == "down":
        session.on_down(visible)
    elif key.name == "backspace":
        session.on_backspace()
    elif key.name == "esc":
        session.on_escape()
    else:
        return False
    return True


def _dispatch_search(session: Session, key: Key, visible: int):
    if key.name == "enter":
        session.on_enter()
    elif key.name == "char" and key.char:
        if key.ctrl:
            if key.char == "c":
                session.on_cancel()
            elif key.char == "o":
                session.enter_directory_picker()
        else:
            session.on_char(key.char)
    else:
        _dispatch_common(session, key, visible)


def _dispatch_chat(session: Session, key: Key, visible: int):
    streaming = session.chat.buffer.streaming
    if key.name == "enter":
        session.submit_chat()
    elif key.name == "char" and key.char:
        if key.ctrl:
            if key.char == "c":
                session.on_cancel()
            elif key.char == "o" and not streaming:
                session.enter_directory_picker()
        elif key.alt:
            if key.char == "c":
                session.enter_citations()
        elif not streaming:
            session.on_char(key.char)
    elif key.name in ("esc", "backspace") and streaming:
        return
    else:
        _dispatch_common(session, key, visible)


def _dispatch_list(session: Session, key: Key, visible: int):
    """Citations and directory picker share one filterable-list table."""
    if key.name == "enter":
        session.on_enter()
    elif key.name == "char" and key.char:
        if key.ctrl:
            if key.char == "c":
                session.on_cancel()
        elif not key.alt:
            session.on_char(key.char)
    else:
        _dispatch_common(session, key, visible)


def _dispatch_quick_answer(session: Session, key: Key, visible: int):
    streaming = session.quick.buffer.streaming
    if key.name == "tab":
        session.on_tab()
    elif key.name == "enter":
        session.on_enter()
    elif key.name == "char" and key.char:
        if key.ctrl:
            if key.char == "c":
                session.on_cancel()
            elif key.char == "r" and not streaming:
                session.rebuild_semantic_index()
            elif key.char == "n" and not streaming:
                session.new_quick_conversation()
        elif not key.alt and not streaming:
            session.on_char(key.char)
    elif key.name in ("esc", "backspace") and streaming:
        return
    else:
        _dispatch_common(session, key, visible)


_TABLES = {
    Mode.SEARCH: _dispatch_search,
    Mode.CHAT: _dispatch_chat,
    Mode.CITATIONS: _dispatch_list,
    Mode.DIRECTORY_PICKER: _dispatch_list,
    Mode.QUICK_ANSWER: _dispatch_quick_answer,
}


def dispatch_key(session: Session, key: Key, visible: int):
    if session.busy:
        return
    _TABLES[session.mode](session, key, visible)
