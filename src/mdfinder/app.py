# /mdfinder/app.py
import argparse
import sys
from pathlib import Path

from rich.live import Live

from .config import (
    APP_NAME,
    APP_VERSION,
    LOG_PATH,
    POLL_INTERVAL_S,
    USE_ALTERNATE_SCREEN,
    console,
)
from .credentials import EnvFileCredentialProvider
from .editor import open_in_editor
from .keymap import dispatch_key
from .observability import configure_logging, get_logger
from .render import render, visible_result_count
from .session import Session
from .streaming import StreamDispatcher
from .terminal import TerminalKeys

logger = get_logger(__name__)


class _LiveHost:
    """Glue between the session callbacks and the live screen."""

    def __init__(self, live: Live, keys: TerminalKeys):
        self.live = live
        self.keys = keys

    @property
    def height(self) -> int:
        return console.size.height

    def show(self, session: Session):
        self.live.update(render(session, self.height), refresh=True)

    def open_source(self, path: Path, line: int):
        self.live.stop()
        self.keys.suspend()
        try:
            open_in_editor(path, line)
        finally:
            self.keys.resume()
            self.live.start(refresh=True)


def _run_loop(session: Session, keys: TerminalKeys, host: _LiveHost):
    dirty = True
    while True:
        if session.drain_streams():
            dirty = True
        if dirty:
            host.show(session)
            dirty = False
        if session.should_quit:
            return
        key = keys.read_key(POLL_INTERVAL_S)
        if key is None:
            continue
        dispatch_key(session, key, visible_result_count(host.height))
        dirty = True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Fuzzy line search, chat and quick answers over a markdown folder.",
    )
    parser.add_argument("-v", "--version", action="store_true", help="print the version and exit")
    parser.add_argument("--root", default=".", help="corpus root directory (default: current directory)")
    return parser


def main(argv=None) -> int:
    """Runs one interactive session and opens the chosen result in the editor."""
    args = build_parser().parse_args(argv)
    if args.version:
        console.print(f"{APP_NAME} {APP_VERSION}", markup=False, highlight=False)
        return 0

    root = Path(args.root).expanduser()
    if not root.is_dir():
        console.print(f"[red]Not a directory: {root}[/red]")
        return 2

    configure_logging(LOG_PATH)
    credentials = EnvFileCredentialProvider()
    dispatcher = StreamDispatcher()

    with TerminalKeys() as keys, Live(
        console=console,
        screen=USE_ALTERNATE_SCREEN,
        auto_refresh=False,
        transient=True,
    ) as live:
        host = _LiveHost(live, keys)
        session = Session(
            root,
            credentials=credentials,
            dispatcher=dispatcher,
            opener=host.open_source,
            on_busy=host.show,
        )
        try:
            _run_loop(session, keys, host)
        finally:
            session.close()

    destination = session.destination
    if destination is not None:
        open_in_editor(session.root / destination.file, destination.line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
