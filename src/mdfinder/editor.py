"""External editor launch for opened results."""
from __future__ import annotations

import subprocess
from pathlib import Path

from .config import EDITOR_COMMAND
from .observability import get_logger

logger = get_logger(__name__)


def editor_argv(path: str | Path, line: int, command: str = EDITOR_COMMAND) -> list[str]:
    return [command, f"+{int(line)}", str(path)]


def open_in_editor(path: str | Path, line: int, command: str = EDITOR_COMMAND) -> int | None:
    """Runs `<editor> +<line> <path>` and waits; returns the exit code or None if it failed to start."""
    argv = editor_argv(path, line, command)
    try:
        completed = subprocess.run(argv, check=False)
    except OSError as exc:
        logger.warning("editor_failed", command=command, path=str(path), error=str(exc))
        return None
    return completed.returncode
