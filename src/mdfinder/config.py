# /mdfinder/config.py
"""
Centralized configuration for the markdown finder.
Includes endpoint settings, cache paths, limits and the shared console.
"""
import os
from pathlib import Path

from rich.console import Console

# ==============================================================================
# CONSOLE & ENVIRONMENT
# ==============================================================================
console = Console()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return bool(default)
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None:
        return int(default)
    try:
        value = int(raw)
    except ValueError:
        return int(default)
    return max(minimum, value)


def _env_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return float(default)
    try:
        value = float(raw)
    except ValueError:
        return float(default)
    return max(float(minimum), value)


def _default_cache_root() -> Path:
    xdg = os.getenv("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / APP_NAME


# ==============================================================================
# GLOBAL CONFIGURATION
# ==============================================================================
APP_NAME = "finder"
APP_VERSION = "0.1.0"

# --- Assistant Endpoint ---
API_URL = os.getenv("MDFINDER_API_URL", "https://openrouter.ai/api/v1/chat/completions")
API_MODEL_NAME = os.getenv("MDFINDER_MODEL", "google/gemini-3-flash-preview")
API_KEY_ENV_VAR = "OPENROUTER_API_KEY"
API_MAX_TOKENS = _env_int("MDFINDER_MAX_TOKENS", 4096, minimum=1)
API_TIMEOUT_S = _env_float("MDFINDER_API_TIMEOUT_S", 120.0, minimum=1.0)
CREDENTIAL_FILE_NAME = ".env"

# --- Path Configuration ---
# One hashed namespace per corpus root lives under CACHE_ROOT.
CACHE_ROOT = Path(os.getenv("MDFINDER_CACHE_DIR", str(_default_cache_root())))
LOG_PATH = Path(os.getenv("MDFINDER_LOG_PATH", str(CACHE_ROOT / "finder.log")))

# --- Corpus ---
MARKDOWN_SUFFIXES = (".md",)
IGNORE_FILE_NAMES = (".gitignore", ".ignore")
DIR_ANCESTOR_LEVELS = 3
DIR_MAX_DEPTH = 5

# --- Search Tuning ---
SEARCH_RESULT_LIMIT = 100
QUICK_ANSWER_CHUNK_LIMIT = 20

# --- Input Loop ---
POLL_INTERVAL_S = _env_float("MDFINDER_POLL_INTERVAL_S", 0.016, minimum=0.001)
# Rows per rendered result; used to derive how many results fit on screen.
RESULT_ROW_HEIGHT = 2

# --- External Tools ---
EDITOR_COMMAND = os.getenv("MDFINDER_EDITOR", "nvim")
# Keep the terminal in the alternate screen while the app runs.
USE_ALTERNATE_SCREEN = _env_bool("MDFINDER_ALT_SCREEN", True)
