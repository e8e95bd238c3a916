"""
API key lookup for the assistant endpoint.
The session only sees a provider; the default one reads the process
environment and then KEY=VALUE files in the working and home directories.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Protocol, Sequence

from dotenv import dotenv_values

from .config import API_KEY_ENV_VAR, CREDENTIAL_FILE_NAME


class CredentialProvider(Protocol):
    def api_key(self) -> str | None:
        ...


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip().strip("\"'").strip()
    return cleaned or None


class EnvFileCredentialProvider:
    """Environment first, then each credential file in order; the first non-empty value wins."""

    def __init__(
        self,
        var_name: str = API_KEY_ENV_VAR,
        environ: Mapping[str, str] | None = None,
        search_paths: Sequence[Path] | None = None,
    ):
        self._var_name = var_name
        self._environ = os.environ if environ is None else environ
        if search_paths is None:
            search_paths = (
                Path.cwd() / CREDENTIAL_FILE_NAME,
                Path.home() / CREDENTIAL_FILE_NAME,
            )
        self._search_paths = [Path(path) for path in search_paths]

    @property
    def search_paths(self) -> list[Path]:
        return list(self._search_paths)

    def api_key(self) -> str | None:
        from_env = _clean(self._environ.get(self._var_name))
        if from_env:
            return from_env
        for path in self._search_paths:
            if not path.is_file():
                continue
            try:
                values = dotenv_values(path)
            except (OSError, UnicodeDecodeError):
                continue
            from_file = _clean(values.get(self._var_name))
            if from_file:
                return from_file
        return None


class StaticCredentialProvider:
    def __init__(self, key: str | None):
        self._key = _clean(key)

    def api_key(self) -> str | None:
        return self._key
