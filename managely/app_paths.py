"""Location of Managely's per-user data directory."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

_APP_ENV_VARS: Iterable[str] = ("LOCALAPPDATA", "APPDATA")


def _detect_base_directory() -> Path:
    override = os.environ.get("MANAGELY_HOME")
    if override:
        return Path(override).expanduser().resolve()
    for env_var in _APP_ENV_VARS:
        value = os.environ.get(env_var)
        if value:
            return Path(value).expanduser().resolve() / "Managely"
    return Path.home().resolve() / ".managely"


APP_DIR: Path = _detect_base_directory()
TOKENS_DIR: Path = APP_DIR / "tokens"
LOG_DIR: Path = APP_DIR / "logs"


def ensure_directory(path: Path) -> Path:
    """Ensure that ``path`` exists, returning the :class:`~pathlib.Path`."""

    path.mkdir(parents=True, exist_ok=True)
    return path


def logs_path(*parts: str) -> Path:
    """Return a path inside :data:`LOG_DIR`, creating the directory."""

    return ensure_directory(LOG_DIR).joinpath(*parts)


__all__ = ["APP_DIR", "LOG_DIR", "TOKENS_DIR", "ensure_directory", "logs_path"]
