"""Process-wide logging setup for the Managely CLI and embedding applications."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from managely import app_paths

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LOG_PATH: Optional[Path] = None


def _has_file_handler(logger: logging.Logger, path: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler) and getattr(handler, "baseFilename", None) == str(path)
        for handler in logger.handlers
    )


def configure_logging(level: int = logging.INFO, path: Optional[Path] = None, *, console: bool = False) -> Path:
    """Send Managely logs to ``<app dir>/logs/managely.log``.

    Parameters
    ----------
    level:
        Minimum level for the root logger.  At ``INFO`` every store write,
        minted gift card and stock change is recorded; ``DEBUG`` adds cache
        and search details.
    path:
        Alternative log file location.
    console:
        Also echo records to standard error.

    Returns
    -------
    pathlib.Path
        The log file in use.  Later calls keep the first file.
    """

    global _LOG_PATH

    root_logger = logging.getLogger()
    root_logger.setLevel(level if not root_logger.handlers else min(root_logger.level or level, level))

    log_path = _LOG_PATH or path or app_paths.logs_path("managely.log")
    log_path.parent.mkdir(parents=True, exist_ok=True)
    if not _has_file_handler(root_logger, log_path):
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)

    if console and not any(getattr(handler, "_managely_console", False) for handler in root_logger.handlers):
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
        stream_handler._managely_console = True  # type: ignore[attr-defined]
        root_logger.addHandler(stream_handler)

    if _LOG_PATH is None:
        _LOG_PATH = log_path
        root_logger.debug("Logging configured. Writing to %s", log_path)
    return log_path


__all__ = ["LOG_FORMAT", "configure_logging"]
