"""Journal of rejected writes and partially applied side effects.

Two kinds of entries end up here: updates refused because the stored row
changed since it was read (``source="update"``), and stock movements whose
product row could not be rewritten (``source="stock_movement"``).  Each entry
is written as one JSON object per line to ``logs/conflicts.log`` and kept in
a bounded in-memory ring.  :meth:`ConflictJournal.recent` only sees this
process; :meth:`ConflictJournal.history` reads the log file back, which is
what the ``conflicts`` CLI command shows.
"""
from __future__ import annotations

import json
import logging
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Deque, Dict, List, Mapping, Optional, Tuple

from managely import app_paths

JOURNAL_SIZE = 50


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class ConflictJournal:
    def __init__(
        self,
        path: Optional[Path] = None,
        size: int = JOURNAL_SIZE,
        *,
        logger_name: str = "managely.conflicts",
    ) -> None:
        self._path = path
        self._entries: Deque[Dict[str, object]] = deque(maxlen=size)
        self._lock = threading.Lock()
        self._logger = logging.getLogger(logger_name)
        self._file_attached = False

    def _attach_file(self) -> None:
        if self._file_attached:
            return
        self._file_attached = True
        try:
            handler = logging.FileHandler(self.path, encoding="utf-8")
        except OSError as exc:  # pragma: no cover - depends on filesystem permissions
            self._logger.warning("Conflict journal file unavailable (%s); keeping entries in memory", exc)
            return
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
        self._logger.addHandler(handler)

    def record(
        self,
        row_id: str,
        field_diffs: Mapping[str, Tuple[str, str]],
        *,
        source: str = "update",
        context: Optional[Mapping[str, object]] = None,
    ) -> Dict[str, object]:
        entry: Dict[str, object] = {
            "row_id": row_id,
            "source": source,
            "fields": {name: list(values) for name, values in field_diffs.items()},
            "timestamp": _utc_stamp(),
        }
        entry.update(context or {})

        self._attach_file()
        self._logger.warning("%s", json.dumps(entry, ensure_ascii=False, sort_keys=True, default=str))
        with self._lock:
            self._entries.appendleft(entry)
        return entry

    def recent(self, limit: int = 10, source: Optional[str] = None) -> List[Dict[str, object]]:
        with self._lock:
            entries = list(self._entries)
        if source:
            entries = [entry for entry in entries if entry.get("source") == source]
        return entries[:limit]

    @property
    def path(self) -> Path:
        return self._path or app_paths.logs_path("conflicts.log")

    def history(self, limit: int = 10, source: Optional[str] = None) -> List[Dict[str, object]]:
        """Newest entries first, read back from the journal file."""

        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

        entries: List[Dict[str, object]] = []
        for line in reversed(lines):
            if len(entries) >= limit:
                break
            start = line.find("{")
            if start < 0:
                continue
            try:
                entry = json.loads(line[start:])
            except ValueError:
                self._logger.debug("Skipping unreadable conflict journal line: %s", line)
                continue
            if not isinstance(entry, dict) or (source and entry.get("source") != source):
                continue
            entries.append(entry)
        return entries

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


_JOURNAL = ConflictJournal()


def record(
    row_id: str,
    field_diffs: Mapping[str, Tuple[str, str]],
    *,
    source: str = "update",
    context: Optional[Mapping[str, object]] = None,
) -> Dict[str, object]:
    """Log a conflict entry and keep it in the process journal."""

    return _JOURNAL.record(row_id, field_diffs, source=source, context=context)


def recent(limit: int = 10, source: Optional[str] = None) -> List[Dict[str, object]]:
    """Newest entries first, optionally only those of one ``source``."""

    return _JOURNAL.recent(limit, source)


def history(limit: int = 10, source: Optional[str] = None) -> List[Dict[str, object]]:
    """Entries recorded by any process, newest first."""

    return _JOURNAL.history(limit, source)


def clear() -> None:
    _JOURNAL.clear()


__all__ = ["ConflictJournal", "JOURNAL_SIZE", "clear", "history", "recent", "record"]
