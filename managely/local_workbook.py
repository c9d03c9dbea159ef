"""Lightweight workbook service backed by a JSON file simulating a spreadsheet.

The objects exposed here mirror the subset of the Google Sheets v4 client
surface used by :mod:`managely.sheets_client` (``spreadsheets().get``,
``spreadsheets().batchUpdate`` and ``spreadsheets().values().get/append/
update``), so the same store adapter runs offline and in tests.
"""

from __future__ import annotations

import json
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

_LOCKS: Dict[str, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


class LocalWorkbookError(RuntimeError):
    """Raised when a request cannot be applied to the local workbook."""


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _LOCKS_GUARD:
        lock = _LOCKS.get(key)
        if lock is None:
            lock = threading.Lock()
            _LOCKS[key] = lock
        return lock


@dataclass(frozen=True)
class _CellRef:
    row: Optional[int]
    column: Optional[int]


@dataclass
class _Workbook:
    sheets: Dict[str, List[List[str]]]
    sheet_ids: Dict[str, int]

    def next_sheet_id(self) -> int:
        return max(self.sheet_ids.values(), default=0) + 1


class _WorkbookRequest:
    def __init__(self, callback: Callable[[], Mapping[str, object]]) -> None:
        self._callback = callback

    def execute(self) -> Mapping[str, object]:
        return self._callback()


class _WorkbookFile:
    """Load/save helper shared by the values and spreadsheets proxies."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock = _lock_for(path)

    def load(self) -> _Workbook:
        if not self.path.exists():
            return _Workbook(sheets={}, sheet_ids={})
        with open(self.path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
        sheets = {
            str(title): [["" if cell is None else str(cell) for cell in row] for row in rows]
            for title, rows in payload.get("sheets", {}).items()
        }
        sheet_ids = {str(title): int(value) for title, value in payload.get("sheet_ids", {}).items()}
        for title in sheets:
            if title not in sheet_ids:
                sheet_ids[title] = max(sheet_ids.values(), default=0) + 1
        return _Workbook(sheets=sheets, sheet_ids=sheet_ids)

    def save(self, workbook: _Workbook) -> None:
        if self.path.parent:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "sheets": {title: [list(row) for row in rows] for title, rows in workbook.sheets.items()},
            "sheet_ids": dict(workbook.sheet_ids),
        }
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)

    def mutate(self, callback: Callable[[_Workbook], Mapping[str, object]]) -> Mapping[str, object]:
        with self.lock:
            workbook = self.load()
            result = callback(workbook)
            self.save(workbook)
            return result

    def read(self, callback: Callable[[_Workbook], Mapping[str, object]]) -> Mapping[str, object]:
        with self.lock:
            return callback(self.load())


class LocalValuesApi:
    def __init__(self, workbook: _WorkbookFile) -> None:
        self._workbook = workbook

    def get(self, spreadsheetId: str, range: str, **_: object) -> _WorkbookRequest:  # noqa: N803 - API compatibility
        return _WorkbookRequest(lambda: self._workbook.read(lambda book: _handle_get(book, range)))

    def append(  # noqa: D401 - API compatibility
        self,
        spreadsheetId: str,  # noqa: N803
        range: str,
        body: Mapping[str, object],
        valueInputOption: str = "RAW",  # noqa: N803
        insertDataOption: str = "INSERT_ROWS",  # noqa: N803
    ) -> _WorkbookRequest:
        return _WorkbookRequest(lambda: self._workbook.mutate(lambda book: _handle_append(book, range, body)))

    def update(
        self,
        spreadsheetId: str,  # noqa: N803
        range: str,
        body: Mapping[str, object],
        valueInputOption: str = "RAW",  # noqa: N803
    ) -> _WorkbookRequest:
        return _WorkbookRequest(lambda: self._workbook.mutate(lambda book: _handle_update(book, range, body)))


class LocalSpreadsheetsApi:
    def __init__(self, workbook: _WorkbookFile) -> None:
        self._workbook = workbook

    def values(self) -> LocalValuesApi:  # noqa: D401 - compatibility proxy
        return LocalValuesApi(self._workbook)

    def get(self, spreadsheetId: str, includeGridData: bool = False, **_: object) -> _WorkbookRequest:  # noqa: N803
        def _describe(book: _Workbook) -> Mapping[str, object]:
            sheets_payload = [
                {"properties": {"title": title, "sheetId": book.sheet_ids[title]}}
                for title in book.sheets
            ]
            return {"spreadsheetId": str(self._workbook.path), "sheets": sheets_payload}

        return _WorkbookRequest(lambda: self._workbook.read(_describe))

    def batchUpdate(self, spreadsheetId: str, body: Mapping[str, object]) -> _WorkbookRequest:  # noqa: N802, N803
        return _WorkbookRequest(lambda: self._workbook.mutate(lambda book: _handle_batch_update(book, body)))


class LocalWorkbookService:
    """Minimal Sheets API drop-in that stores worksheets in one JSON file."""

    def __init__(self, workbook_path: Path) -> None:
        self._workbook = _WorkbookFile(Path(workbook_path))

    @property
    def path(self) -> Path:
        return self._workbook.path

    def spreadsheets(self) -> LocalSpreadsheetsApi:  # noqa: D401 - compatibility proxy
        return LocalSpreadsheetsApi(self._workbook)


# ----------------------------------------------------------------------
# Request handlers
# ----------------------------------------------------------------------
def _require_sheet(book: _Workbook, title: str) -> List[List[str]]:
    rows = book.sheets.get(title)
    if rows is None:
        raise LocalWorkbookError(f"Unable to parse range: {title!r} does not exist")
    return rows


def _handle_get(book: _Workbook, range_spec: str) -> Mapping[str, object]:
    title, start, end = _parse_range(range_spec)
    rows = _require_sheet(book, title)
    values = _slice_rows(rows, start, end)
    return {"range": range_spec, "majorDimension": "ROWS", "values": values} if values else {"range": range_spec}


def _trim(rows: List[List[str]]) -> None:
    while rows and all(cell == "" for cell in rows[-1]):
        rows.pop()


def _write_row(rows: List[List[str]], row_index: int, column: int, values: Sequence[object]) -> None:
    while len(rows) < row_index:
        rows.append([])
    target = rows[row_index - 1]
    needed = column - 1 + len(values)
    while len(target) < needed:
        target.append("")
    for offset, cell in enumerate(values):
        target[column - 1 + offset] = "" if cell is None else str(cell)


def _handle_append(book: _Workbook, range_spec: str, body: Mapping[str, object]) -> Mapping[str, object]:
    title, start, _end = _parse_range(range_spec)
    rows = _require_sheet(book, title)
    _trim(rows)
    first_row = len(rows) + 1
    values = body.get("values", [])
    if not isinstance(values, Sequence):
        raise LocalWorkbookError("Append body must contain a list of rows")
    for offset, row in enumerate(values):
        _write_row(rows, first_row + offset, start.column or 1, list(row))
    return {"updates": {"updatedRows": len(values), "updatedRange": f"{title}!A{first_row}"}}


def _handle_update(book: _Workbook, range_spec: str, body: Mapping[str, object]) -> Mapping[str, object]:
    title, start, _end = _parse_range(range_spec)
    rows = _require_sheet(book, title)
    values = body.get("values", [])
    if not isinstance(values, Sequence):
        raise LocalWorkbookError("Update body must contain a list of rows")
    base_row = start.row or 1
    for offset, row in enumerate(values):
        _write_row(rows, base_row + offset, start.column or 1, list(row))
    _trim(rows)
    return {"updatedRows": len(values), "updatedRange": range_spec}


def _title_for_sheet_id(book: _Workbook, sheet_id: object) -> str:
    for title, candidate in book.sheet_ids.items():
        if candidate == sheet_id:
            return title
    raise LocalWorkbookError(f"No grid with id: {sheet_id}")


def _handle_batch_update(book: _Workbook, body: Mapping[str, object]) -> Mapping[str, object]:
    replies: List[Mapping[str, object]] = []
    for request in body.get("requests", []) or []:
        if not isinstance(request, Mapping):
            continue
        add_sheet = request.get("addSheet")
        if isinstance(add_sheet, Mapping):
            properties = add_sheet.get("properties", {})
            title = properties.get("title") if isinstance(properties, Mapping) else None
            if not isinstance(title, str) or not title:
                raise LocalWorkbookError("addSheet requires a title")
            if title in book.sheets:
                raise LocalWorkbookError(
                    f'A sheet with the name "{title}" already exists. Please enter another name.'
                )
            book.sheets[title] = []
            book.sheet_ids[title] = book.next_sheet_id()
            replies.append({"addSheet": {"properties": {"title": title, "sheetId": book.sheet_ids[title]}}})
            continue
        delete_dimension = request.get("deleteDimension")
        if isinstance(delete_dimension, Mapping):
            target = delete_dimension.get("range", {})
            if not isinstance(target, Mapping) or target.get("dimension") != "ROWS":
                raise LocalWorkbookError("Only ROWS deleteDimension requests are supported")
            title = _title_for_sheet_id(book, target.get("sheetId"))
            rows = book.sheets[title]
            start_index = int(target.get("startIndex", 0))
            end_index = int(target.get("endIndex", start_index + 1))
            del rows[start_index:end_index]
            replies.append({})
            continue
        raise LocalWorkbookError(f"Unsupported request: {sorted(request)}")
    return {"replies": replies}


# ----------------------------------------------------------------------
# A1 parsing
# ----------------------------------------------------------------------
_A1_RE = re.compile(r"^(?P<title>'(?:[^']|'')+'|[^!']+)(?:!(?P<cells>[A-Za-z0-9:]+))?$")
_CELL_RE = re.compile(r"^(?P<col>[A-Z]*)(?P<row>\d+)?$")


def _slice_rows(rows: Sequence[Sequence[str]], start: _CellRef, end: _CellRef) -> List[List[str]]:
    if not rows:
        return []
    min_row = max(1, start.row or 1)
    min_col = max(1, start.column or 1)
    max_row = end.row or len(rows)
    max_col = end.column or max((len(row) for row in rows), default=0)
    sliced: List[List[str]] = []
    for row_index in range(min_row - 1, min(max_row, len(rows))):
        row = rows[row_index]
        current: List[str] = []
        for col_index in range(min_col - 1, min(max_col, len(row))):
            current.append(str(row[col_index]))
        while current and current[-1] == "":
            current.pop()
        sliced.append(current)
    while sliced and not sliced[-1]:
        sliced.pop()
    return sliced


def _parse_range(range_spec: str) -> Tuple[str, _CellRef, _CellRef]:
    match = _A1_RE.match(range_spec.strip())
    if not match:
        raise LocalWorkbookError(f"Invalid range specification: {range_spec!r}")
    title = match.group("title")
    if title.startswith("'"):
        title = title[1:-1].replace("''", "'")
    cells = match.group("cells") or ""
    if ":" in cells:
        start_text, end_text = cells.split(":", 1)
    else:
        start_text = end_text = cells
    return title, _parse_cell(start_text), _parse_cell(end_text)


def _parse_cell(value: str) -> _CellRef:
    value = value.strip().upper()
    if not value:
        return _CellRef(row=None, column=None)
    match = _CELL_RE.match(value)
    if not match:
        raise LocalWorkbookError(f"Invalid cell reference: {value!r}")
    column_label = match.group("col")
    row_text = match.group("row")
    column = _column_index(column_label) if column_label else None
    row = int(row_text) if row_text else None
    return _CellRef(row=row, column=column)


def _column_index(label: str) -> int:
    index = 0
    for char in label:
        index = index * 26 + (ord(char) - ord("A") + 1)
    return max(1, index)


__all__ = ["LocalWorkbookError", "LocalWorkbookService"]
