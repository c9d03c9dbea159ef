"""Google Sheets store adapter with robust A1 range handling.

This module centralises all direct interactions with the spreadsheet used by
Managely.  The repositories only ever see five operations:

``ensure_sheet``
    Create a worksheet and its header row when missing.  Safe to call
    repeatedly and from several sessions at once.
``read_all``
    Return every data row below the header, in sheet order.  Blank rows are
    kept as empty lists so that ``row_index = position + 2`` stays true.
``append`` / ``update_at`` / ``delete_at``
    Row level writes.  A row index is only meaningful for the snapshot
    returned by the ``read_all`` call it came from.

Every blocking client call is pushed to a worker thread with
:func:`asyncio.to_thread`, so the event loop only suspends at this boundary.
All public entry points raise subclasses of :class:`StoreError`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Dict, List, Mapping, MutableSequence, Sequence, Set

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from managely.local_workbook import LocalWorkbookError, LocalWorkbookService
from managely.session import Session, SessionAccess
from managely.settings import AUTH_LOCAL, ManagelySettings

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (HttpError, LocalWorkbookError, OSError)


class StoreError(RuntimeError):
    """Base error raised for spreadsheet store failures."""


class StoreUnauthorizedError(StoreError):
    """Raised when a write is attempted without a write-capable session."""


class StoreTransportError(StoreError):
    """Raised when the spreadsheet backend rejects or fails a request."""


class StoreConfigurationError(StoreError):
    """Raised when the store cannot be constructed from the settings."""


def _normalise_title(title: str) -> str:
    """Return a worksheet title quoted according to A1 notation rules."""

    safe = (title or "").strip()
    if not safe:
        raise StoreError("Worksheet title must not be empty.")
    safe = safe.replace("'", "''")
    return f"'{safe}'"


def _column_letter(index: int) -> str:
    if index < 1:
        raise ValueError("Column index must be >= 1")
    letters: MutableSequence[str] = []
    while index:
        index, remainder = divmod(index - 1, 26)
        letters.append(chr(65 + remainder))
    return "".join(reversed(letters))


def a1_headers_range(title: str, *, columns: int) -> str:
    """Return an A1 range covering the header row for ``title``."""

    return f"{_normalise_title(title)}!A1:{_column_letter(max(1, columns))}1"


def a1_data_range(title: str, *, columns: int) -> str:
    """Return an A1 range spanning every data row (row 2 onwards)."""

    return f"{_normalise_title(title)}!A2:{_column_letter(max(1, columns))}"


def a1_row_range(title: str, row_index: int, *, columns: int) -> str:
    """Return an A1 range covering ``row_index`` for ``title``."""

    if row_index < 1:
        raise ValueError("Row index must be >= 1")
    last_column = _column_letter(max(1, columns))
    return f"{_normalise_title(title)}!A{row_index}:{last_column}{row_index}"


def _is_already_exists(exc: Exception) -> bool:
    return "already exists" in str(exc).lower()


class SheetsStore:
    """Row oriented async adapter over a Sheets v4 service object."""

    def __init__(self, spreadsheet_id: str, service, access: SessionAccess) -> None:
        self._spreadsheet_id = spreadsheet_id
        self._service = service
        self._access = access
        self._ensured: Set[str] = set()
        self._sheet_ids: Dict[str, int] = {}

    @property
    def access(self) -> SessionAccess:
        return self._access

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def ensure_sheet(self, title: str, headers: Sequence[str]) -> None:
        if title in self._ensured:
            return

        sheet_ids = await self._load_sheet_ids()
        if title not in sheet_ids:
            if not self._access.can_write:
                raise StoreUnauthorizedError(f"Sheet {title!r} is missing and the session is read-only.")
            await self._add_sheet(title)

        current = await self._execute(
            self._values().get(spreadsheetId=self._spreadsheet_id, range=a1_headers_range(title, columns=len(headers)))
        )
        values = current.get("values", [])
        existing = [str(cell) for cell in values[0]] if values else []
        if existing != list(headers):
            if self._access.can_write:
                logger.info("Writing header row for %s", title)
                await self._execute(
                    self._values().update(
                        spreadsheetId=self._spreadsheet_id,
                        range=a1_headers_range(title, columns=len(headers)),
                        valueInputOption="RAW",
                        body={"values": [list(headers)]},
                    )
                )
            else:
                logger.warning("Header row of %s differs but the session is read-only", title)
        self._ensured.add(title)

    async def read_all(self, title: str, columns: int) -> List[List[str]]:
        if not self._access.can_read:
            raise StoreUnauthorizedError("Reading requires a signed-in session.")
        response = await self._execute(
            self._values().get(spreadsheetId=self._spreadsheet_id, range=a1_data_range(title, columns=columns))
        )
        return [[str(cell) for cell in row] for row in response.get("values", [])]  # type: ignore[union-attr]

    async def append(self, title: str, columns: int, row: Sequence[object]) -> bool:
        self._require_write()
        response = await self._execute(
            self._values().append(
                spreadsheetId=self._spreadsheet_id,
                range=f"{_normalise_title(title)}!A1:{_column_letter(max(1, columns))}",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": [list(row)]},
            )
        )
        return response is not None

    async def update_at(self, title: str, row_index: int, columns: int, row: Sequence[object]) -> bool:
        self._require_write()
        if row_index < 2:
            raise StoreError(f"Refusing to overwrite header row of {title!r}")
        response = await self._execute(
            self._values().update(
                spreadsheetId=self._spreadsheet_id,
                range=a1_row_range(title, row_index, columns=columns),
                valueInputOption="RAW",
                body={"values": [list(row)]},
            )
        )
        return response is not None

    async def delete_at(self, title: str, row_index: int) -> bool:
        self._require_write()
        if row_index < 2:
            raise StoreError(f"Refusing to delete header row of {title!r}")
        sheet_ids = await self._load_sheet_ids()
        if title not in sheet_ids:
            raise StoreTransportError(f"Sheet {title!r} not found")
        body = {
            "requests": [
                {
                    "deleteDimension": {
                        "range": {
                            "sheetId": sheet_ids[title],
                            "dimension": "ROWS",
                            "startIndex": row_index - 1,
                            "endIndex": row_index,
                        }
                    }
                }
            ]
        }
        response = await self._execute(
            self._service.spreadsheets().batchUpdate(spreadsheetId=self._spreadsheet_id, body=body)
        )
        logger.info("Deleted row %s of %s", row_index, title)
        return response is not None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _values(self):
        return self._service.spreadsheets().values()

    def _require_write(self) -> None:
        if not self._access.can_write:
            raise StoreUnauthorizedError("This operation requires write access to the spreadsheet.")

    async def _execute(self, request) -> Mapping[str, object]:
        try:
            response = await asyncio.to_thread(request.execute)
        except _TRANSPORT_ERRORS as exc:
            raise StoreTransportError(str(exc)) from exc
        return response or {}

    async def _load_sheet_ids(self) -> Dict[str, int]:
        response = await self._execute(
            self._service.spreadsheets().get(spreadsheetId=self._spreadsheet_id, includeGridData=False)
        )
        sheet_ids: Dict[str, int] = {}
        for sheet in response.get("sheets", []):  # type: ignore[union-attr]
            properties = sheet.get("properties", {}) if isinstance(sheet, Mapping) else {}
            title = properties.get("title")
            if isinstance(title, str):
                sheet_ids[title] = int(properties.get("sheetId", 0))
        self._sheet_ids = sheet_ids
        return sheet_ids

    async def _add_sheet(self, title: str) -> None:
        body = {"requests": [{"addSheet": {"properties": {"title": title}}}]}
        try:
            await self._execute(
                self._service.spreadsheets().batchUpdate(spreadsheetId=self._spreadsheet_id, body=body)
            )
        except StoreTransportError as exc:
            if not _is_already_exists(exc):
                raise
            logger.debug("Sheet %s was created concurrently", title)
        else:
            logger.info("Created sheet %s", title)


def _normalise_path(candidate: str) -> Path:
    path = Path(candidate).expanduser()
    if not path.is_absolute():
        path = Path.cwd() / path
    return path


def is_local_target(spreadsheet_id: str) -> bool:
    if Path(spreadsheet_id).suffix.lower() == ".json":
        return True
    return Path(spreadsheet_id).exists()


def build_store(settings: ManagelySettings, session: Session, *, service=None) -> SheetsStore:
    """Factory helper constructing a store for ``settings``."""

    spreadsheet_id = (settings.spreadsheet_id or "").strip()
    if not spreadsheet_id:
        raise StoreConfigurationError("No spreadsheet configured.")

    if service is not None:
        return SheetsStore(spreadsheet_id, service, session.access)

    if settings.auth_mode == AUTH_LOCAL or is_local_target(spreadsheet_id):
        path = _normalise_path(spreadsheet_id)
        logger.info("Using local workbook %s", path)
        return SheetsStore(str(path), LocalWorkbookService(path), session.access)

    if session.credentials is None:
        raise StoreConfigurationError("Google credentials are required for a remote spreadsheet.")
    try:
        google_service = build("sheets", "v4", credentials=session.credentials, cache_discovery=False)
    except _TRANSPORT_ERRORS as exc:
        raise StoreTransportError(str(exc)) from exc
    return SheetsStore(spreadsheet_id, google_service, session.access)


__all__ = [
    "SheetsStore",
    "StoreConfigurationError",
    "StoreError",
    "StoreTransportError",
    "StoreUnauthorizedError",
    "a1_data_range",
    "a1_headers_range",
    "a1_row_range",
    "build_store",
    "is_local_target",
]
