import asyncio
import json
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from googleapiclient.errors import HttpError

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from managely.local_workbook import LocalWorkbookService
from managely.session import SessionAccess
from managely.sheets_client import (
    SheetsStore,
    StoreError,
    StoreTransportError,
    StoreUnauthorizedError,
    a1_data_range,
    a1_headers_range,
    a1_row_range,
)

HEADERS = ["guid", "nom", "prenom"]


class _FakeRequest:
    def __init__(self, callback):
        self._callback = callback

    def execute(self):
        return self._callback()


class _StaleSpreadsheets:
    """Reports no sheets although another session already created them."""

    def __init__(self, inner) -> None:
        self._inner = inner

    def get(self, spreadsheetId, includeGridData=False):  # noqa: N803 - API compatibility
        return _FakeRequest(lambda: {"sheets": []})

    def batchUpdate(self, spreadsheetId, body):  # noqa: N802, N803 - API compatibility
        return self._inner.batchUpdate(spreadsheetId=spreadsheetId, body=body)

    def values(self):
        return self._inner.values()


class _StaleService:
    def __init__(self, inner: LocalWorkbookService) -> None:
        self._inner = inner

    def spreadsheets(self):
        return _StaleSpreadsheets(self._inner.spreadsheets())


class _FailingValues:
    def get(self, spreadsheetId, range):  # noqa: N803 - API compatibility
        def _raise():
            raise HttpError(SimpleNamespace(status=503, reason="Service Unavailable"), b"backend error")

        return _FakeRequest(_raise)


class _FailingSpreadsheets:
    def values(self):
        return _FailingValues()


class _FailingService:
    def spreadsheets(self):
        return _FailingSpreadsheets()


def _store(path: Path, access: SessionAccess = SessionAccess.full()) -> SheetsStore:
    return SheetsStore(str(path), LocalWorkbookService(path), access)


def test_a1_ranges_quote_titles_and_columns() -> None:
    assert a1_headers_range("Clients", columns=10) == "'Clients'!A1:J1"
    assert a1_data_range("Passages", columns=13) == "'Passages'!A2:M"
    assert a1_row_range("Chez 'Lou'", 5, columns=27) == "'Chez ''Lou'''!A5:AA5"


def test_ensure_sheet_is_idempotent_across_sessions(tmp_path: Path) -> None:
    path = tmp_path / "book.json"

    async def scenario() -> None:
        first = _store(path)
        await first.ensure_sheet("Clients", HEADERS)
        await first.ensure_sheet("Clients", HEADERS)
        await _store(path).ensure_sheet("Clients", HEADERS)

    asyncio.run(scenario())

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert list(saved["sheets"]) == ["Clients"]
    assert saved["sheets"]["Clients"] == [HEADERS]


def test_ensure_sheet_tolerates_concurrent_creation(tmp_path: Path) -> None:
    path = tmp_path / "book.json"
    stale = SheetsStore(str(path), _StaleService(LocalWorkbookService(path)), SessionAccess.full())

    async def scenario() -> None:
        await _store(path).ensure_sheet("Clients", HEADERS)
        await stale.ensure_sheet("Clients", HEADERS)

    asyncio.run(scenario())

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert list(saved["sheets"]) == ["Clients"]


def test_ensure_sheet_rewrites_a_different_header(tmp_path: Path) -> None:
    path = tmp_path / "book.json"

    async def scenario() -> None:
        await _store(path).ensure_sheet("Clients", ["guid", "nom"])
        await _store(path).ensure_sheet("Clients", HEADERS)

    asyncio.run(scenario())

    saved = json.loads(path.read_text(encoding="utf-8"))
    assert saved["sheets"]["Clients"][0] == HEADERS


def test_rows_round_trip_and_delete_shifts_indices(tmp_path: Path) -> None:
    store = _store(tmp_path / "book.json")

    async def scenario():
        await store.ensure_sheet("Clients", HEADERS)
        for guid in ("a", "b", "c"):
            assert await store.append("Clients", 3, [guid, guid.upper(), ""])
        await store.update_at("Clients", 3, 3, ["b", "B", "Bernard"])
        before = await store.read_all("Clients", 3)
        await store.delete_at("Clients", 2)
        after = await store.read_all("Clients", 3)
        return before, after

    before, after = asyncio.run(scenario())

    assert before == [["a", "A"], ["b", "B", "Bernard"], ["c", "C"]]
    assert after == [["b", "B", "Bernard"], ["c", "C"]]


def test_writes_require_write_access(tmp_path: Path) -> None:
    path = tmp_path / "book.json"
    store = _store(path, SessionAccess.read_only())

    with pytest.raises(StoreUnauthorizedError):
        asyncio.run(store.append("Clients", 3, ["a", "A", ""]))
    with pytest.raises(StoreUnauthorizedError):
        asyncio.run(store.ensure_sheet("Clients", HEADERS))

    assert not path.exists()


def test_reads_require_a_signed_in_session(tmp_path: Path) -> None:
    store = _store(tmp_path / "book.json", SessionAccess.signed_out())

    with pytest.raises(StoreUnauthorizedError):
        asyncio.run(store.read_all("Clients", 3))


def test_header_row_is_never_overwritten(tmp_path: Path) -> None:
    store = _store(tmp_path / "book.json")
    asyncio.run(store.ensure_sheet("Clients", HEADERS))

    with pytest.raises(StoreError):
        asyncio.run(store.update_at("Clients", 1, 3, ["x", "y", "z"]))
    with pytest.raises(StoreError):
        asyncio.run(store.delete_at("Clients", 1))


def test_backend_errors_become_transport_errors(tmp_path: Path) -> None:
    local = _store(tmp_path / "book.json")
    remote = SheetsStore("sheet-id", _FailingService(), SessionAccess.full())

    with pytest.raises(StoreTransportError):
        asyncio.run(local.read_all("Absent", 3))
    with pytest.raises(StoreTransportError):
        asyncio.run(remote.read_all("Clients", 3))
