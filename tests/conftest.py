from __future__ import annotations

import datetime
import os
import sys
import tempfile
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# Keep log files and the conflict journal out of the user's real app directory.
os.environ.setdefault("MANAGELY_HOME", tempfile.mkdtemp(prefix="managely-tests-"))

from managely.context import ManagelyContext, build_context  # noqa: E402
from managely.local_workbook import LocalWorkbookService  # noqa: E402
from managely.session import Session, SessionAccess  # noqa: E402
from managely.settings import AUTH_LOCAL, ManagelySettings  # noqa: E402

TODAY = datetime.date(2024, 3, 15)


@pytest.fixture
def today() -> datetime.date:
    return TODAY


@pytest.fixture
def workbook_path(tmp_path: Path) -> Path:
    return tmp_path / "workbook.json"


@pytest.fixture
def settings(workbook_path: Path) -> ManagelySettings:
    return ManagelySettings(
        spreadsheet_id=str(workbook_path),
        auth_mode=AUTH_LOCAL,
        integrity_key="test-key",
    )


def make_context(settings: ManagelySettings, workbook_path: Path, access: SessionAccess | None = None) -> ManagelyContext:
    return build_context(
        settings,
        session=Session(access=access or SessionAccess.full()),
        service=LocalWorkbookService(workbook_path),
        today=lambda: TODAY,
    )


@pytest.fixture
def context(settings: ManagelySettings, workbook_path: Path) -> ManagelyContext:
    return make_context(settings, workbook_path)


@pytest.fixture
def other_context(settings: ManagelySettings, workbook_path: Path) -> ManagelyContext:
    """A second session on the same workbook with its own cache."""

    return make_context(settings, workbook_path)
