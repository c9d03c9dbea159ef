import asyncio
import sys
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from managely import conflicts, schema
from managely.cache import TtlCache
from managely.local_workbook import LocalWorkbookService
from managely.models import Client, ServiceItem
from managely.repository import EntityNotFoundError, PersistenceError, SheetRepository, UpdateResult


class _RejectingStore:
    async def ensure_sheet(self, title, headers):
        return None

    async def read_all(self, title, columns):
        return []

    async def append(self, title, columns, row):
        return False


def test_add_assigns_guid_row_and_hash(context) -> None:
    async def scenario():
        guid = await context.clients.add(Client(last_name="dupont", first_name="marie", phone="0612345678"))
        return guid, await context.clients.get_by_id(guid)

    guid, stored = asyncio.run(scenario())

    assert stored.guid == guid
    assert stored.row_index == 2
    assert stored.last_name == "DUPONT"
    assert stored.phone == "06 12 34 56 78"
    assert stored.created_at and stored.created_at == stored.modified_at
    assert context.clients.hasher.matches(stored, stored.integrity_hash)


def test_stale_update_is_rejected_then_forced(context, other_context) -> None:
    conflicts.clear()

    async def scenario():
        guid = await context.clients.add(Client(last_name="DUPONT", first_name="Marie", phone="0612345678"))
        mine = await context.clients.get_by_id(guid)
        theirs = await other_context.clients.get_by_id(guid)

        theirs.phone = "0622222222"
        assert await other_context.clients.update(theirs) is UpdateResult.UPDATED

        mine.phone = "0633333333"
        rejected = await context.clients.update(mine)
        after_reject = await context.clients.get_by_id(guid, force_refresh=True)

        forced = await context.clients.update(mine, force_write=True)
        after_force = await context.clients.get_by_id(guid, force_refresh=True)
        return guid, rejected, after_reject, forced, after_force

    guid, rejected, after_reject, forced, after_force = asyncio.run(scenario())

    assert rejected is UpdateResult.CONFLICT
    assert after_reject.phone == "06 22 22 22 22"
    entry = conflicts.recent(1)[0]
    assert entry["row_id"] == guid
    assert entry["sheet"] == "Clients"
    assert "numero_telephone" in entry["fields"]

    assert forced is UpdateResult.UPDATED
    assert after_force.phone == "06 33 33 33 33"
    assert context.clients.hasher.matches(after_force, after_force.integrity_hash)


def test_sequential_updates_from_one_session_do_not_conflict(context) -> None:
    async def scenario():
        guid = await context.clients.add(Client(last_name="MARTIN", first_name="Paul"))
        first = await context.clients.get_by_id(guid)
        first.email = "paul@example.com"
        one = await context.clients.update(first)
        second = await context.clients.get_by_id(guid)
        second.address = "2 rue Haute"
        two = await context.clients.update(second)
        return one, two, await context.clients.get_by_id(guid)

    one, two, stored = asyncio.run(scenario())

    assert one is UpdateResult.UPDATED
    assert two is UpdateResult.UPDATED
    assert stored.email == "paul@example.com"
    assert stored.address == "2 rue Haute"


def test_delete_by_id_resolves_the_current_row(context, other_context) -> None:
    async def scenario():
        guids = [await context.services.add(ServiceItem(name=name)) for name in ("Soin", "Massage", "Manucure")]
        stale = await context.services.get_all()
        await other_context.services.delete_by_id(guids[0])
        await context.services.delete_by_id(guids[2])
        return stale, await context.services.get_all(force_refresh=True)

    stale, remaining = asyncio.run(scenario())

    assert [item.row_index for item in stale] == [2, 3, 4]
    assert [item.name for item in remaining] == ["Massage"]
    assert remaining[0].row_index == 2


def test_update_of_missing_row_raises(context) -> None:
    with pytest.raises(EntityNotFoundError):
        asyncio.run(context.services.update(ServiceItem(guid="missing", name="Soin")))


def test_rejected_append_raises_persistence_error() -> None:
    repository = SheetRepository(_RejectingStore(), TtlCache(), schema.SERVICES)

    with pytest.raises(PersistenceError):
        asyncio.run(repository.add(ServiceItem(name="Soin")))


def test_reads_are_cached_until_a_local_write(context, other_context) -> None:
    async def scenario():
        await context.services.add(ServiceItem(name="Soin", default_price=Decimal("40")))
        first = await context.services.get_all()
        await other_context.services.add(ServiceItem(name="Massage"))
        cached = await context.services.get_all()
        refreshed = await context.services.get_all(force_refresh=True)
        await context.services.add(ServiceItem(name="Manucure"))
        after_write = await context.services.get_all()
        return first, cached, refreshed, after_write

    first, cached, refreshed, after_write = asyncio.run(scenario())

    assert len(first) == 1
    assert len(cached) == 1
    assert len(refreshed) == 2
    assert len(after_write) == 3


def test_returned_entities_are_copies(context) -> None:
    async def scenario():
        await context.services.add(ServiceItem(name="Soin"))
        items = await context.services.get_all()
        items[0].name = "changed"
        return await context.services.get_all()

    assert asyncio.run(scenario())[0].name == "Soin"


def test_blank_rows_are_skipped_but_keep_row_numbers(context, workbook_path: Path) -> None:
    asyncio.run(context.ensure_sheets())
    values = LocalWorkbookService(workbook_path).spreadsheets().values()
    values.update(spreadsheetId="book", range="'Prestations'!A2:B2", body={"values": [["s1", "Soin"]]}).execute()
    values.update(spreadsheetId="book", range="'Prestations'!A4:B4", body={"values": [["s3", "Massage"]]}).execute()

    items = asyncio.run(context.services.get_all(force_refresh=True))

    assert [(item.guid, item.row_index) for item in items] == [("s1", 2), ("s3", 4)]


def test_catalog_views(context) -> None:
    async def scenario():
        await context.services.add(ServiceItem(name="Soin", category="Visage"))
        await context.services.add(ServiceItem(name="Massage", category="Corps", active=False))
        await context.services.add(ServiceItem(name="Gommage", category="Corps"))
        return await context.services.active(), await context.services.categories()

    active, categories = asyncio.run(scenario())

    assert [item.name for item in active] == ["Soin", "Gommage"]
    assert categories == ["Corps", "Visage"]


def test_add_returns_the_guid_and_leaves_row_index_to_reads(context) -> None:
    async def scenario():
        service = ServiceItem(name="Soin")
        guid = await context.services.add(service)
        return service, guid, await context.services.get_by_id(guid)

    service, guid, stored = asyncio.run(scenario())

    assert service.guid == guid
    assert service.row_index == 0
    assert stored.row_index == 2
