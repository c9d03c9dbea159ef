"""Visit (passage) repository."""
from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from managely import cells, dates, schema
from managely.cache import TtlCache
from managely.integrity import IntegrityHasher
from managely.models import Visit
from managely.repository import IntegrityRepository
from managely.sheets_client import SheetsStore


def most_recent_first(visits: Sequence[Visit]) -> List[Visit]:
    """Order by visit date, newest first; ties keep the later sheet row first.

    Rows with an unparseable date sort last.
    """

    def _key(visit: Visit):
        parsed = visit.parsed_date
        return (parsed is not None, parsed or datetime.date.min, visit.row_index)

    return sorted(visits, key=_key, reverse=True)


class VisitRepository(IntegrityRepository[Visit]):
    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        hasher: IntegrityHasher,
        *,
        ttl: Optional[float] = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        super().__init__(store, cache, schema.VISITS, hasher, ttl=ttl)
        self._today = today

    def _apply_defaults(self, entity: Visit) -> None:
        if not entity.date:
            entity.date = dates.format_date(self._today())

    async def by_client(self, client_guid: str) -> List[Visit]:
        return most_recent_first([visit for visit in await self.get_all() if visit.client_guid == client_guid])

    async def count_by_client(self, client_guid: str, force_refresh: bool = False) -> int:
        return sum(1 for visit in await self.get_all(force_refresh) if visit.client_guid == client_guid)

    async def total_spent_by_client(self, client_guid: str) -> Decimal:
        return sum((visit.total for visit in await self.by_client(client_guid)), cells.ZERO)

    async def in_period(self, month: int, year: int) -> List[Visit]:
        return [visit for visit in await self.get_all() if dates.in_period(visit.date, month, year)]


__all__ = ["VisitRepository", "most_recent_first"]
