"""Manual financial adjustments (revenue and expense entries)."""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional

from managely import cells, dates, schema
from managely.cache import TtlCache
from managely.models import ACCOUNTING_PRODUCT, FinancialAdjustment
from managely.repository import SheetRepository
from managely.sheets_client import SheetsStore


@dataclass(frozen=True)
class AdjustmentTotals:
    revenue: Decimal
    expense: Decimal


class AdjustmentRepository(SheetRepository[FinancialAdjustment]):
    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        *,
        ttl: Optional[float] = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        super().__init__(store, cache, schema.ADJUSTMENTS, ttl=ttl)
        self._today = today

    def _apply_defaults(self, entity: FinancialAdjustment) -> None:
        if not entity.date:
            entity.date = dates.format_date(self._today())

    async def in_period(self, month: int, year: int) -> List[FinancialAdjustment]:
        return [item for item in await self.get_all() if dates.in_period(item.date, month, year)]

    async def totals(
        self,
        month: int,
        year: int,
        exclude_category: Optional[str] = ACCOUNTING_PRODUCT,
    ) -> AdjustmentTotals:
        """Revenue and expense (as a positive number) of a period.

        Entries tagged ``exclude_category`` are skipped; by default that is
        the product category, already counted through restock movements.
        """

        return summarise(await self.in_period(month, year), exclude_category)


def summarise(items: List[FinancialAdjustment], exclude_category: Optional[str] = ACCOUNTING_PRODUCT) -> AdjustmentTotals:
    revenue = cells.ZERO
    expense = cells.ZERO
    for item in items:
        if exclude_category and item.accounting_category == exclude_category:
            continue
        if item.amount > 0:
            revenue += item.amount
        elif item.amount < 0:
            expense += -item.amount
    return AdjustmentTotals(revenue=revenue, expense=expense)


__all__ = ["AdjustmentRepository", "AdjustmentTotals", "summarise"]
