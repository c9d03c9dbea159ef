"""Service catalog and product inventory repositories."""
from __future__ import annotations

import logging
from typing import List, Optional

from managely import schema
from managely.cache import TtlCache
from managely.models import Product, ServiceItem
from managely.repository import PersistenceError, SheetRepository
from managely.sheets_client import SheetsStore

logger = logging.getLogger(__name__)


class ServiceRepository(SheetRepository[ServiceItem]):
    """Service catalog entries.

    Visits keep their own price snapshot, so editing a catalog entry never
    changes past visits.
    """

    def __init__(self, store: SheetsStore, cache: TtlCache, *, ttl: Optional[float] = None) -> None:
        super().__init__(store, cache, schema.SERVICES, ttl=ttl)

    async def active(self) -> List[ServiceItem]:
        return [item for item in await self.get_all() if item.active]

    async def categories(self) -> List[str]:
        return sorted({item.category for item in await self.get_all() if item.category})


class ProductRepository(SheetRepository[Product]):
    """Products; the stock column belongs to the stock movement engine.

    ``update`` always writes back the stock currently stored in the sheet,
    whatever the caller's entity carries.  Only :meth:`set_stock` changes it.
    """

    def __init__(self, store: SheetsStore, cache: TtlCache, *, ttl: Optional[float] = None) -> None:
        super().__init__(store, cache, schema.PRODUCTS, ttl=ttl)

    def _before_update(self, entity: Product, stored: Product) -> None:
        if entity.stock != stored.stock:
            logger.debug("Ignoring stock edit on %s; stock changes go through movements", entity.guid)
        entity.stock = stored.stock

    async def set_stock(self, product: Product, stock: int) -> None:
        """Write ``stock`` for ``product``.  Reserved for the stock engine."""

        stored = await self._fresh(product.guid)
        stored.stock = stock
        row = self.schema.to_row(stored)
        if not await self._store.update_at(self.schema.title, stored.row_index, self.schema.width, row):
            raise PersistenceError(f"Stock update of {product.guid} was not applied")
        product.stock = stock
        product.row_index = stored.row_index
        self._cache.invalidate(self.schema.cache_key)

    async def active(self) -> List[Product]:
        return [item for item in await self.get_all() if item.active]

    async def in_alert(self) -> List[Product]:
        return [item for item in await self.get_all() if item.active and item.in_alert]

    async def out_of_stock(self) -> List[Product]:
        return [item for item in await self.get_all() if item.active and item.out_of_stock]


__all__ = ["ProductRepository", "ServiceRepository"]
