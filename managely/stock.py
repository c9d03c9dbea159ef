"""Stock movements and their effect on product stock.

Recording a movement is two separate writes: the movement row is appended,
then the product row is rewritten with the new stock.  The store has no
transaction spanning both.  If reading or rewriting the product fails, the
movement stays recorded (at-least-once), the gap is written to the conflict
journal with the stock values known at that point, and
:class:`StockSyncError` is raised so the caller can correct the product by
hand or replay the adjustment.
"""
from __future__ import annotations

import datetime
import logging
from decimal import Decimal
from typing import Callable, List, Optional

from managely import cells, conflicts, dates, schema
from managely.cache import TtlCache
from managely.catalog import ProductRepository
from managely.models import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REASON_RESTOCK,
    REASON_SALE,
    StockMovement,
)
from managely.repository import RepositoryError, SheetRepository
from managely.sheets_client import SheetsStore, StoreError

logger = logging.getLogger(__name__)


class StockSyncError(RepositoryError):
    """Raised when a movement was recorded but the product stock was not."""

    def __init__(self, message: str, movement_guid: str) -> None:
        super().__init__(message)
        self.movement_guid = movement_guid


def apply_movement(stock: int, movement: StockMovement) -> int:
    if movement.movement_type == MOVEMENT_IN:
        return stock + movement.quantity
    return max(0, stock - movement.quantity)


class StockMovementRepository(SheetRepository[StockMovement]):
    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        products: ProductRepository,
        *,
        ttl: Optional[float] = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        super().__init__(store, cache, schema.STOCK_MOVEMENTS, ttl=ttl)
        self._products = products
        self._today = today

    def _apply_defaults(self, entity: StockMovement) -> None:
        if not entity.date:
            entity.date = dates.format_date(self._today())

    async def record(self, movement: StockMovement) -> str:
        """Append ``movement`` and apply it to the product's stock."""

        guid = await self.add(movement)

        before = after = None
        try:
            product = await self._products.get_by_id(movement.product_guid, force_refresh=True)
            if product is None:
                logger.warning("Movement %s references unknown product %s", guid, movement.product_guid)
                return guid
            before = product.stock
            after = apply_movement(before, movement)
            await self._products.set_stock(product, after)
        except (StoreError, RepositoryError) as exc:
            # the product row was never read when before is None
            expected = f"{movement.movement_type} {movement.quantity}" if after is None else str(after)
            conflicts.record(
                movement.product_guid,
                {"stock": ("" if before is None else str(before), expected)},
                source="stock_movement",
                context={"movement_guid": guid, "error": str(exc)},
            )
            raise StockSyncError(
                f"Movement {guid} recorded but stock of {movement.product_guid} not updated: {exc}",
                guid,
            ) from exc

        logger.info(
            "Stock of %s: %s -> %s (%s %s)", movement.product_guid, before, after, movement.movement_type, movement.quantity
        )
        return guid

    async def restock(self, product_guid: str, quantity: int, unit_cost: Decimal, note: str = "") -> str:
        return await self.record(
            StockMovement(
                product_guid=product_guid,
                movement_type=MOVEMENT_IN,
                quantity=quantity,
                unit_cost=unit_cost,
                reason=REASON_RESTOCK,
                note=note,
            )
        )

    async def record_exit(
        self,
        product_guid: str,
        quantity: int,
        unit_price: Decimal,
        *,
        reason: str = REASON_SALE,
        reference: str = "",
        note: str = "",
    ) -> str:
        """Record an outgoing movement; ``reference`` is the visit guid for sales."""

        return await self.record(
            StockMovement(
                product_guid=product_guid,
                movement_type=MOVEMENT_OUT,
                quantity=quantity,
                unit_cost=unit_price,
                reason=reason,
                reference=reference,
                note=note,
            )
        )

    async def by_product(self, product_guid: str) -> List[StockMovement]:
        movements = [movement for movement in await self.get_all() if movement.product_guid == product_guid]
        return sorted(
            movements,
            key=lambda movement: (dates.parse_date(movement.date) or datetime.date.min, movement.row_index),
            reverse=True,
        )

    async def total_charges(self, month: Optional[int] = None, year: Optional[int] = None) -> Decimal:
        """Sum of restock amounts, optionally limited to a month and/or year."""

        total = cells.ZERO
        for movement in await self.get_all():
            if not movement.is_restock:
                continue
            if month is not None or year is not None:
                parsed = dates.parse_date(movement.date)
                if parsed is None:
                    continue
                if year is not None and parsed.year != year:
                    continue
                if month is not None and parsed.month != month:
                    continue
            total += movement.amount
        return total


__all__ = ["StockMovementRepository", "StockSyncError", "apply_movement"]
