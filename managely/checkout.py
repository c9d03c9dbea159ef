"""Visit recording workflow.

Order of writes for one visit:

1. gift card payments are checked against the cards as currently stored;
2. the visit row is appended;
3. each gift card payment is redeemed;
4. a ``sortie``/``vente`` movement is recorded for each catalog product sold;
5. the loyalty rules run for the client.

Nothing is rolled back if a later step fails.  Stock failures are collected
on the result so loyalty evaluation still runs for a visit that is already
stored.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Tuple

from managely import cells
from managely.catalog import ProductRepository
from managely.gift_cards import GiftCardRepository
from managely.loyalty import LoyaltyEngine, birthday_voucher_usable
from managely.models import CARD_BIRTHDAY, GiftCard, Visit
from managely.stock import StockMovementRepository, StockSyncError
from managely.visits import VisitRepository

logger = logging.getLogger(__name__)


class CheckoutError(ValueError):
    """Raised when a visit's payments cannot be accepted."""


@dataclass
class CheckoutResult:
    visit_guid: str
    redeemed: Dict[str, Decimal] = field(default_factory=dict)
    shortfalls: Dict[str, Decimal] = field(default_factory=dict)
    minted: List[GiftCard] = field(default_factory=list)
    stock_errors: List[StockSyncError] = field(default_factory=list)


def gift_card_charges(visit: Visit) -> List[Tuple[str, Decimal]]:
    """``(card guid, amount)`` pairs the visit asks to charge on gift cards."""

    if visit.payments:
        return [
            (payment.gift_card_guid, payment.amount)
            for payment in visit.payments
            if payment.is_gift_card and payment.gift_card_guid and payment.amount > 0
        ]
    if visit.gift_card_guid and visit.gift_card_amount > 0:
        return [(visit.gift_card_guid, visit.gift_card_amount)]
    return []


class CheckoutService:
    def __init__(
        self,
        visits: VisitRepository,
        products: ProductRepository,
        stock: StockMovementRepository,
        gift_cards: GiftCardRepository,
        loyalty: LoyaltyEngine,
        *,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self._visits = visits
        self._products = products
        self._stock = stock
        self._gift_cards = gift_cards
        self._loyalty = loyalty
        self._today = today

    async def _check_cards(self, visit: Visit, charges: List[Tuple[str, Decimal]]) -> None:
        today = self._today()
        for card_guid, _amount in charges:
            card = await self._gift_cards.get_by_id(card_guid, force_refresh=True)
            if card is None:
                raise CheckoutError(f"Gift card {card_guid} does not exist")
            if not card.usable_on(today):
                raise CheckoutError(f"Gift card {card_guid} is {card.status_on(today)}")
            if card.card_type == CARD_BIRTHDAY and not birthday_voucher_usable(visit.service_subtotal):
                raise CheckoutError("Birthday vouchers require more than 60 of services on the visit")

    async def record_visit(self, visit: Visit) -> CheckoutResult:
        charges = gift_card_charges(visit)
        await self._check_cards(visit, charges)

        visit_guid = await self._visits.add(visit)
        result = CheckoutResult(visit_guid=visit_guid)

        for card_guid, amount in charges:
            deducted = await self._gift_cards.redeem(card_guid, amount)
            result.redeemed[card_guid] = result.redeemed.get(card_guid, cells.ZERO) + deducted
            if deducted < amount:
                result.shortfalls[card_guid] = amount - deducted
                logger.warning("Gift card %s covered %s of %s on visit %s", card_guid, deducted, amount, visit_guid)

        known_products = {product.guid for product in await self._products.get_all()}
        for item in visit.products_sold:
            if item.quantity <= 0 or item.product_id not in known_products:
                continue
            try:
                await self._stock.record_exit(item.product_id, item.quantity, item.unit_price, reference=visit_guid)
            except StockSyncError as exc:
                logger.error("Stock not updated for visit %s: %s", visit_guid, exc)
                result.stock_errors.append(exc)

        result.minted = await self._loyalty.evaluate_after_visit(visit.client_guid)
        return result


__all__ = ["CheckoutError", "CheckoutResult", "CheckoutService", "gift_card_charges"]
