"""Cash-basis financial statements and dashboard aggregates.

The engine only reads.  Every figure is derived from visits, gift cards,
stock movements and manual adjustments loaded through the repositories.
Records whose date does not parse as ``dd/MM/yyyy`` or ``yyyy-MM-dd`` are
left out of every period figure.

Gift card redemptions are split by the type of card that paid:

* ``achat`` cards were paid for when sold, so redeeming them is not new
  money and is subtracted from cash received;
* loyalty cards and birthday vouchers never brought money in, so their
  redemptions are subtracted as well.

Adjustments tagged with the ``produit`` accounting category are ignored
because product purchases already reach the statement as restock charges.
"""
from __future__ import annotations

import datetime
import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from managely import adjustments, cells, dates
from managely.adjustments import AdjustmentRepository
from managely.clients import ClientRepository
from managely.gift_cards import GiftCardRepository
from managely.models import (
    ACCOUNTING_PRODUCT,
    CARD_BIRTHDAY,
    CARD_LOYALTY,
    CARD_PURCHASE,
    GiftCard,
    Visit,
)
from managely.stock import StockMovementRepository
from managely.visits import VisitRepository

logger = logging.getLogger(__name__)

ZERO = cells.ZERO


@dataclass(frozen=True)
class FinancialStatement:
    month: int
    year: int
    visit_count: int
    service_revenue: Decimal
    product_revenue: Decimal
    gift_cards_sold: Decimal
    achat_redeemed: Decimal
    loyalty_redeemed: Decimal
    voucher_redeemed: Decimal
    birthday_vouchers_issued: Decimal
    stock_charges: Decimal
    manual_revenue: Decimal
    manual_expense: Decimal

    @property
    def visit_revenue(self) -> Decimal:
        return self.service_revenue + self.product_revenue

    @property
    def total_redeemed(self) -> Decimal:
        return self.achat_redeemed + self.loyalty_redeemed + self.voucher_redeemed

    @property
    def cash_received(self) -> Decimal:
        return (
            self.visit_revenue
            + self.gift_cards_sold
            - self.achat_redeemed
            - self.loyalty_redeemed
            - self.voucher_redeemed
            + self.manual_revenue
        )

    @property
    def total_expense(self) -> Decimal:
        return self.stock_charges + self.manual_expense

    @property
    def net_result(self) -> Decimal:
        return self.cash_received - self.total_expense

    def as_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = asdict(self)
        for name in ("visit_revenue", "total_redeemed", "cash_received", "total_expense", "net_result"):
            payload[name] = getattr(self, name)
        return payload


@dataclass(frozen=True)
class DashboardStats:
    total_clients: int
    total_visits: int
    visits_in_month: int
    visits_today: int
    revenue_in_month: Decimal
    revenue_today: Decimal
    revenue_in_year: Decimal
    usable_gift_cards: int
    birthdays_in_month: int


@dataclass(frozen=True)
class RevenueBreakdown:
    services: Decimal
    products: Decimal
    gift_cards_sold: Decimal
    loyalty_cards: Decimal
    birthday_vouchers: Decimal

    @property
    def total(self) -> Decimal:
        return self.services + self.products + self.gift_cards_sold + self.loyalty_cards + self.birthday_vouchers

    @property
    def has_data(self) -> bool:
        return self.total > 0


def _months() -> Dict[int, Decimal]:
    return {month: ZERO for month in range(1, 13)}


@dataclass
class MonthlyRevenue:
    """Per-month totals for one year, keyed 1-12."""

    year: int
    services: Dict[int, Decimal] = field(default_factory=_months)
    products: Dict[int, Decimal] = field(default_factory=_months)
    gift_cards_sold: Dict[int, Decimal] = field(default_factory=_months)
    loyalty_issued: Dict[int, Decimal] = field(default_factory=_months)


@dataclass(frozen=True)
class RankedItem:
    name: str
    count: int
    total: Decimal


def visit_services(visits: Iterable[Visit]) -> Decimal:
    return sum((visit.service_subtotal for visit in visits), ZERO)


def visit_products(visits: Iterable[Visit]) -> Decimal:
    return sum((visit.product_subtotal for visit in visits), ZERO)


def classify_redemptions(visits: Iterable[Visit], cards: Sequence[GiftCard]) -> Tuple[Decimal, Decimal, Decimal]:
    """Return ``(achat, loyalty, voucher)`` gift card amounts paid in ``visits``.

    Structured payments win when a visit has any; otherwise the legacy
    single-card fields are used.  A card guid not found among loyalty cards
    or birthday vouchers counts as a purchased card.
    """

    loyalty_ids = {card.guid for card in cards if card.card_type == CARD_LOYALTY}
    voucher_ids = {card.guid for card in cards if card.card_type == CARD_BIRTHDAY}
    totals = {"achat": ZERO, "loyalty": ZERO, "voucher": ZERO}

    def _book(card_guid: str, amount: Decimal) -> None:
        if card_guid in loyalty_ids:
            totals["loyalty"] += amount
        elif card_guid in voucher_ids:
            totals["voucher"] += amount
        else:
            totals["achat"] += amount

    for visit in visits:
        if visit.payments:
            for payment in visit.payments:
                if payment.is_gift_card:
                    _book(payment.gift_card_guid, payment.amount)
        elif visit.gift_card_guid and visit.gift_card_amount > 0:
            _book(visit.gift_card_guid, visit.gift_card_amount)
    return totals["achat"], totals["loyalty"], totals["voucher"]


def _created_in(cards: Iterable[GiftCard], card_type: str, month: int, year: int) -> Decimal:
    return sum(
        (card.initial_amount for card in cards if card.card_type == card_type and dates.in_period(card.created_on, month, year)),
        ZERO,
    )


class FinanceEngine:
    def __init__(
        self,
        clients: ClientRepository,
        visits: VisitRepository,
        gift_cards: GiftCardRepository,
        stock: StockMovementRepository,
        adjustment_repository: AdjustmentRepository,
        *,
        today: Callable[[], datetime.date] = datetime.date.today,
        excluded_category: str = ACCOUNTING_PRODUCT,
    ) -> None:
        self._clients = clients
        self._visits = visits
        self._gift_cards = gift_cards
        self._stock = stock
        self._adjustments = adjustment_repository
        self._today = today
        self._excluded_category = excluded_category

    async def _visits_in(self, month: int, year: int) -> List[Visit]:
        return [visit for visit in await self._visits.get_all() if dates.in_period(visit.date, month, year)]

    async def statement(self, month: int, year: int) -> FinancialStatement:
        period_visits = await self._visits_in(month, year)
        cards = await self._gift_cards.get_all()
        achat, loyalty, voucher = classify_redemptions(period_visits, cards)
        manual = adjustments.summarise(
            [item for item in await self._adjustments.get_all() if dates.in_period(item.date, month, year)],
            self._excluded_category,
        )
        statement = FinancialStatement(
            month=month,
            year=year,
            visit_count=len(period_visits),
            service_revenue=visit_services(period_visits),
            product_revenue=visit_products(period_visits),
            gift_cards_sold=_created_in(cards, CARD_PURCHASE, month, year),
            achat_redeemed=achat,
            loyalty_redeemed=loyalty,
            voucher_redeemed=voucher,
            birthday_vouchers_issued=_created_in(cards, CARD_BIRTHDAY, month, year),
            stock_charges=await self._stock.total_charges(month, year),
            manual_revenue=manual.revenue,
            manual_expense=manual.expense,
        )
        logger.debug("Statement %02d/%s: cash %s, net %s", month, year, statement.cash_received, statement.net_result)
        return statement

    async def dashboard(self, month: int, year: int, today: Optional[datetime.date] = None) -> DashboardStats:
        current_day = today or self._today()
        all_visits = await self._visits.get_all()
        all_clients = await self._clients.get_all()
        cards = await self._gift_cards.get_all()

        in_month = [visit for visit in all_visits if dates.in_period(visit.date, month, year)]
        on_day = [visit for visit in all_visits if visit.parsed_date == current_day]
        in_year = [visit for visit in all_visits if dates.in_year(visit.date, year)]
        return DashboardStats(
            total_clients=len(all_clients),
            total_visits=len(all_visits),
            visits_in_month=len(in_month),
            visits_today=len(on_day),
            revenue_in_month=sum((visit.total for visit in in_month), ZERO),
            revenue_today=sum((visit.total for visit in on_day), ZERO),
            revenue_in_year=sum((visit.total for visit in in_year), ZERO),
            usable_gift_cards=sum(1 for card in cards if card.usable_on(current_day)),
            birthdays_in_month=sum(1 for client in all_clients if dates.same_month(client.birth_month, month)),
        )

    async def monthly_revenue(self, year: int) -> MonthlyRevenue:
        detail = MonthlyRevenue(year=year)
        for visit in await self._visits.get_all():
            parsed = visit.parsed_date
            if parsed is None or parsed.year != year:
                continue
            detail.services[parsed.month] += visit.service_subtotal
            detail.products[parsed.month] += visit.product_subtotal

        for card in await self._gift_cards.get_all():
            parsed = dates.parse_date(card.created_on)
            if parsed is None or parsed.year != year:
                continue
            if card.card_type == CARD_PURCHASE:
                detail.gift_cards_sold[parsed.month] += card.initial_amount
            elif card.card_type in (CARD_LOYALTY, CARD_BIRTHDAY):
                detail.loyalty_issued[parsed.month] += card.initial_amount
        return detail

    async def revenue_breakdown(self, month: int, year: int) -> RevenueBreakdown:
        period_visits = await self._visits_in(month, year)
        cards = await self._gift_cards.get_all()
        return RevenueBreakdown(
            services=visit_services(period_visits),
            products=visit_products(period_visits),
            gift_cards_sold=_created_in(cards, CARD_PURCHASE, month, year),
            loyalty_cards=_created_in(cards, CARD_LOYALTY, month, year),
            birthday_vouchers=_created_in(cards, CARD_BIRTHDAY, month, year),
        )

    async def top_services(self, month: int, year: int, top: int = 10) -> List[RankedItem]:
        counts: Dict[str, int] = defaultdict(int)
        totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for visit in await self._visits_in(month, year):
            for item in visit.services:
                if not item.name:
                    continue
                counts[item.name] += 1
                totals[item.name] += item.price
        return _rank(counts, totals, top)

    async def top_products(self, month: int, year: int, top: int = 10) -> List[RankedItem]:
        """Products ranked by quantity sold; ``count`` is the quantity."""

        quantities: Dict[str, int] = defaultdict(int)
        totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for visit in await self._visits_in(month, year):
            for item in visit.products_sold:
                if not item.name:
                    continue
                quantities[item.name] += item.quantity
                totals[item.name] += item.amount
        return _rank(quantities, totals, top)

    async def payment_breakdown(self, month: int, year: int) -> Dict[str, Decimal]:
        """Visit totals grouped by the visit's payment mode."""

        breakdown: Dict[str, Decimal] = {}
        for visit in await self._visits_in(month, year):
            if not visit.payment_mode:
                continue
            breakdown[visit.payment_mode] = breakdown.get(visit.payment_mode, ZERO) + visit.total
        return breakdown


def _rank(counts: Dict[str, int], totals: Dict[str, Decimal], top: int) -> List[RankedItem]:
    ranked = sorted(counts, key=lambda name: (-counts[name], name))
    return [RankedItem(name=name, count=counts[name], total=totals[name]) for name in ranked[:top]]


__all__ = [
    "DashboardStats",
    "FinanceEngine",
    "FinancialStatement",
    "MonthlyRevenue",
    "RankedItem",
    "RevenueBreakdown",
    "classify_redemptions",
]
