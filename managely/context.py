"""Wiring of settings, session, store, cache, repositories and engines."""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from managely import schema
from managely.adjustments import AdjustmentRepository
from managely.cache import TtlCache
from managely.catalog import ProductRepository, ServiceRepository
from managely.checkout import CheckoutService
from managely.clients import ClientRepository
from managely.finance import FinanceEngine
from managely.gift_cards import GiftCardRepository
from managely.integrity import IntegrityHasher
from managely.loyalty import LoyaltyEngine
from managely.session import Session, open_session
from managely.settings import ManagelySettings, load_settings
from managely.sheets_client import SheetsStore, build_store
from managely.stock import StockMovementRepository
from managely.visits import VisitRepository

logger = logging.getLogger(__name__)


@dataclass
class ManagelyContext:
    settings: ManagelySettings
    session: Session
    store: SheetsStore
    cache: TtlCache
    clients: ClientRepository
    services: ServiceRepository
    products: ProductRepository
    visits: VisitRepository
    gift_cards: GiftCardRepository
    stock: StockMovementRepository
    adjustments: AdjustmentRepository
    loyalty: LoyaltyEngine
    finance: FinanceEngine
    checkout: CheckoutService
    today: Callable[[], datetime.date] = datetime.date.today

    async def ensure_sheets(self) -> None:
        """Create every tab and header row that is missing."""

        for sheet in schema.ALL_SCHEMAS:
            await self.store.ensure_sheet(sheet.title, sheet.headers)

    def invalidate(self) -> None:
        self.cache.clear()


def build_context(
    settings: Optional[ManagelySettings] = None,
    *,
    session: Optional[Session] = None,
    service=None,
    today: Callable[[], datetime.date] = datetime.date.today,
) -> ManagelyContext:
    """Assemble a context.  ``service`` replaces the Sheets client (tests)."""

    settings = settings or load_settings()
    session = session or open_session(settings)
    store = build_store(settings, session, service=service)
    ttl = float(settings.cache_ttl_seconds)
    cache = TtlCache(default_ttl=ttl)

    if not settings.integrity_key:
        logger.warning("No integrity key configured; hashes only detect accidental edits")
    hasher = IntegrityHasher(settings.integrity_key)

    clients = ClientRepository(store, cache, hasher)
    services = ServiceRepository(store, cache)
    products = ProductRepository(store, cache)
    visits = VisitRepository(store, cache, hasher, today=today)
    gift_cards = GiftCardRepository(store, cache, today=today)
    stock = StockMovementRepository(store, cache, products, today=today)
    adjustment_repository = AdjustmentRepository(store, cache, today=today)
    loyalty = LoyaltyEngine(clients, visits, gift_cards, today=today)
    finance = FinanceEngine(clients, visits, gift_cards, stock, adjustment_repository, today=today)
    checkout = CheckoutService(visits, products, stock, gift_cards, loyalty, today=today)

    return ManagelyContext(
        settings=settings,
        session=session,
        store=store,
        cache=cache,
        clients=clients,
        services=services,
        products=products,
        visits=visits,
        gift_cards=gift_cards,
        stock=stock,
        adjustments=adjustment_repository,
        loyalty=loyalty,
        finance=finance,
        checkout=checkout,
        today=today,
    )


__all__ = ["ManagelyContext", "build_context"]
