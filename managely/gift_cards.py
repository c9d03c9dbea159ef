"""Gift card repository: purchases, loyalty rewards and birthday vouchers."""
from __future__ import annotations

import datetime
import logging
import re
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from managely import cells, dates, schema
from managely.cache import TtlCache
from managely.models import CARD_BIRTHDAY, CARD_LOYALTY, GiftCard
from managely.repository import SheetRepository
from managely.sheets_client import SheetsStore

logger = logging.getLogger(__name__)

_LEGACY_MILESTONE_RE = re.compile(r"(\d+)\s+passages")
_LEGACY_BIRTHDAY_RE = re.compile(r"Anniversaire\s+(\d{1,2})/(\d{4})")


def milestone_key(visit_count: int) -> str:
    return f"milestone:{visit_count}"


def birthday_key(year: int, month: int) -> str:
    return f"birthday:{year:04d}-{month:02d}"


def legacy_key(card: GiftCard) -> str:
    """Derive an idempotency key from the origin text of older rows."""

    if card.card_type == CARD_LOYALTY:
        match = _LEGACY_MILESTONE_RE.search(card.origin)
        if match:
            return milestone_key(int(match.group(1)))
    elif card.card_type == CARD_BIRTHDAY:
        match = _LEGACY_BIRTHDAY_RE.search(card.origin)
        if match:
            return birthday_key(int(match.group(2)), int(match.group(1)))
    return ""


_STATUS_COLUMN = schema.GIFT_CARDS.headers.index("statut")


class GiftCardRepository(SheetRepository[GiftCard]):
    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        *,
        ttl: Optional[float] = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        super().__init__(store, cache, schema.GIFT_CARDS, ttl=ttl)
        self._today = today

    def _map_row(self, row: Sequence[str], row_index: int) -> GiftCard:
        card = super()._map_row(row, row_index)
        if not card.idempotency_key:
            card.idempotency_key = legacy_key(card)
        return card

    def _apply_defaults(self, entity: GiftCard) -> None:
        if not entity.created_on:
            entity.created_on = dates.format_date(self._today())

    def _to_row(self, entity: GiftCard) -> List[str]:
        row = super()._to_row(entity)
        row[_STATUS_COLUMN] = entity.status_on(self._today())
        return row

    async def by_client(self, client_guid: str) -> List[GiftCard]:
        return [card for card in await self.get_all() if card.client_guid == client_guid]

    async def active(self) -> List[GiftCard]:
        today = self._today()
        return [card for card in await self.get_all() if card.usable_on(today)]

    async def find_by_key(self, client_guid: str, card_type: str, key: str, force_refresh: bool = False) -> Optional[GiftCard]:
        for card in await self.get_all(force_refresh):
            if card.client_guid == client_guid and card.card_type == card_type and card.idempotency_key == key:
                return card
        return None

    async def redeem(self, card_guid: str, amount: Decimal) -> Decimal:
        """Deduct up to ``amount`` from the card and return what was deducted.

        Reads the card fresh from the sheet.  A missing, expired or empty card
        yields zero and nothing is written.
        """

        if amount <= 0:
            return cells.ZERO
        card = await self.get_by_id(card_guid, force_refresh=True)
        if card is None or not card.usable_on(self._today()):
            logger.info("Gift card %s is not usable; nothing redeemed", card_guid)
            return cells.ZERO

        deducted = min(amount, card.balance)
        card.balance -= deducted
        await self.update(card)
        logger.info("Redeemed %s from gift card %s (balance %s)", deducted, card_guid, card.balance)
        return deducted


__all__ = [
    "GiftCardRepository",
    "birthday_key",
    "legacy_key",
    "milestone_key",
]
