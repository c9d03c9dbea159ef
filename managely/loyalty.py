"""Loyalty accrual: milestone reward cards and birthday vouchers.

Both rules run right after a visit has been persisted and are safe to run
again with unchanged state.  Each minted card carries a structured
idempotency key (``milestone:20``, ``birthday:2024-03``) and a rule only
mints when no card of its type with the same key exists for the client.
"""
from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Optional

from managely import cells, dates
from managely.clients import ClientRepository
from managely.gift_cards import GiftCardRepository, birthday_key, milestone_key
from managely.models import CARD_BIRTHDAY, CARD_LOYALTY, GiftCard, Visit
from managely.visits import VisitRepository, most_recent_first

logger = logging.getLogger(__name__)

MILESTONE_EVERY = 10
REWARD_RATE = Decimal("0.10")
BIRTHDAY_VOUCHER_AMOUNT = Decimal("15")
BIRTHDAY_VOUCHER_MINIMUM = Decimal("60")


@dataclass(frozen=True)
class LoyaltyStatus:
    visit_count: int
    visits_before_next: int
    cycle_service_total: Decimal


def service_total(visits: List[Visit]) -> Decimal:
    return sum((visit.service_subtotal for visit in visits), cells.ZERO)


def birthday_voucher_usable(service_subtotal: Decimal) -> bool:
    """A birthday voucher only pays for a visit whose services exceed 60."""

    return service_subtotal > BIRTHDAY_VOUCHER_MINIMUM


class LoyaltyEngine:
    def __init__(
        self,
        clients: ClientRepository,
        visits: VisitRepository,
        gift_cards: GiftCardRepository,
        *,
        today: Callable[[], datetime.date] = datetime.date.today,
    ) -> None:
        self._clients = clients
        self._visits = visits
        self._gift_cards = gift_cards
        self._today = today

    async def _client_visits(self, client_guid: str) -> List[Visit]:
        everything = await self._visits.get_all(force_refresh=True)
        return most_recent_first([visit for visit in everything if visit.client_guid == client_guid])

    async def evaluate_milestone(self, client_guid: str) -> Optional[GiftCard]:
        history = await self._client_visits(client_guid)
        count = len(history)
        if count == 0 or count % MILESTONE_EVERY:
            return None

        key = milestone_key(count)
        if await self._gift_cards.find_by_key(client_guid, CARD_LOYALTY, key, force_refresh=True):
            logger.debug("Milestone %s already rewarded for %s", count, client_guid)
            return None

        recent_total = service_total(history[:MILESTONE_EVERY])
        value = cells.round_money(recent_total * REWARD_RATE)
        if value <= 0:
            return None

        today = self._today()
        card = GiftCard(
            client_guid=client_guid,
            card_type=CARD_LOYALTY,
            initial_amount=value,
            balance=value,
            created_on=dates.format_date(today),
            expires_on=dates.format_date(dates.add_years(today, 1)),
            origin=f"Fidélité {count} passages - 10% de {recent_total:.2f}€ de prestations",
            idempotency_key=key,
        )
        await self._gift_cards.add(card)
        logger.info("Loyalty card of %s minted for %s at %s visits", value, client_guid, count)
        return card

    async def evaluate_birthday(self, client_guid: str) -> Optional[GiftCard]:
        client = await self._clients.get_by_id(client_guid)
        if client is None or not client.birth_month:
            return None

        today = self._today()
        if not dates.same_month(client.birth_month, today.month):
            return None

        key = birthday_key(today.year, today.month)
        if await self._gift_cards.find_by_key(client_guid, CARD_BIRTHDAY, key, force_refresh=True):
            return None

        card = GiftCard(
            client_guid=client_guid,
            card_type=CARD_BIRTHDAY,
            initial_amount=BIRTHDAY_VOUCHER_AMOUNT,
            balance=BIRTHDAY_VOUCHER_AMOUNT,
            created_on=dates.format_date(today),
            expires_on=dates.format_date(dates.end_of_month(today)),
            origin=(
                f"Anniversaire {today.month:02d}/{today.year} - Bon 15€ "
                f"(utilisable si prestations cabine > 60€)"
            ),
            idempotency_key=key,
        )
        await self._gift_cards.add(card)
        logger.info("Birthday voucher minted for %s (%s)", client.full_name, key)
        return card

    async def evaluate_after_visit(self, client_guid: str) -> List[GiftCard]:
        """Run both rules for ``client_guid`` and return the cards minted."""

        minted: List[GiftCard] = []
        for rule in (self.evaluate_milestone, self.evaluate_birthday):
            card = await rule(client_guid)
            if card is not None:
                minted.append(card)
        return minted

    async def status(self, client_guid: str) -> LoyaltyStatus:
        history = await self._client_visits(client_guid)
        count = len(history)
        remainder = count % MILESTONE_EVERY
        before_next = MILESTONE_EVERY - remainder if remainder else MILESTONE_EVERY
        window = remainder or MILESTONE_EVERY
        return LoyaltyStatus(
            visit_count=count,
            visits_before_next=before_next,
            cycle_service_total=service_total(history[:window]),
        )


__all__ = [
    "BIRTHDAY_VOUCHER_AMOUNT",
    "LoyaltyEngine",
    "LoyaltyStatus",
    "birthday_voucher_usable",
]
