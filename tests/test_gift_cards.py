import asyncio
import datetime
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from managely import schema
from managely.gift_cards import birthday_key, legacy_key, milestone_key
from managely.models import CARD_BIRTHDAY, CARD_LOYALTY, CARD_PURCHASE, GiftCard


def test_status_depends_on_balance_and_expiry() -> None:
    today = datetime.date(2024, 3, 15)

    assert GiftCard(balance=Decimal("0"), expires_on="01/01/2030").status_on(today) == "utilisee"
    assert GiftCard(balance=Decimal("10"), expires_on="14/03/2024").status_on(today) == "expiree"
    assert GiftCard(balance=Decimal("10"), expires_on="15/03/2024").status_on(today) == "active"
    assert GiftCard(balance=Decimal("10")).status_on(today) == "active"
    assert not GiftCard(balance=Decimal("10"), expires_on="2024-03-01").usable_on(today)


def test_keys_and_legacy_origins() -> None:
    loyalty = GiftCard(card_type=CARD_LOYALTY, origin="Fidélité 20 passages - 10% de 400.00€ de prestations")
    voucher = GiftCard(card_type=CARD_BIRTHDAY, origin="Anniversaire 3/2024 - Bon 15€")
    purchase = GiftCard(card_type=CARD_PURCHASE, origin="Achat 10 passages")

    assert milestone_key(20) == "milestone:20"
    assert birthday_key(2024, 3) == "birthday:2024-03"
    assert legacy_key(loyalty) == "milestone:20"
    assert legacy_key(voucher) == "birthday:2024-03"
    assert legacy_key(purchase) == ""


def test_redeem_deducts_up_to_the_balance(context) -> None:
    card = GiftCard(client_guid="c1", initial_amount=Decimal("50"), balance=Decimal("50"), expires_on="15/03/2025")

    async def scenario():
        guid = await context.gift_cards.add(card)
        first = await context.gift_cards.redeem(guid, Decimal("30"))
        second = await context.gift_cards.redeem(guid, Decimal("40"))
        third = await context.gift_cards.redeem(guid, Decimal("5"))
        return first, second, third, await context.gift_cards.get_by_id(guid)

    first, second, third, stored = asyncio.run(scenario())

    assert (first, second, third) == (Decimal("30"), Decimal("20"), Decimal("0"))
    assert stored.balance == Decimal("0")
    assert stored.created_on == "15/03/2024"


def test_expired_card_is_not_redeemed(context) -> None:
    card = GiftCard(client_guid="c1", initial_amount=Decimal("50"), balance=Decimal("50"), expires_on="01/03/2024")

    async def scenario():
        guid = await context.gift_cards.add(card)
        deducted = await context.gift_cards.redeem(guid, Decimal("10"))
        return deducted, await context.gift_cards.get_by_id(guid), await context.gift_cards.active()

    deducted, stored, active = asyncio.run(scenario())

    assert deducted == Decimal("0")
    assert stored.balance == Decimal("50")
    assert active == []


def test_find_by_key_uses_stored_or_legacy_keys(context) -> None:
    async def scenario():
        await context.gift_cards.add(
            GiftCard(client_guid="c1", card_type=CARD_LOYALTY, balance=Decimal("5"), idempotency_key="milestone:10")
        )
        await context.gift_cards.add(
            GiftCard(client_guid="c1", card_type=CARD_BIRTHDAY, balance=Decimal("15"), origin="Anniversaire 03/2023 - Bon 15€")
        )
        return (
            await context.gift_cards.find_by_key("c1", CARD_LOYALTY, "milestone:10"),
            await context.gift_cards.find_by_key("c1", CARD_BIRTHDAY, "birthday:2023-03"),
            await context.gift_cards.find_by_key("c2", CARD_LOYALTY, "milestone:10"),
            await context.gift_cards.find_by_key("c1", CARD_BIRTHDAY, "milestone:10"),
        )

    stored_key, legacy, other_client, other_type = asyncio.run(scenario())

    assert stored_key is not None
    assert legacy is not None
    assert legacy.idempotency_key == "birthday:2023-03"
    assert other_client is None
    assert other_type is None


def test_status_column_uses_the_repository_clock(context) -> None:
    async def scenario():
        await context.gift_cards.add(
            GiftCard(client_guid="c1", initial_amount=Decimal("20"), balance=Decimal("20"), expires_on="01/04/2024")
        )
        return await context.store.read_all(schema.GIFT_CARDS.title, schema.GIFT_CARDS.width)

    rows = asyncio.run(scenario())

    # expired by the wall clock, still active on the context's date
    assert rows[0][schema.GIFT_CARDS.headers.index("statut")] == "active"
