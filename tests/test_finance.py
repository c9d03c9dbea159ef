import asyncio
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from managely import schema
from managely.adjustments import summarise
from managely.finance import RankedItem, classify_redemptions
from managely.models import (
    CARD_BIRTHDAY,
    CARD_LOYALTY,
    CARD_PURCHASE,
    Client,
    FinancialAdjustment,
    GiftCard,
    Payment,
    Product,
    Visit,
    VisitProduct,
    VisitService,
)


def test_gift_card_paid_visit_is_not_counted_twice(context) -> None:
    async def scenario():
        card = await context.gift_cards.add(
            GiftCard(card_type=CARD_PURCHASE, initial_amount=Decimal("100"), balance=Decimal("100"))
        )
        await context.visits.add(
            Visit(
                client_guid="c1",
                services=[VisitService(name="Soin visage", price=Decimal("80"))],
                products_sold=[VisitProduct(name="Crème", quantity=1, unit_price=Decimal("20"))],
                payment_mode="Carte cadeau",
                payments=[Payment(mode="Carte cadeau", amount=Decimal("100"), gift_card_guid=card)],
            )
        )
        return await context.finance.statement(3, 2024)

    statement = asyncio.run(scenario())

    assert statement.visit_revenue == Decimal("100")
    assert statement.gift_cards_sold == Decimal("100")
    assert statement.achat_redeemed == Decimal("100")
    assert statement.cash_received == Decimal("100")
    assert statement.net_result == Decimal("100")


async def _seed(context):
    marie = await context.clients.add(Client(last_name="Dupont", first_name="Marie", birth_month="03"))
    await context.clients.add(Client(last_name="Martin", first_name="Paul", birth_month="07"))

    purchase = await context.gift_cards.add(
        GiftCard(client_guid=marie, card_type=CARD_PURCHASE, initial_amount=Decimal("100"), balance=Decimal("100"))
    )
    loyalty = await context.gift_cards.add(
        GiftCard(
            client_guid=marie,
            card_type=CARD_LOYALTY,
            initial_amount=Decimal("10"),
            balance=Decimal("10"),
            created_on="01/03/2024",
            expires_on="01/03/2025",
        )
    )
    await context.gift_cards.add(
        GiftCard(
            client_guid=marie,
            card_type=CARD_BIRTHDAY,
            initial_amount=Decimal("15"),
            balance=Decimal("15"),
            created_on="01/02/2024",
            expires_on="29/02/2024",
        )
    )

    await context.visits.add(
        Visit(
            client_guid=marie,
            services=[VisitService(name="Soin visage", price=Decimal("80"))],
            products_sold=[VisitProduct(name="Crème", quantity=2, unit_price=Decimal("10"))],
            payment_mode="Carte cadeau",
            payments=[Payment(mode="Carte cadeau", amount=Decimal("100"), gift_card_guid=purchase)],
        )
    )
    await context.visits.add(
        Visit(
            client_guid=marie,
            date="2024-03-10",
            services=[VisitService(name="Épilation", price=Decimal("45"))],
            payment_mode="CB",
            gift_card_guid=loyalty,
            gift_card_amount=Decimal("10"),
        )
    )
    await context.visits.add(
        Visit(client_guid=marie, date="15/02/2024", services=[VisitService(name="Massage", price=Decimal("60"))])
    )
    await context.visits.add(
        Visit(client_guid=marie, date="bientôt", services=[VisitService(name="Massage", price=Decimal("30"))])
    )

    malformed = schema.VISITS.to_row(Visit(guid="legacy-row", client_guid=marie, date="20/03/2024", payment_mode="Espèces"))
    malformed[schema.VISITS.headers.index("prestations_json")] = '[{"nom": "Soin visage", "prix": "abc"}]'
    await context.store.append(schema.VISITS.title, schema.VISITS.width, malformed)
    context.invalidate()

    product = await context.products.add(Product(name="Crème", stock=0))
    await context.stock.restock(product, 10, Decimal("4.50"))

    for amount, category in (("-50", "produit"), ("-30", "autre"), ("20", "autre")):
        await context.adjustments.add(FinancialAdjustment(amount=Decimal(amount), accounting_category=category))


def test_monthly_statement(context) -> None:
    async def scenario():
        await _seed(context)
        return await context.finance.statement(3, 2024), await context.visits.in_period(3, 2024)

    statement, visits = asyncio.run(scenario())

    assert statement.visit_count == 3
    assert statement.service_revenue == Decimal("125")
    assert statement.product_revenue == Decimal("20")
    assert statement.service_revenue + statement.product_revenue == sum(visit.total for visit in visits)
    assert statement.gift_cards_sold == Decimal("100")
    assert statement.achat_redeemed == Decimal("100")
    assert statement.loyalty_redeemed == Decimal("10")
    assert statement.voucher_redeemed == Decimal("0")
    assert statement.birthday_vouchers_issued == Decimal("0")
    assert statement.stock_charges == Decimal("45.00")
    assert statement.manual_revenue == Decimal("20")
    assert statement.manual_expense == Decimal("30")
    assert statement.cash_received == Decimal("155")
    assert statement.total_expense == Decimal("75.00")
    assert statement.net_result == Decimal("80.00")
    assert statement.as_dict()["net_result"] == statement.net_result


def test_dashboard_and_breakdowns(context) -> None:
    async def scenario():
        await _seed(context)
        finance = context.finance
        return (
            await finance.dashboard(3, 2024),
            await finance.monthly_revenue(2024),
            await finance.revenue_breakdown(3, 2024),
            await finance.revenue_breakdown(6, 2024),
            await finance.top_services(3, 2024),
            await finance.top_products(3, 2024),
            await finance.payment_breakdown(3, 2024),
        )

    dashboard, monthly, breakdown, empty, services, products, payments = asyncio.run(scenario())

    assert dashboard.total_clients == 2
    assert dashboard.total_visits == 5
    assert dashboard.visits_in_month == 3
    assert dashboard.visits_today == 1
    assert dashboard.revenue_in_month == Decimal("145")
    assert dashboard.revenue_today == Decimal("100")
    assert dashboard.revenue_in_year == Decimal("205")
    assert dashboard.usable_gift_cards == 2
    assert dashboard.birthdays_in_month == 1

    assert monthly.services[3] == Decimal("125")
    assert monthly.services[2] == Decimal("60")
    assert monthly.products[3] == Decimal("20")
    assert monthly.gift_cards_sold[3] == Decimal("100")
    assert monthly.loyalty_issued[3] == Decimal("10")
    assert monthly.loyalty_issued[2] == Decimal("15")
    assert monthly.services[12] == Decimal("0")

    assert breakdown.total == Decimal("255")
    assert breakdown.has_data
    assert not empty.has_data

    assert services == [
        RankedItem(name="Soin visage", count=2, total=Decimal("80")),
        RankedItem(name="Épilation", count=1, total=Decimal("45")),
    ]
    assert products == [RankedItem(name="Crème", count=2, total=Decimal("20"))]
    assert payments == {"Carte cadeau": Decimal("100"), "CB": Decimal("45"), "Espèces": Decimal("0")}


def test_redemptions_prefer_structured_payments() -> None:
    cards = [GiftCard(guid="loyal", card_type=CARD_LOYALTY), GiftCard(guid="bday", card_type=CARD_BIRTHDAY)]
    visits = [
        Visit(
            gift_card_guid="loyal",
            gift_card_amount=Decimal("99"),
            payments=[
                Payment(mode="Carte cadeau", amount=Decimal("15"), gift_card_guid="bday"),
                Payment(mode="Carte cadeau", amount=Decimal("5"), gift_card_guid="loyal"),
                Payment(mode="CB", amount=Decimal("40")),
            ],
        ),
        Visit(gift_card_guid="unknown", gift_card_amount=Decimal("12")),
    ]

    assert classify_redemptions(visits, cards) == (Decimal("12"), Decimal("5"), Decimal("15"))


def test_excluded_category_never_reaches_totals() -> None:
    items = [
        FinancialAdjustment(amount=Decimal("-50"), accounting_category="produit"),
        FinancialAdjustment(amount=Decimal("70"), accounting_category="produit"),
    ]

    totals = summarise(items)

    assert totals.revenue == Decimal("0")
    assert totals.expense == Decimal("0")
    assert summarise(items, exclude_category=None).expense == Decimal("50")


def test_unpadded_dates_stay_out_of_the_statement(context) -> None:
    async def scenario():
        await context.visits.add(
            Visit(client_guid="c1", date="5/3/2024", services=[VisitService(name="Soin visage", price=Decimal("40"))])
        )
        await context.visits.add(
            Visit(client_guid="c1", date="2024-3-5", services=[VisitService(name="Massage", price=Decimal("30"))])
        )
        return await context.finance.statement(3, 2024)

    statement = asyncio.run(scenario())

    assert statement.visit_count == 0
    assert statement.service_revenue == Decimal("0")
    assert statement.cash_received == Decimal("0")


def test_card_guid_marks_a_payment_as_gift_card_whatever_its_mode() -> None:
    cards = [GiftCard(guid="loyal", card_type=CARD_LOYALTY)]
    stray = Payment(mode="CB", amount=Decimal("25"), gift_card_guid="loyal")
    visits = [Visit(payments=[stray, Payment(mode="Espèces", amount=Decimal("10"))])]

    assert stray.is_gift_card
    assert not Payment(mode="Espèces", amount=Decimal("10")).is_gift_card
    assert classify_redemptions(visits, cards) == (Decimal("0"), Decimal("25"), Decimal("0"))
