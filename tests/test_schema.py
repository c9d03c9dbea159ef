import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from managely import cells, schema
from managely.models import (
    Client,
    FinancialAdjustment,
    GiftCard,
    Payment,
    Product,
    RecommendedProduct,
    ServiceItem,
    StockMovement,
    Visit,
    VisitProduct,
    VisitService,
)


def _round_trip(sheet, entity):
    entity.row_index = 7
    return sheet.from_row(sheet.to_row(entity), 7)


def test_every_entity_survives_a_row_round_trip() -> None:
    entities = [
        (schema.CLIENTS, Client(guid="c1", last_name="DUPONT", first_name="Marie", birth_month="03", phone="06 12 34 56 78")),
        (schema.SERVICES, ServiceItem(guid="s1", name="Soin visage", category="Visage", default_price=Decimal("45.50"), duration_minutes=60, active=False)),
        (schema.PRODUCTS, Product(guid="p1", name="Crème", brand="Maison", sale_price=Decimal("19.90"), purchase_price=Decimal("8"), stock=12, alert_threshold=3)),
        (schema.GIFT_CARDS, GiftCard(guid="g1", client_guid="c1", card_type="fidelite", initial_amount=Decimal("50"), balance=Decimal("12.5"), created_on="15/03/2024", expires_on="15/03/2025", origin="Fidélité 10 passages", idempotency_key="milestone:10")),
        (schema.STOCK_MOVEMENTS, StockMovement(guid="m1", product_guid="p1", movement_type="sortie", quantity=3, unit_cost=Decimal("19.90"), date="15/03/2024", reason="vente", reference="v1")),
        (schema.ADJUSTMENTS, FinancialAdjustment(guid="a1", date="15/03/2024", adjustment_type="depense", amount=Decimal("-120.00"), description="Loyer", accounting_category="loyer")),
    ]

    for sheet, entity in entities:
        assert _round_trip(sheet, entity) == entity


def test_visit_round_trip_keeps_snapshots_and_recomputes_total() -> None:
    visit = Visit(
        guid="v1",
        client_guid="c1",
        date="15/03/2024",
        services=[VisitService(service_id="s1", name="Soin visage", price=Decimal("45.5"), duration_minutes=60)],
        products_sold=[VisitProduct(product_id="p1", name="Crème", quantity=2, unit_price=Decimal("10"))],
        recommended_products=[RecommendedProduct(product_id="p2", name="Sérum", indicative_price=Decimal("30"), comment="peau sèche")],
        note="RAS",
        payment_mode="CB",
        payments=[Payment(mode="CB", amount=Decimal("65.5"))],
        integrity_hash="v1:abc",
    )

    row = schema.VISITS.to_row(visit)
    assert row[schema.VISITS.headers.index("total")] == "65.5"

    row[schema.VISITS.headers.index("total")] = "999"
    restored = schema.VISITS.from_row(row, 2)

    assert restored.total == Decimal("65.5")
    assert restored.services == visit.services
    assert restored.products_sold == visit.products_sold
    assert restored.recommended_products == visit.recommended_products
    assert restored.payments == visit.payments
    assert restored.row_index == 2


def test_malformed_cells_fall_back_to_defaults() -> None:
    product = schema.PRODUCTS.from_row(["p1", "Crème", "", "abc", "", "12.5", "", "", "non"], 3)

    assert product.sale_price == Decimal("0")
    assert product.purchase_price == Decimal("0")
    assert product.stock == 0
    assert product.alert_threshold == 5
    assert product.active is False

    visit = schema.VISITS.from_row(["v1", "c1", "15/03/2024", "not json", '{"nom": "x"}', "[1, 2]"], 2)
    assert visit.services == []
    assert visit.products_sold == []
    assert visit.recommended_products == []
    assert visit.total == Decimal("0")


def test_short_rows_use_column_defaults() -> None:
    card = schema.GIFT_CARDS.from_row(["g1", "c1"], 2)
    adjustment = schema.ADJUSTMENTS.from_row(["a1", "01/03/2024", "recette", "50"], 2)
    service = schema.SERVICES.from_row(["s1", "Épilation"], 2)

    assert card.card_type == "achat"
    assert card.balance == Decimal("0")
    assert adjustment.accounting_category == "autre"
    assert adjustment.amount == Decimal("50")
    assert service.active is True


def test_gift_card_status_column_is_written_but_not_read() -> None:
    card = GiftCard(guid="g1", initial_amount=Decimal("20"), balance=Decimal("0"))
    row = schema.GIFT_CARDS.to_row(card)

    assert row[schema.GIFT_CARDS.headers.index("statut")] == "utilisee"
    assert schema.GIFT_CARDS.from_row(row, 2).balance == Decimal("0")


def test_cell_converters() -> None:
    assert cells.to_decimal("1 234,50 €") == Decimal("1234.50")
    assert cells.to_decimal("12.30") == Decimal("12.30")
    assert cells.to_decimal("NaN") == Decimal("0")
    assert cells.to_decimal(None, Decimal("1")) == Decimal("1")
    assert cells.to_int("4.0") == 4
    assert cells.to_int("x", 5) == 5
    assert cells.to_bool("FAUX") is False
    assert cells.to_bool("") is True
    assert cells.format_decimal(Decimal("1E+2")) == "100"
    assert cells.round_money(Decimal("2.345")) == Decimal("2.34")
    assert cells.parse_json_list('{"a": 1}') == []
