"""Static sheet layouts, one per entity.

A :class:`SheetSchema` is the single place that knows a tab's title, its
ordered header row, its cache key and how each column converts between a
cell and an entity attribute.  Columns whose ``attribute`` is ``None`` are
derived: they are written for people reading the sheet and ignored when
the row is read back.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from managely import cache, cells
from managely.models import (
    ACCOUNTING_OTHER,
    CARD_PURCHASE,
    DEFAULT_ALERT_THRESHOLD,
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

T = TypeVar("T")

Reader = Callable[[Optional[str]], Any]
Writer = Callable[[Any], str]


@dataclass(frozen=True)
class Column:
    header: str
    attribute: Optional[str]
    read: Reader
    write: Writer


def text(header: str, attribute: str, default: str = "") -> Column:
    if not default:
        return Column(header, attribute, cells.to_text, cells.to_text)
    return Column(header, attribute, lambda value: cells.to_text(value) or default, cells.to_text)


def decimal(header: str, attribute: str) -> Column:
    return Column(header, attribute, cells.to_decimal, cells.format_decimal)


def integer(header: str, attribute: str, default: int = 0) -> Column:
    return Column(header, attribute, lambda value: cells.to_int(value, default), str)


def boolean(header: str, attribute: str, default: bool = True) -> Column:
    return Column(header, attribute, lambda value: cells.to_bool(value, default), cells.format_bool)


def json_list(header: str, attribute: str, item_type: Type[Any]) -> Column:
    def _read(value: Optional[str]) -> List[Any]:
        return [item_type.from_json(item) for item in cells.parse_json_list(value)]

    def _write(items: Sequence[Any]) -> str:
        return cells.dump_json_list([item.to_json() for item in items])

    return Column(header, attribute, _read, _write)


def derived(header: str, getter: Callable[[Any], str]) -> Column:
    """Column computed from the whole entity on write and skipped on read."""

    return Column(header, None, lambda value: None, getter)


@dataclass(frozen=True)
class SheetSchema(Generic[T]):
    title: str
    cache_key: str
    model: Type[T]
    columns: Tuple[Column, ...]

    @property
    def headers(self) -> List[str]:
        return [column.header for column in self.columns]

    @property
    def width(self) -> int:
        return len(self.columns)

    def from_row(self, row: Sequence[str], row_index: int) -> T:
        values: Dict[str, Any] = {}
        for position, column in enumerate(self.columns):
            if column.attribute is None:
                continue
            values[column.attribute] = column.read(cells.cell(row, position))
        entity = self.model(**values)
        entity.row_index = row_index  # type: ignore[attr-defined]
        return entity

    def to_row(self, entity: T) -> List[str]:
        row: List[str] = []
        for column in self.columns:
            if column.attribute is None:
                row.append(column.write(entity))
            else:
                row.append(column.write(getattr(entity, column.attribute)))
        return row


def _money(value: Decimal) -> str:
    return cells.format_decimal(value)


CLIENTS = SheetSchema(
    title="Clients",
    cache_key=cache.CLIENTS_KEY,
    model=Client,
    columns=(
        text("guid", "guid"),
        text("nom", "last_name"),
        text("prenom", "first_name"),
        text("mois_anniversaire", "birth_month"),
        text("numero_telephone", "phone"),
        text("email", "email"),
        text("adresse", "address"),
        text("date_creation", "created_at"),
        text("date_modification", "modified_at"),
        text("hachage_integrite", "integrity_hash"),
    ),
)

SERVICES = SheetSchema(
    title="Prestations",
    cache_key=cache.SERVICES_KEY,
    model=ServiceItem,
    columns=(
        text("guid", "guid"),
        text("nom", "name"),
        text("categorie", "category"),
        decimal("prix_defaut", "default_price"),
        integer("duree_minutes", "duration_minutes"),
        boolean("actif", "active"),
    ),
)

PRODUCTS = SheetSchema(
    title="Produits",
    cache_key=cache.PRODUCTS_KEY,
    model=Product,
    columns=(
        text("guid", "guid"),
        text("nom", "name"),
        text("marque", "brand"),
        decimal("prix_vente", "sale_price"),
        decimal("prix_achat", "purchase_price"),
        integer("stock", "stock"),
        integer("seuil_alerte", "alert_threshold", DEFAULT_ALERT_THRESHOLD),
        text("categorie", "category"),
        boolean("actif", "active"),
    ),
)

VISITS = SheetSchema(
    title="Passages",
    cache_key=cache.VISITS_KEY,
    model=Visit,
    columns=(
        text("guid", "guid"),
        text("client_guid", "client_guid"),
        text("date", "date"),
        json_list("prestations_json", "services", VisitService),
        json_list("produits_vendus_json", "products_sold", VisitProduct),
        json_list("produits_conseilles_json", "recommended_products", RecommendedProduct),
        text("note_interne", "note"),
        derived("total", lambda visit: _money(visit.total)),
        text("mode_paiement", "payment_mode"),
        text("carte_cadeau_guid", "gift_card_guid"),
        decimal("montant_carte_utilisee", "gift_card_amount"),
        json_list("paiements_json", "payments", Payment),
        text("hachage_integrite", "integrity_hash"),
    ),
)

GIFT_CARDS = SheetSchema(
    title="CartesCadeaux",
    cache_key=cache.GIFT_CARDS_KEY,
    model=GiftCard,
    columns=(
        text("guid", "guid"),
        text("client_guid", "client_guid"),
        text("type", "card_type", CARD_PURCHASE),
        decimal("montant_initial", "initial_amount"),
        decimal("solde_restant", "balance"),
        text("date_creation", "created_on"),
        text("date_expiration", "expires_on"),
        derived("statut", lambda card: card.status_on(datetime.date.today())),
        text("origine", "origin"),
        text("cle_idempotence", "idempotency_key"),
    ),
)

STOCK_MOVEMENTS = SheetSchema(
    title="MouvementsStock",
    cache_key=cache.STOCK_MOVEMENTS_KEY,
    model=StockMovement,
    columns=(
        text("guid", "guid"),
        text("produit_guid", "product_guid"),
        text("type", "movement_type"),
        integer("quantite", "quantity"),
        decimal("cout_unitaire", "unit_cost"),
        text("date", "date"),
        text("motif", "reason"),
        text("reference", "reference"),
        text("note", "note"),
    ),
)

ADJUSTMENTS = SheetSchema(
    title="Ajustements",
    cache_key=cache.ADJUSTMENTS_KEY,
    model=FinancialAdjustment,
    columns=(
        text("guid", "guid"),
        text("date", "date"),
        text("type", "adjustment_type"),
        decimal("montant", "amount"),
        text("description", "description"),
        text("categorie", "category"),
        text("categorie_comptable", "accounting_category", ACCOUNTING_OTHER),
        text("note", "note"),
    ),
)

ALL_SCHEMAS: Tuple[SheetSchema[Any], ...] = (
    CLIENTS,
    SERVICES,
    PRODUCTS,
    VISITS,
    GIFT_CARDS,
    STOCK_MOVEMENTS,
    ADJUSTMENTS,
)

__all__ = [
    "ADJUSTMENTS",
    "ALL_SCHEMAS",
    "CLIENTS",
    "Column",
    "GIFT_CARDS",
    "PRODUCTS",
    "SERVICES",
    "STOCK_MOVEMENTS",
    "SheetSchema",
    "VISITS",
]
