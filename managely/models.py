"""Entity dataclasses mapped onto the spreadsheet tabs.

Type codes (``achat``, ``entree``, ``reapprovisionnement`` ...) are persisted
verbatim in the sheets and therefore keep their stored spelling.  Money is
always :class:`~decimal.Decimal`.  ``row_index`` is the sheet row the entity
was read from (first data row is 2) and is only valid for that snapshot.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from managely import cells, dates

CARD_PURCHASE = "achat"
CARD_LOYALTY = "fidelite"
CARD_BIRTHDAY = "bon_fidelite"
CARD_TYPES = (CARD_PURCHASE, CARD_LOYALTY, CARD_BIRTHDAY)

STATUS_ACTIVE = "active"
STATUS_USED = "utilisee"
STATUS_EXPIRED = "expiree"

MOVEMENT_IN = "entree"
MOVEMENT_OUT = "sortie"

REASON_RESTOCK = "reapprovisionnement"
REASON_SALE = "vente"
REASON_ADJUSTMENT = "ajustement"
REASON_LOSS = "perte"

ACCOUNTING_SERVICE = "prestation"
ACCOUNTING_PRODUCT = "produit"
ACCOUNTING_GIFT_CARD = "carte_cadeau"
ACCOUNTING_OTHER = "autre"

PAYMENT_GIFT_CARD = "Carte cadeau"

DEFAULT_ALERT_THRESHOLD = 5


@dataclass
class Client:
    guid: str = ""
    last_name: str = ""
    first_name: str = ""
    birth_month: str = ""
    phone: str = ""
    email: str = ""
    address: str = ""
    created_at: str = ""
    modified_at: str = ""
    integrity_hash: str = ""
    row_index: int = 0

    @property
    def full_name(self) -> str:
        return f"{self.last_name} {self.first_name}".strip()


@dataclass
class ServiceItem:
    """Service catalog entry (a *prestation*)."""

    guid: str = ""
    name: str = ""
    category: str = ""
    default_price: Decimal = cells.ZERO
    duration_minutes: int = 0
    active: bool = True
    row_index: int = 0


@dataclass
class Product:
    guid: str = ""
    name: str = ""
    brand: str = ""
    sale_price: Decimal = cells.ZERO
    purchase_price: Decimal = cells.ZERO
    stock: int = 0
    alert_threshold: int = DEFAULT_ALERT_THRESHOLD
    category: str = ""
    active: bool = True
    row_index: int = 0

    @property
    def in_alert(self) -> bool:
        return self.stock <= self.alert_threshold

    @property
    def out_of_stock(self) -> bool:
        return self.stock <= 0


@dataclass
class VisitService:
    """Snapshot of a service as it was performed and priced."""

    service_id: str = ""
    name: str = ""
    price: Decimal = cells.ZERO
    duration_minutes: int = 0

    def to_json(self) -> Dict[str, Any]:
        return {
            "prestationId": self.service_id,
            "nom": self.name,
            "prix": cells.json_decimal(self.price),
            "dureeMinutes": self.duration_minutes,
        }

    @classmethod
    def from_json(cls, item: Dict[str, Any]) -> "VisitService":
        return cls(
            service_id=cells.item_text(item, "prestationId"),
            name=cells.item_text(item, "nom"),
            price=cells.item_decimal(item, "prix"),
            duration_minutes=cells.item_int(item, "dureeMinutes"),
        )


@dataclass
class VisitProduct:
    product_id: str = ""
    name: str = ""
    quantity: int = 1
    unit_price: Decimal = cells.ZERO

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_json(self) -> Dict[str, Any]:
        return {
            "produitId": self.product_id,
            "nom": self.name,
            "quantite": self.quantity,
            "prixUnitaire": cells.json_decimal(self.unit_price),
        }

    @classmethod
    def from_json(cls, item: Dict[str, Any]) -> "VisitProduct":
        return cls(
            product_id=cells.item_text(item, "produitId"),
            name=cells.item_text(item, "nom"),
            quantity=cells.item_int(item, "quantite"),
            unit_price=cells.item_decimal(item, "prixUnitaire"),
        )


@dataclass
class RecommendedProduct:
    product_id: str = ""
    name: str = ""
    indicative_price: Decimal = cells.ZERO
    comment: str = ""

    def to_json(self) -> Dict[str, Any]:
        return {
            "produitId": self.product_id,
            "nom": self.name,
            "prixIndicatif": cells.json_decimal(self.indicative_price),
            "commentaire": self.comment,
        }

    @classmethod
    def from_json(cls, item: Dict[str, Any]) -> "RecommendedProduct":
        return cls(
            product_id=cells.item_text(item, "produitId"),
            name=cells.item_text(item, "nom"),
            indicative_price=cells.item_decimal(item, "prixIndicatif"),
            comment=cells.item_text(item, "commentaire"),
        )


@dataclass
class Payment:
    mode: str = ""
    amount: Decimal = cells.ZERO
    gift_card_guid: str = ""
    reference: str = ""

    @property
    def is_gift_card(self) -> bool:
        return self.mode == PAYMENT_GIFT_CARD or bool(self.gift_card_guid)

    def to_json(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "montant": cells.json_decimal(self.amount),
            "carteCadeauGuid": self.gift_card_guid,
            "reference": self.reference,
        }

    @classmethod
    def from_json(cls, item: Dict[str, Any]) -> "Payment":
        return cls(
            mode=cells.item_text(item, "mode"),
            amount=cells.item_decimal(item, "montant"),
            gift_card_guid=cells.item_text(item, "carteCadeauGuid"),
            reference=cells.item_text(item, "reference"),
        )


@dataclass
class Visit:
    """One dated visit (a *passage*).

    ``total`` is always computed from the embedded snapshots; the value
    stored in the sheet is written for human readers and never read back.
    ``gift_card_guid``/``gift_card_amount`` are the single-card payment
    fields kept for rows written before structured payments existed.
    """

    guid: str = ""
    client_guid: str = ""
    date: str = ""
    services: List[VisitService] = field(default_factory=list)
    products_sold: List[VisitProduct] = field(default_factory=list)
    recommended_products: List[RecommendedProduct] = field(default_factory=list)
    note: str = ""
    payment_mode: str = ""
    gift_card_guid: str = ""
    gift_card_amount: Decimal = cells.ZERO
    payments: List[Payment] = field(default_factory=list)
    integrity_hash: str = ""
    row_index: int = 0

    @property
    def service_subtotal(self) -> Decimal:
        return sum((item.price for item in self.services), cells.ZERO)

    @property
    def product_subtotal(self) -> Decimal:
        return sum((item.amount for item in self.products_sold), cells.ZERO)

    @property
    def total(self) -> Decimal:
        return self.service_subtotal + self.product_subtotal

    @property
    def parsed_date(self) -> Optional[datetime.date]:
        return dates.parse_date(self.date)


@dataclass
class GiftCard:
    guid: str = ""
    client_guid: str = ""
    card_type: str = CARD_PURCHASE
    initial_amount: Decimal = cells.ZERO
    balance: Decimal = cells.ZERO
    created_on: str = ""
    expires_on: str = ""
    origin: str = ""
    idempotency_key: str = ""
    row_index: int = 0

    def status_on(self, today: datetime.date) -> str:
        if self.balance <= 0:
            return STATUS_USED
        expiry = dates.parse_date(self.expires_on)
        if expiry is not None and expiry < today:
            return STATUS_EXPIRED
        return STATUS_ACTIVE

    def usable_on(self, today: datetime.date) -> bool:
        return self.status_on(today) == STATUS_ACTIVE and self.balance > 0


@dataclass
class StockMovement:
    guid: str = ""
    product_guid: str = ""
    movement_type: str = MOVEMENT_IN
    quantity: int = 0
    unit_cost: Decimal = cells.ZERO
    date: str = ""
    reason: str = REASON_RESTOCK
    reference: str = ""
    note: str = ""
    row_index: int = 0

    @property
    def amount(self) -> Decimal:
        return self.unit_cost * self.quantity

    @property
    def is_restock(self) -> bool:
        return self.movement_type == MOVEMENT_IN and self.reason == REASON_RESTOCK


@dataclass
class FinancialAdjustment:
    """Manual revenue (positive amount) or expense (negative amount)."""

    guid: str = ""
    date: str = ""
    adjustment_type: str = ""
    amount: Decimal = cells.ZERO
    description: str = ""
    category: str = ""
    accounting_category: str = ACCOUNTING_OTHER
    note: str = ""
    row_index: int = 0

    @property
    def is_revenue(self) -> bool:
        return self.amount > 0
