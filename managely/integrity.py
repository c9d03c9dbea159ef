"""Keyed, versioned content hashes used for optimistic conflict detection.

A hash looks like ``v1:<32 hex chars>``.  The version selects the list of
fields that went into it, so adding a field to a later version never
invalidates hashes already stored under an earlier one.
"""
from __future__ import annotations

import hashlib
import hmac
import json
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from managely import cells
from managely.models import Client, Visit

CURRENT_VERSION = 1
_DIGEST_LENGTH = 32


def _canonical(value: Any) -> Any:
    if isinstance(value, Decimal):
        return cells.format_decimal(value.normalize()) if value else "0"
    if isinstance(value, (list, tuple)):
        return [_canonical(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _canonical(item) for key, item in value.items()}
    if value is None:
        return ""
    if isinstance(value, (bool, int)):
        return value
    return str(value)


def canonical_json(fields: Mapping[str, Any]) -> str:
    return json.dumps(_canonical(dict(fields)), sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def _client_fields_v1(client: Client) -> Dict[str, Any]:
    return {
        "nom": client.last_name,
        "prenom": client.first_name,
        "mois_anniversaire": client.birth_month,
        "numero_telephone": client.phone,
        "email": client.email,
        "adresse": client.address,
    }


def _visit_fields_v1(visit: Visit) -> Dict[str, Any]:
    return {
        "client_guid": visit.client_guid,
        "date": visit.date,
        "prestations": [item.to_json() for item in visit.services],
        "produits_vendus": [item.to_json() for item in visit.products_sold],
        "produits_conseilles": [item.to_json() for item in visit.recommended_products],
        "note_interne": visit.note,
        "mode_paiement": visit.payment_mode,
        "carte_cadeau_guid": visit.gift_card_guid,
        "montant_carte_utilisee": visit.gift_card_amount,
        "paiements": [item.to_json() for item in visit.payments],
    }


_FIELD_SETS: Dict[Tuple[type, int], Callable[[Any], Dict[str, Any]]] = {
    (Client, 1): _client_fields_v1,
    (Visit, 1): _visit_fields_v1,
}


class IntegrityHasher:
    """Compute and compare content hashes for clients and visits."""

    def __init__(self, key: str, *, version: int = CURRENT_VERSION) -> None:
        self._key = (key or "").encode("utf-8")
        self._version = version

    @property
    def version(self) -> int:
        return self._version

    def significant_fields(self, entity: Any, version: Optional[int] = None) -> Dict[str, Any]:
        selected = self._version if version is None else version
        try:
            extractor = _FIELD_SETS[(type(entity), selected)]
        except KeyError:
            raise ValueError(f"No hash field set v{selected} for {type(entity).__name__}") from None
        return extractor(entity)

    def compute(self, entity: Any, version: Optional[int] = None) -> str:
        selected = self._version if version is None else version
        payload = canonical_json(self.significant_fields(entity, selected)).encode("utf-8")
        digest = hmac.new(self._key, payload, hashlib.sha256).hexdigest()[:_DIGEST_LENGTH]
        return f"v{selected}:{digest}"

    def matches(self, entity: Any, stored_hash: str) -> bool:
        """Return ``True`` when ``stored_hash`` describes ``entity``'s content."""

        version = parse_version(stored_hash)
        if version is None:
            return False
        try:
            return hmac.compare_digest(self.compute(entity, version), stored_hash)
        except ValueError:
            return False


def parse_version(stored_hash: str) -> Optional[int]:
    prefix, _, digest = (stored_hash or "").partition(":")
    if not digest or not prefix.startswith("v") or not prefix[1:].isdigit():
        return None
    return int(prefix[1:])


def field_diff(hasher: IntegrityHasher, stored: Any, incoming: Any) -> Dict[str, Tuple[str, str]]:
    """Return ``{field: (stored, incoming)}`` for significant fields that differ."""

    before = _canonical(hasher.significant_fields(stored))
    after = _canonical(hasher.significant_fields(incoming))
    diffs: Dict[str, Tuple[str, str]] = {}
    for key in sorted(set(before) | set(after)):
        left = json.dumps(before.get(key), ensure_ascii=False, sort_keys=True)
        right = json.dumps(after.get(key), ensure_ascii=False, sort_keys=True)
        if left != right:
            diffs[key] = (left, right)
    return diffs


__all__ = [
    "CURRENT_VERSION",
    "IntegrityHasher",
    "canonical_json",
    "field_diff",
    "parse_version",
]
