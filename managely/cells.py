"""Cell level converters.

Every value stored in the spreadsheet is text.  Readers here never raise:
malformed or missing input maps to the supplied default.  Writers use a
fixed invariant format so that numbers survive any spreadsheet locale.
"""
from __future__ import annotations

import json
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

ZERO = Decimal("0")
CENT = Decimal("0.01")

_FALSE_WORDS = {"false", "faux", "non", "no", "0"}


def to_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    if isinstance(value, Decimal):
        return value if value.is_finite() else default
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return to_decimal(str(value), default)
    text = to_text(value).replace(" ", "").replace("\u00a0", "").replace("\u20ac", "")
    if not text:
        return default
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    try:
        result = Decimal(text)
    except InvalidOperation:
        return default
    return result if result.is_finite() else default


def to_int(value: Any, default: int = 0) -> int:
    number = to_decimal(value, Decimal(default))
    if number != number.to_integral_value():
        return default
    return int(number)


def to_bool(value: Any, default: bool = True) -> bool:
    text = to_text(value).lower()
    if not text:
        return default
    return text not in _FALSE_WORDS


def format_decimal(value: Decimal) -> str:
    """Render ``value`` without exponent or locale separators."""

    if not value.is_finite():
        return "0"
    return format(value, "f")


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_EVEN)


def parse_json_list(value: Any) -> List[Dict[str, Any]]:
    text = to_text(value)
    if not text:
        return []
    try:
        payload = json.loads(text)
    except (TypeError, ValueError):
        return []
    if not isinstance(payload, list):
        return []
    return [item for item in payload if isinstance(item, dict)]


def dump_json_list(items: Sequence[Dict[str, Any]]) -> str:
    return json.dumps(list(items), ensure_ascii=False, separators=(",", ":"))


def json_decimal(value: Decimal) -> Any:
    """Return ``value`` as a JSON number, as the original cells carry them."""

    if value == value.to_integral_value():
        return int(value)
    return float(value)


def item_decimal(item: Dict[str, Any], key: str) -> Decimal:
    return to_decimal(item.get(key))


def item_text(item: Dict[str, Any], key: str) -> str:
    return to_text(item.get(key))


def item_int(item: Dict[str, Any], key: str, default: int = 0) -> int:
    return to_int(item.get(key), default)


def cell(row: Sequence[str], index: int) -> Optional[str]:
    return row[index] if index < len(row) else None
