"""Fixed-format date helpers used by repositories and engines."""
from __future__ import annotations

import calendar
import re
import unicodedata
from datetime import date, datetime
from typing import Optional

DATE_FORMAT = "%d/%m/%Y"
_ACCEPTED_FORMATS = (DATE_FORMAT, "%Y-%m-%d")
_STRICT_DATE_RE = re.compile(r"\d{2}/\d{2}/\d{4}|\d{4}-\d{2}-\d{2}")

FRENCH_MONTHS = (
    "janvier",
    "fevrier",
    "mars",
    "avril",
    "mai",
    "juin",
    "juillet",
    "aout",
    "septembre",
    "octobre",
    "novembre",
    "decembre",
)


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(char for char in decomposed if unicodedata.category(char) != "Mn")


def parse_date(value: object) -> Optional[date]:
    """Parse ``dd/MM/yyyy`` or ``yyyy-MM-dd``; anything else yields ``None``."""

    text = str(value or "").strip()
    # strptime alone would also take unpadded days and months
    if not _STRICT_DATE_RE.fullmatch(text):
        return None
    for fmt in _ACCEPTED_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def format_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def in_period(value: object, month: int, year: int) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed.month == month and parsed.year == year


def in_year(value: object, year: int) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed.year == year


def month_number(value: object) -> Optional[int]:
    """Return 1-12 for ``"03"``, ``"3"``, ``3`` or a French month name."""

    text = str(value or "").strip()
    if not text:
        return None
    if text.isdigit():
        number = int(text)
        return number if 1 <= number <= 12 else None
    key = strip_accents(text).lower()
    if key in FRENCH_MONTHS:
        return FRENCH_MONTHS.index(key) + 1
    return None


def same_month(value: object, month: int) -> bool:
    return month_number(value) == month


def end_of_month(value: date) -> date:
    last_day = calendar.monthrange(value.year, value.month)[1]
    return value.replace(day=last_day)


def add_years(value: date, years: int) -> date:
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return value.replace(year=value.year + years, day=28)


__all__ = [
    "DATE_FORMAT",
    "FRENCH_MONTHS",
    "add_years",
    "end_of_month",
    "format_date",
    "in_period",
    "in_year",
    "month_number",
    "parse_date",
    "same_month",
    "strip_accents",
]
