"""Client repository: formatting on write, scored search, birthdays."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from managely import dates, schema
from managely.cache import TtlCache
from managely.integrity import IntegrityHasher
from managely.models import Client
from managely.repository import IntegrityRepository
from managely.sheets_client import SheetsStore

logger = logging.getLogger(__name__)


def format_last_name(value: str) -> str:
    """``dupont martin`` -> ``DUPONT-MARTIN``."""

    parts = (value or "").replace("-", " ").split()
    return "-".join(part.upper() for part in parts) if parts else (value or "").strip()


def format_first_name(value: str) -> str:
    """``jean pierre`` -> ``Jean-Pierre``."""

    parts = (value or "").replace("-", " ").split()
    if not parts:
        return (value or "").strip()
    return "-".join(part.upper() if len(part) <= 1 else part[0].upper() + part[1:].lower() for part in parts)


def format_phone(value: str) -> str:
    """Group a French number as ``06 12 34 56 78``; other lengths are kept."""

    if not value or not value.strip():
        return value or ""
    digits = "".join(char for char in value if char.isdigit())
    if not digits:
        return value
    if digits.startswith("33") and len(digits) == 11:
        digits = "0" + digits[2:]
    if len(digits) == 10:
        return " ".join(digits[index:index + 2] for index in range(0, 10, 2))
    return value.strip()


def apply_formatting(client: Client) -> None:
    client.last_name = format_last_name(client.last_name)
    client.first_name = format_first_name(client.first_name)
    client.phone = format_phone(client.phone)


def levenshtein(left: str, right: str) -> int:
    if not left:
        return len(right)
    if not right:
        return len(left)
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _fold(text: str) -> str:
    return dates.strip_accents(text or "").lower()


def search_score(client: Client, term: str) -> int:
    """Relevance of ``client`` for an already trimmed, lower-cased ``term``.

    Substring hits on the full name, phone and email score 100, 90 and 80;
    a name or first name starting with the term adds 50 each.  Only when
    nothing matched, a Levenshtein distance within ``max(2, len(term) // 3)``
    of the last or first name scores ``(threshold - distance + 1) * 10``.
    """

    folded = _fold(term)
    score = 0
    if folded in _fold(client.full_name):
        score += 100
    if term in (client.phone or "").lower():
        score += 90
    if term in (client.email or "").lower():
        score += 80
    if _fold(client.last_name).startswith(folded):
        score += 50
    if _fold(client.first_name).startswith(folded):
        score += 50

    if score == 0:
        distance = min(levenshtein(_fold(client.last_name), folded), levenshtein(_fold(client.first_name), folded))
        threshold = max(2, len(folded) // 3)
        if distance <= threshold:
            score += (threshold - distance + 1) * 10
    return score


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ClientRepository(IntegrityRepository[Client]):
    def __init__(
        self,
        store: SheetsStore,
        cache: TtlCache,
        hasher: IntegrityHasher,
        *,
        ttl: Optional[float] = None,
        now: Callable[[], datetime] = _utc_now,
    ) -> None:
        super().__init__(store, cache, schema.CLIENTS, hasher, ttl=ttl)
        self._now = now

    def _timestamp(self) -> str:
        return self._now().isoformat()

    def _apply_defaults(self, entity: Client) -> None:
        stamp = self._timestamp()
        entity.created_at = stamp
        entity.modified_at = stamp

    def _before_update(self, entity: Client, stored: Client) -> None:
        entity.created_at = stored.created_at or entity.created_at
        entity.modified_at = self._timestamp()

    def _before_write(self, entity: Client) -> None:
        apply_formatting(entity)
        super()._before_write(entity)

    async def search(self, term: str) -> List[Client]:
        """Return clients matching ``term``, best match first."""

        everyone = await self.get_all()
        needle = (term or "").strip().lower()
        if not needle:
            return everyone
        scored: List[Tuple[int, int, Client]] = []
        for position, client in enumerate(everyone):
            score = search_score(client, needle)
            if score > 0:
                scored.append((-score, position, client))
        scored.sort(key=lambda entry: (entry[0], entry[1]))
        logger.debug("Search %r matched %d of %d clients", term, len(scored), len(everyone))
        return [client for _, _, client in scored]

    async def birthdays_in_month(self, month: int) -> List[Client]:
        return [client for client in await self.get_all() if dates.same_month(client.birth_month, month)]


__all__ = [
    "ClientRepository",
    "apply_formatting",
    "format_first_name",
    "format_last_name",
    "format_phone",
    "levenshtein",
    "search_score",
]
