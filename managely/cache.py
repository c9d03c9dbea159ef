"""Process-local TTL cache shared by the entity repositories."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0

CLIENTS_KEY = "clients_all"
SERVICES_KEY = "prestations_all"
PRODUCTS_KEY = "produits_all"
VISITS_KEY = "passages_all"
GIFT_CARDS_KEY = "cartes_all"
STOCK_MOVEMENTS_KEY = "mouvements_all"
ADJUSTMENTS_KEY = "ajustements_all"


@dataclass
class _Entry:
    value: Any
    expires_at: float


class TtlCache:
    """Keyed values with a per-entry expiry.

    Expired entries are evicted lazily when read; there is no background
    sweeper.  Access is serialised with a lock because store calls complete
    on worker threads.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                logger.debug("Cache entry %s expired", key)
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        lifetime = self._default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + lifetime)

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        with self._lock:
            for key in [key for key in self._entries if key.startswith(prefix)]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "ADJUSTMENTS_KEY",
    "CLIENTS_KEY",
    "DEFAULT_TTL_SECONDS",
    "GIFT_CARDS_KEY",
    "PRODUCTS_KEY",
    "SERVICES_KEY",
    "STOCK_MOVEMENTS_KEY",
    "TtlCache",
    "VISITS_KEY",
]
