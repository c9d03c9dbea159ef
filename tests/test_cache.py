import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from managely.cache import TtlCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_their_ttl() -> None:
    clock = _Clock()
    cache = TtlCache(default_ttl=300, clock=clock)
    cache.set("clients_all", ["a"])
    cache.set("short", 1, ttl=10)

    clock.now += 9
    assert cache.get("short") == 1
    clock.now += 1
    assert cache.get("short") is None
    assert cache.get("clients_all") == ["a"]

    clock.now += 300
    assert cache.get("clients_all") is None
    assert len(cache) == 0


def test_invalidate_and_clear() -> None:
    cache = TtlCache(clock=_Clock())
    cache.set("clients_all", [1])
    cache.set("cartes_all", [2])
    cache.set("cartes_client", [3])

    cache.invalidate("clients_all")
    cache.invalidate("missing")
    assert cache.get("clients_all") is None
    assert len(cache) == 2

    cache.invalidate_prefix("cartes_")
    assert len(cache) == 0

    cache.set("produits_all", [4])
    cache.clear()
    assert cache.get("produits_all") is None
