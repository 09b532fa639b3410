import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from schemas import CacheStats, Product, RecommendationResult
from services.restock_cache import RestockCache
from services.storage import InMemoryCacheStore


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class BrokenStore:
    def get(self, key):
        raise OSError("disk gone")

    def set(self, key, value):
        raise OSError("quota exceeded")

    def remove(self, key):
        raise OSError("disk gone")

    def list_keys(self):
        raise OSError("disk gone")


RESULT = RecommendationResult(
    analyzer_summary="Low stock",
    restock_suggestion="Order 40 units",
    reorder_message="Please ship 40",
    priority="critical",
)


def _cache(store=None, clock=None):
    store = store if store is not None else InMemoryCacheStore()
    return RestockCache(store, ttl_seconds=1800, clock=clock or FakeClock())


def test_store_then_lookup_returns_result():
    cache = _cache()
    product = Product(id="1", name="Milk", stock=4)
    cache.store(product, RESULT)
    assert cache.lookup(product) == RESULT


def test_fingerprint_includes_id_stock_and_name():
    cache = _cache()
    assert cache.fingerprint(Product(id="9", name="Eggs", stock=3)) == "restock_cache_9_3_Eggs"


def test_stock_change_invalidates_entry():
    cache = _cache()
    cache.store(Product(id="1", name="Milk", stock=4), RESULT)
    assert cache.lookup(Product(id="1", name="Milk", stock=6)) is None
    assert cache.lookup(Product(id="1", name="Oat Milk", stock=4)) is None


def test_expired_entry_is_removed_lazily():
    clock = FakeClock()
    store = InMemoryCacheStore()
    cache = _cache(store, clock)
    product = Product(id="1", name="Milk", stock=4)
    cache.store(product, RESULT)

    clock.advance(1800)
    assert cache.lookup(product) == RESULT  # exactly at ttl is still fresh

    clock.advance(1)
    assert cache.lookup(product) is None
    assert store.list_keys() == []
    assert cache.lookup(product) is None


def test_store_overwrites_and_refreshes_timestamp():
    clock = FakeClock()
    cache = _cache(clock=clock)
    product = Product(id="1", name="Milk", stock=4)
    cache.store(product, RESULT)
    clock.advance(1000)
    newer = RecommendationResult("Updated", "Order 10", "Ship 10", priority="critical")
    cache.store(product, newer)
    clock.advance(1000)
    assert cache.lookup(product) == newer


def test_clear_only_touches_namespace():
    store = InMemoryCacheStore()
    store.set("user_pref_theme", "dark")
    cache = _cache(store)
    cache.store(Product(id="1", name="Milk", stock=4), RESULT)
    cache.store(Product(id="2", name="Bread", stock=2), RESULT)

    cache.clear()

    assert store.list_keys() == ["user_pref_theme"]


def test_stats_counts_then_evicts_expired():
    clock = FakeClock()
    store = InMemoryCacheStore()
    cache = _cache(store, clock)
    cache.store(Product(id="old", name="Old", stock=1), RESULT)
    clock.advance(1200)
    cache.store(Product(id="new", name="New", stock=1), RESULT)
    store.set("restock_cache_corrupt", "{not json")
    store.set("unrelated", json.dumps({"timestamp": 0}))
    clock.advance(700)

    assert cache.stats() == CacheStats(valid=1, expired=2)
    assert sorted(store.list_keys()) == ["restock_cache_new_1_New", "unrelated"]
    assert cache.stats() == CacheStats(valid=1, expired=0)


def test_corrupt_entry_is_a_miss():
    store = InMemoryCacheStore()
    cache = _cache(store)
    product = Product(id="1", name="Milk", stock=4)
    store.set(cache.fingerprint(product), json.dumps({"timestamp": "soon"}))
    assert cache.lookup(product) is None


def test_store_failures_never_escape():
    cache = _cache(BrokenStore())
    product = Product(id="1", name="Milk", stock=4)

    cache.store(product, RESULT)
    assert cache.lookup(product) is None
    cache.clear()
    assert cache.stats() == CacheStats()


def test_colliding_keys_do_not_leak_between_products():
    store = InMemoryCacheStore()
    cache = _cache(store)
    stored = Product(id="a", name="5_b", stock=1)
    lookalike = Product(id="a_1", name="b", stock=5)
    assert cache.fingerprint(stored) == cache.fingerprint(lookalike)

    cache.store(stored, RESULT)

    assert cache.lookup(lookalike) is None
    assert cache.lookup(stored) == RESULT


def test_entry_without_product_identity_is_a_miss():
    store = InMemoryCacheStore()
    cache = _cache(store)
    product = Product(id="1", name="Milk", stock=4)
    store.set(
        cache.fingerprint(product),
        json.dumps({"timestamp": 1_000_000.0, "recommendation": RESULT.to_dict()}),
    )
    assert cache.lookup(product) is None
