"""
Time-boxed cache for restock recommendations.

Entries live in a CacheStore under ``{prefix}{id}_{stock}_{name}`` so that any
stock change lands on a new key; each entry also records the product state it
was computed for, and lookups reject entries for any other state. Expiry is
lazy: stale entries are removed when they are read or when stats are
collected. Store failures never escape this module; the worst case is
recomputing a recommendation.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from schemas import CacheStats, Product, RecommendationResult
from services.storage import CacheStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "restock_cache_"
CACHE_TTL_S = 30 * 60


class RestockCache:
    """TTL cache of recommendation results keyed by product fingerprint."""

    def __init__(
        self,
        store: CacheStore,
        ttl_seconds: float = CACHE_TTL_S,
        prefix: str = CACHE_PREFIX,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = store
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix
        self._clock = clock

    def fingerprint(self, product: Product) -> str:
        return f"{self.prefix}{product.id}_{product.stock}_{product.name}"

    @staticmethod
    def _identity(product: Product) -> Dict[str, Any]:
        return {"id": product.id, "stock": product.stock, "name": product.name}

    def _is_expired(self, timestamp: float, now: float) -> bool:
        return now - timestamp > self.ttl_seconds

    def lookup(self, product: Product) -> Optional[RecommendationResult]:
        """Return the cached result for the product's current state, if fresh."""
        key = self.fingerprint(product)
        try:
            raw = self.backend.get(key)
            if raw is None:
                return None

            data = json.loads(raw)
            if self._is_expired(float(data["timestamp"]), self._clock()):
                self.backend.remove(key)
                logger.debug("Restock cache expired | key=%s", key)
                return None

            # Keys can collide when ids or names contain "_"; the entry must
            # belong to exactly this product state.
            if data.get("product") != self._identity(product):
                logger.debug("Restock cache entry belongs to another product | key=%s", key)
                return None

            return RecommendationResult.from_dict(data["recommendation"])
        except Exception as exc:
            logger.warning("Error reading from restock cache key=%s: %s", key, exc)
            return None

    def store(self, product: Product, result: RecommendationResult) -> None:
        key = self.fingerprint(product)
        payload = {
            "timestamp": self._clock(),
            "product": self._identity(product),
            "recommendation": result.to_dict(),
        }
        try:
            self.backend.set(key, json.dumps(payload))
        except Exception as exc:
            logger.warning("Error writing to restock cache key=%s: %s", key, exc)

    def _namespaced_keys(self) -> List[str]:
        return [key for key in self.backend.list_keys() if key.startswith(self.prefix)]

    def clear(self) -> None:
        """Remove every entry under our prefix; other keys in the store are untouched."""
        try:
            keys = self._namespaced_keys()
            for key in keys:
                self.backend.remove(key)
            logger.info("Restock cache cleared (%d entries)", len(keys))
        except Exception as exc:
            logger.warning("Error clearing restock cache: %s", exc)

    def stats(self) -> CacheStats:
        """Count valid/expired entries, then evict the expired ones."""
        try:
            now = self._clock()
            valid: List[str] = []
            expired: List[str] = []

            for key in self._namespaced_keys():
                try:
                    data = json.loads(self.backend.get(key))
                    if self._is_expired(float(data["timestamp"]), now):
                        expired.append(key)
                    else:
                        valid.append(key)
                except (TypeError, ValueError, KeyError):
                    expired.append(key)

            for key in expired:
                self.backend.remove(key)

            return CacheStats(valid=len(valid), expired=len(expired))
        except Exception as exc:
            logger.warning("Error getting restock cache stats: %s", exc)
            return CacheStats()


__all__ = ["RestockCache", "CACHE_PREFIX", "CACHE_TTL_S"]
