"""
Centralized configuration for the restock advisor.

Environment variables:
    RESTOCK_CACHE_TTL_S        → lifetime of a cached recommendation (seconds)
    RESTOCK_CACHE_PREFIX       → namespace prefix for cache keys in the store
    RESTOCK_MAX_CONCURRENCY    → recommendation calls in flight per chunk
    RESTOCK_DEBOUNCE_S         → quiet interval before a product change regenerates
    RESTOCK_CANDIDATE_LIMIT    → max products sent for recommendations per cycle
    RESTOCK_ALERT_FLOOR        → minimum stock alert threshold
    RESTOCK_ITEM_TIMEOUT_S     → per-item timeout for the recommendation call (0 disables)
    CACHE_DATABASE_URL         → SQLite URL for the cache store ("memory://" for in-process)
    NOTIFICATION_HISTORY       → number of notifications kept for the API
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

MEMORY_STORE_URL = "memory://"


@dataclass(frozen=True)
class RestockSettings:
    """Resolved configuration for the restock dashboard."""

    cache_ttl_seconds: float
    cache_prefix: str
    max_concurrency: int
    debounce_seconds: float
    candidate_limit: int
    alert_floor: int
    item_timeout_seconds: Optional[float]
    cache_database_url: str
    notification_history: int


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Invalid int for %s=%s; falling back to %s", name, value, default)
        return default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Invalid float for %s=%s; falling back to %s", name, value, default)
        return default


@lru_cache(maxsize=1)
def load_settings() -> RestockSettings:
    """Load and cache restock configuration from environment variables."""

    item_timeout = _env_float("RESTOCK_ITEM_TIMEOUT_S", 30.0)

    return RestockSettings(
        cache_ttl_seconds=_env_float("RESTOCK_CACHE_TTL_S", 30 * 60),
        cache_prefix=os.getenv("RESTOCK_CACHE_PREFIX") or "restock_cache_",
        max_concurrency=max(1, _env_int("RESTOCK_MAX_CONCURRENCY", 3)),
        debounce_seconds=max(0.0, _env_float("RESTOCK_DEBOUNCE_S", 1.0)),
        candidate_limit=max(1, _env_int("RESTOCK_CANDIDATE_LIMIT", 15)),
        alert_floor=_env_int("RESTOCK_ALERT_FLOOR", 10),
        item_timeout_seconds=item_timeout if item_timeout > 0 else None,
        cache_database_url=os.getenv("CACHE_DATABASE_URL") or "sqlite:///restock_cache.db",
        notification_history=max(1, _env_int("NOTIFICATION_HISTORY", 50)),
    )
