"""
Storage Service Layer
Key-value stores backing the restock recommendation cache.

Both stores expose the same four operations:
    get(key) -> str | None
    set(key, value)
    remove(key)
    list_keys() -> list[str]

Stores are allowed to raise; callers (see services.restock_cache) decide how
to degrade.
"""
from __future__ import annotations

from typing import Dict, List, Optional, Protocol
import logging

from sqlalchemy import delete, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, ProgrammingError

from database import CacheRecord, _redact_db_url, init_db, make_engine, make_session_factory
from settings import MEMORY_STORE_URL, load_settings

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def list_keys(self) -> List[str]: ...


class InMemoryCacheStore:
    """Process-local store; contents vanish with the process."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def list_keys(self) -> List[str]:
        return list(self._data.keys())

    def __len__(self) -> int:
        return len(self._data)


class SqlCacheStore:
    """Store backed by the ``restock_cache`` table on any SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._session_factory = make_session_factory(engine)
        self._table_ready = False

    def _ensure_table(self) -> None:
        if not self._table_ready:
            init_db(self.engine)
            self._table_ready = True

    def _missing_table(self, exc: Exception) -> bool:
        message = str(exc).lower()
        return "restock_cache" in message or "no such table" in message

    def _run(self, operation, retried: bool = False):
        self._ensure_table()
        with self._session_factory() as session:
            try:
                return operation(session)
            except (OperationalError, ProgrammingError) as exc:
                session.rollback()
                if not retried and self._missing_table(exc):
                    # Dropped externally; recreate and retry once.
                    logger.info("Cache table missing; creating now.")
                    self._table_ready = False
                    return self._run(operation, retried=True)
                raise

    def get(self, key: str) -> Optional[str]:
        def _get(session):
            record = session.get(CacheRecord, key)
            return record.payload if record else None

        return self._run(_get)

    def set(self, key: str, value: str) -> None:
        def _set(session):
            record = session.get(CacheRecord, key)
            if record:
                record.payload = value
            else:
                session.add(CacheRecord(key=key, payload=value))
            session.commit()

        self._run(_set)
        logger.debug("Cache store write | key=%s", key)

    def remove(self, key: str) -> None:
        def _remove(session):
            session.execute(delete(CacheRecord).where(CacheRecord.key == key))
            session.commit()

        self._run(_remove)

    def list_keys(self) -> List[str]:
        def _list(session):
            return list(session.scalars(select(CacheRecord.key)))

        return self._run(_list)


def build_cache_store(url: Optional[str] = None) -> CacheStore:
    """Pick the store for ``url`` (defaults to CACHE_DATABASE_URL)."""
    url = url or load_settings().cache_database_url
    if url == MEMORY_STORE_URL:
        logger.info("Using in-memory restock cache store")
        return InMemoryCacheStore()
    logger.info("Using SQL restock cache store at %s", _redact_db_url(url))
    return SqlCacheStore(make_engine(url))
