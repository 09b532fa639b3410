# --- cache store models / engine ---

from __future__ import annotations

from sqlalchemy import create_engine, DateTime, String, Text, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime
from typing import Any, Dict
import logging

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Engine / Session
# -------------------------------------------------------------------
def make_engine(url: str) -> Engine:
    """Build a sync SQLite engine; in-memory SQLite shares one connection across sessions.

    Cache reads and writes run on the event-loop thread, so only embedded
    SQLite is accepted; a networked database would stall every cycle.
    """
    if not url.startswith("sqlite"):
        raise ValueError(f"Cache store must be an embedded SQLite URL, got {_redact_db_url(url)}")
    if ":memory:" in url or url.rstrip("/") == "sqlite:":
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(url, connect_args={"check_same_thread": False})


def make_session_factory(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, expire_on_commit=False)


def _redact_db_url(url: str) -> str:
    try:
        if "@" in url and "://" in url:
            head, tail = url.split("://", 1)
            creds, hostpart = tail.split("@", 1)
            if ":" in creds:
                user, _pwd = creds.split(":", 1)
                return f"{head}://{user}:******@{hostpart}"
        return url
    except ValueError:
        return "******"


# -------------------------------------------------------------------
# Base
# -------------------------------------------------------------------
class Base(DeclarativeBase):
    pass


class CacheRecord(Base):
    """One key of the restock cache namespace (value is an opaque JSON string)."""

    __tablename__ = "restock_cache"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


def init_db(bind: Engine) -> None:
    """Ensure tables exist."""
    Base.metadata.create_all(bind)
    logger.info("DB init complete (tables ensured) for %s", _redact_db_url(str(bind.url)))


def check_db_health(bind: Engine) -> Dict[str, Any]:
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy", "url": _redact_db_url(str(bind.url))}
    except Exception as e:
        logger.error("DB health check failed: %s", e)
        return {"status": "unhealthy", "error": str(e)}
