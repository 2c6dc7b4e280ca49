"""SQLAlchemy engine for the MySQL analytics database.

Single shared engine with connection pooling.  Every pooled connection
gets the business time zone on checkout-time connect, and all ask-service
queries run through ``readonly_connection``, which marks the transaction
READ ONLY before anything else is executed.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine

from askguard.core.config import get_settings
from askguard.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def _install_time_zone(engine: Engine, time_zone: str) -> None:
    @event.listens_for(engine, "connect")
    def _set_time_zone(dbapi_conn, _record) -> None:
        cursor = dbapi_conn.cursor()
        try:
            cursor.execute("SET time_zone = %s", (time_zone,))
        except Exception as exc:
            # Named zones need the server's tz tables; keep the connection usable.
            logger.error("Failed to set time_zone %s: %s", time_zone, exc)
        finally:
            cursor.close()


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=0,
            pool_recycle=3600,
            echo=False,
        )
        _install_time_zone(_engine, settings.db_time_zone)
        logger.info("DB engine created  host=%s  db=%s", settings.db_host, settings.db_name)
    return _engine


def dispose_engine() -> None:
    """Close pooled connections and forget the engine (tests, shutdown)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def readonly_connection() -> Generator[Connection, None, None]:
    """Yield a connection whose transaction is READ ONLY.

    The transaction is always rolled back and the connection returned to
    the pool on exit.
    """
    engine = get_engine()
    conn = engine.connect()
    try:
        conn.execute(text("SET TRANSACTION READ ONLY"))
        yield conn
    finally:
        conn.rollback()
        conn.close()
