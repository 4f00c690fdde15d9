"""Database engine and connection factory."""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from product_ingest.config import settings
from product_ingest.errors import FatalPipelineError

logger = logging.getLogger(__name__)


def _enable_sqlite_savepoints(engine: AsyncEngine):
    """
    Let SQLAlchemy control BEGIN on SQLite so SAVEPOINT works.

    The sqlite3 driver otherwise issues its own BEGIN lazily and breaks
    nested transactions. Foreign keys are switched on so ON DELETE CASCADE
    is honored.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(database_url: Optional[str] = None, echo: bool = False) -> AsyncEngine:
    """
    Create the async engine for the relational store.

    Args:
        database_url: SQLAlchemy URL (defaults to config)
        echo: Log every statement
    """
    url = database_url or settings.database_url

    if url.startswith("sqlite"):
        engine = create_async_engine(url, echo=echo)
        _enable_sqlite_savepoints(engine)
        return engine

    return create_async_engine(
        url,
        echo=echo,
        pool_size=1,
        max_overflow=0,
        pool_timeout=settings.db_timeout_seconds,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args={"connect_timeout": int(settings.db_timeout_seconds)},
    )


async def verify_connection(engine: AsyncEngine):
    """
    Open and release one connection.

    Raises:
        FatalPipelineError: If the store is unreachable
    """
    try:
        async with engine.connect() as conn:
            await conn.exec_driver_sql("SELECT 1")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        raise FatalPipelineError(f"Database connection failed: {e}") from e
    logger.info("Database connection established")
