"""Connection wrapper used by the upsert engine and maintenance tasks."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction
from sqlalchemy.sql import Executable

logger = logging.getLogger(__name__)


class ProductStore:
    """
    One database connection owned by a pipeline run.

    Exposes the two kinds of statements the pipeline issues separately:

    * ``execute`` for parameterized DML built with SQLAlchemy constructs
    * ``execute_unprepared`` for session-level statements such as
      ``CALL UpdateAllFacets()`` or ``OPTIMIZE TABLE``, which go to the
      driver as plain text without parameter binding

    Transactions are explicit: ``begin`` / ``commit`` / ``rollback``, with
    ``savepoint`` for statements that may fail without aborting the
    surrounding transaction.
    """

    def __init__(self, connection: AsyncConnection):
        self.connection = connection
        self._transaction: Optional[AsyncTransaction] = None

    @classmethod
    @asynccontextmanager
    async def connect(cls, engine: AsyncEngine) -> AsyncIterator["ProductStore"]:
        """Open a store on a fresh connection and close it on exit."""
        async with engine.connect() as conn:
            store = cls(conn)
            try:
                yield store
            finally:
                if store.in_transaction:
                    await store.rollback()

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None and self._transaction.is_active

    async def begin(self):
        self._transaction = await self.connection.begin()

    async def commit(self):
        transaction, self._transaction = self._transaction, None
        if transaction is not None:
            await transaction.commit()

    async def rollback(self):
        transaction, self._transaction = self._transaction, None
        if transaction is not None and transaction.is_active:
            await transaction.rollback()

    def savepoint(self):
        """``async with store.savepoint():`` releases on success, rolls back on error."""
        return self.connection.begin_nested()

    async def execute(self, statement: Executable, params: Optional[Any] = None) -> CursorResult:
        return await self.connection.execute(statement, params)

    async def execute_unprepared(self, sql: str) -> CursorResult:
        return await self.connection.exec_driver_sql(sql)

    async def autocommit_unprepared(self, sql: str) -> CursorResult:
        """Run one unprepared statement in its own short transaction."""
        await self.begin()
        try:
            result = await self.execute_unprepared(sql)
            await self.commit()
            return result
        except Exception:
            await self.rollback()
            raise
