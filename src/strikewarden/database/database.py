"""
Database coordinator for SQLite.

The Database class owns the single aiosqlite connection, creates the schema
and exposes the query timer shared by the repositories. Services (ledger,
audit log, analytics, settings) receive a Database instance and run their SQL
through ``database.read()`` / ``database.transaction()``.

Lifecycle:
    1. ``await database.initialize()`` at program startup
    2. hand the instance to the services
    3. ``await database.shutdown()`` at program end
"""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from pathlib import Path
from typing import Dict

import aiosqlite

from strikewarden.database.db_connection import ConnectionManager
from strikewarden.database.db_perf_mon import QueryTimer
from strikewarden.database.db_schema import SchemaManager
from strikewarden.util.logger import get_logger

logger = get_logger("database")

# Default database file path, overridden by the app configuration / .env
DB_PATH = Path("./data/strikewarden.db").resolve()


class Database:
    """
    Central database coordinator.

    Attributes:
        db_path: Path to the SQLite file.
        timer: Query timing shared by all repositories.
    """

    def __init__(self, db_path: Path = DB_PATH, slow_query_threshold_ms: float = 100.0):
        self.db_path = db_path
        self.timer = QueryTimer(slow_query_threshold_ms)
        self._connection = ConnectionManager()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Open the connection and create the schema.

        Safe to call more than once.

        Raises:
            aiosqlite.Error: If the file cannot be opened or the schema cannot be created.
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return

        await self._connection.open(self.db_path)
        try:
            async with self._connection.transaction() as conn:
                await SchemaManager.initialize_schema(conn)
        except aiosqlite.Error:
            logger.exception("[DATABASE] Schema initialization failed for %s", self.db_path)
            await self._connection.close()
            raise

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)

    async def shutdown(self) -> None:
        """Close the connection; a no-op if never initialized."""
        if not self._initialized:
            return

        logger.debug("[DATABASE] Query timings:\n%s", self.timer.get_summary())
        await self._connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    def read(self) -> AbstractAsyncContextManager[aiosqlite.Connection]:
        """Async context manager yielding the connection for reads."""
        return self._connection.read()

    def transaction(self) -> AbstractAsyncContextManager[aiosqlite.Connection]:
        """Async context manager for an atomic, serialised write transaction."""
        return self._connection.transaction()

    def get_db_performance_stats(self) -> Dict[str, Dict[str, float]]:
        return self.timer.get_statistics()

    def reset_db_performance_stats(self) -> None:
        self.timer.reset()
