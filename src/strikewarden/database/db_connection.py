"""
Access to the strikewarden SQLite file through two long-lived connections.

The writer connection runs in autocommit mode and every write block issues its
own ``BEGIN IMMEDIATE`` / ``COMMIT``, so a strike counter update and the audit
row that explains it either both land or neither does. Writers queue on an
``asyncio.Lock`` instead of SQLite's busy timeout.

Reads go through a second, query-only connection. In WAL mode that connection
only ever sees committed data, so a read running while a write block is open
never observes rows the block may still roll back.

Example::

    manager = ConnectionManager()
    await manager.open(Path("data/strikewarden.db"))

    async with manager.transaction() as conn:
        await conn.execute("UPDATE strikes SET count = count + 1 WHERE ...")
        await conn.execute("INSERT INTO audit_log ...")

    async with manager.read() as conn:
        cursor = await conn.execute("SELECT count FROM strikes WHERE ...")

    await manager.close()
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict

import aiosqlite

from strikewarden.util.logger import get_logger

logger = get_logger("database_connection")

# Applied in order right after connecting
SQLITE_PRAGMAS: Dict[str, str] = {
    "journal_mode": "WAL",
    "synchronous": "NORMAL",
    "foreign_keys": "ON",
    "temp_store": "MEMORY",
    "busy_timeout": "5000",
}

READER_PRAGMAS: Dict[str, str] = {
    "query_only": "ON",
    "temp_store": "MEMORY",
    "busy_timeout": "5000",
}


async def _connect(path: Path, pragmas: Dict[str, str]) -> aiosqlite.Connection:
    conn = await aiosqlite.connect(path, isolation_level=None)
    conn.row_factory = aiosqlite.Row
    try:
        for name, value in pragmas.items():
            await conn.execute(f"PRAGMA {name} = {value}")
    except aiosqlite.Error:
        await conn.close()
        raise
    return conn


class ConnectionManager:
    """Owns the writer and reader connections and the writer lock."""

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._reader: aiosqlite.Connection | None = None
        self._writer_lock = asyncio.Lock()
        self._path: Path | None = None
        self._transactions = 0

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, path: Path) -> None:
        """
        Connect to ``path`` (creating parent directories) and apply the pragmas.

        Opening an already open manager logs a warning and keeps the existing
        connections.
        """
        if self._conn is not None:
            logger.warning("[DB CONNECTION] Already connected to %s, not reopening", self._path)
            return

        path.parent.mkdir(parents=True, exist_ok=True)
        writer = await _connect(path, SQLITE_PRAGMAS)
        try:
            reader = await _connect(path, READER_PRAGMAS)
        except aiosqlite.Error:
            await writer.close()
            raise

        self._conn, self._reader, self._path, self._transactions = writer, reader, path, 0
        logger.info("[DB CONNECTION] Connected to %s", path)

    async def close(self) -> None:
        """Close the reader, checkpoint the WAL into the main file and disconnect."""
        reader, self._reader = self._reader, None
        if reader is not None:
            await reader.close()

        conn, self._conn = self._conn, None
        if conn is None:
            return

        try:
            await conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        except aiosqlite.Error as exc:
            logger.error("[DB CONNECTION] WAL checkpoint on close failed: %s", exc)
        finally:
            await conn.close()
            logger.info("[DB CONNECTION] Disconnected from %s after %d transactions", self._path, self._transactions)

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The writer connection.

        Raises:
            RuntimeError: ``open()`` has not been awaited yet.
        """
        if self._conn is None:
            raise RuntimeError("No database connection; await Database.initialize() first")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Exclusive write block.

        Commits when the block exits normally. Any exception, cancellation
        included, rolls the whole block back and is re-raised unchanged.
        """
        conn = self.connection
        async with self._writer_lock:
            await conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            await conn.execute("COMMIT")
            self._transactions += 1

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Query-only connection that sees committed data only."""
        if self._reader is None:
            raise RuntimeError("No database connection; await Database.initialize() first")
        yield self._reader
