"""
Persistent storage for per-(group, user) strike counters.

Rows are zeroed, never deleted. Timestamps are stored in the fixed-width UTC
format of :func:`strikewarden.util.time_utils.to_storage`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import aiosqlite

from strikewarden.util.logger import get_logger

logger = get_logger("strike_repo")


@dataclass
class StrikeRow:
    """A single row from the ``strikes`` table."""
    group_id: str
    user_id: str
    count: int
    timestamp: Optional[str]


class StrikeRepo:
    """Low-level CRUD for the ``strikes`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def increment(
        conn: aiosqlite.Connection,
        group_id: str,
        user_id: str,
        amount: int,
        timestamp: str,
    ) -> None:
        """Add ``amount`` to the counter (creating the row) and stamp it."""
        await conn.execute(
            """
            INSERT INTO strikes (group_id, user_id, count, timestamp)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(group_id, user_id) DO UPDATE SET
                count     = count + excluded.count,
                timestamp = excluded.timestamp
            """,
            (group_id, user_id, amount, timestamp),
        )

    @staticmethod
    async def set_count(
        conn: aiosqlite.Connection,
        group_id: str,
        user_id: str,
        count: int,
        timestamp: Optional[str],
    ) -> None:
        """Overwrite counter and timestamp (creating the row)."""
        await conn.execute(
            """
            INSERT INTO strikes (group_id, user_id, count, timestamp)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(group_id, user_id) DO UPDATE SET
                count     = excluded.count,
                timestamp = excluded.timestamp
            """,
            (group_id, user_id, count, timestamp),
        )

    @staticmethod
    async def reset(conn: aiosqlite.Connection, group_id: str, user_id: str) -> None:
        """Zero the counter and clear the timestamp."""
        await conn.execute(
            "UPDATE strikes SET count = 0, timestamp = NULL WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )

    @staticmethod
    async def expire_before(
        conn: aiosqlite.Connection,
        group_id: str,
        user_id: str,
        cutoff: str,
    ) -> bool:
        """Zero the row if its last strike is older than ``cutoff``.

        Returns:
            True if a row was reset.
        """
        cursor = await conn.execute(
            """
            UPDATE strikes SET count = 0, timestamp = NULL
            WHERE group_id = ? AND user_id = ? AND timestamp IS NOT NULL AND timestamp < ?
            """,
            (group_id, user_id, cutoff),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, group_id: str, user_id: str) -> Optional[StrikeRow]:
        """Return the row for ``(group_id, user_id)`` or None."""
        cursor = await conn.execute(
            "SELECT group_id, user_id, count, timestamp FROM strikes WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return StrikeRow(group_id=row[0], user_id=row[1], count=row[2], timestamp=row[3])

    @staticmethod
    async def total_active(conn: aiosqlite.Connection) -> int:
        """Sum of all positive counters across groups."""
        cursor = await conn.execute("SELECT COALESCE(SUM(count), 0) FROM strikes WHERE count > 0")
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
