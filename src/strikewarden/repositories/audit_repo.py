"""
Persistent storage for the append-only ``audit_log`` table.

Rows are only ever inserted (an ``UPDATE`` trigger aborts any modification).
The payload is kept as opaque JSON text in ``log_data``; filters that need a
payload field go through ``json_extract`` guarded by ``json_valid`` so a
malformed row never breaks a query.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

import aiosqlite

from strikewarden.datatypes.audit_datatypes import AuditFilter, EventType
from strikewarden.util.time_utils import to_storage

# Payload type, NULL for malformed JSON or a missing field
PAYLOAD_TYPE_SQL = "CASE WHEN json_valid(log_data) THEN json_extract(log_data, '$.type') END"

_COLUMNS = "id, timestamp, group_id, user_id, log_data"


@dataclass
class AuditLogRow:
    """A raw ``audit_log`` row with its undecoded payload."""
    id: int
    timestamp: str
    group_id: str
    user_id: str
    log_data: str


def _to_rows(rows: Sequence[Any]) -> List[AuditLogRow]:
    return [
        AuditLogRow(id=row[0], timestamp=row[1], group_id=str(row[2]), user_id=str(row[3]), log_data=row[4])
        for row in rows
    ]


def build_where(audit_filter: AuditFilter) -> Tuple[str, List[Any]]:
    """Translate an AuditFilter into a WHERE clause and its parameters.

    ``event_type == "AUTO"`` selects every row whose payload type is absent or
    does not start with ``MANUAL``; any other type is matched exactly.
    """
    conditions = ["group_id = ?"]
    params: List[Any] = [str(audit_filter.group_id)]

    if audit_filter.user_id:
        conditions.append("user_id = ?")
        params.append(str(audit_filter.user_id))

    if audit_filter.event_type:
        if audit_filter.event_type == EventType.AUTO.value:
            conditions.append(f"(({PAYLOAD_TYPE_SQL}) IS NULL OR ({PAYLOAD_TYPE_SQL}) NOT LIKE 'MANUAL%')")
        else:
            conditions.append(f"({PAYLOAD_TYPE_SQL}) = ?")
            params.append(audit_filter.event_type)

    if audit_filter.start is not None:
        conditions.append("timestamp >= ?")
        params.append(to_storage(audit_filter.start))

    if audit_filter.end is not None:
        conditions.append("timestamp <= ?")
        params.append(to_storage(audit_filter.end))

    return " AND ".join(conditions), params


class AuditRepo:
    """Low-level SQL for the ``audit_log`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        timestamp: str,
        group_id: str,
        user_id: str,
        log_data: str,
    ) -> int:
        """Append one row and return its id."""
        cursor = await conn.execute(
            "INSERT INTO audit_log (timestamp, group_id, user_id, log_data) VALUES (?, ?, ?, ?)",
            (timestamp, group_id, user_id, log_data),
        )
        return int(cursor.lastrowid)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, event_id: int) -> Optional[AuditLogRow]:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM audit_log WHERE id = ?", (event_id,))
        row = await cursor.fetchone()
        return _to_rows([row])[0] if row else None

    @staticmethod
    async def count(conn: aiosqlite.Connection, audit_filter: AuditFilter) -> int:
        where, params = build_where(audit_filter)
        cursor = await conn.execute(f"SELECT COUNT(*) FROM audit_log WHERE {where}", params)
        row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @staticmethod
    async def select(
        conn: aiosqlite.Connection,
        audit_filter: AuditFilter,
        limit: int,
        offset: int = 0,
    ) -> List[AuditLogRow]:
        """Rows matching the filter, newest first."""
        where, params = build_where(audit_filter)
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM audit_log WHERE {where} "
            "ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        )
        return _to_rows(await cursor.fetchall())

    @staticmethod
    async def select_window(
        conn: aiosqlite.Connection,
        group_id: str,
        start: str,
        end: str,
    ) -> List[AuditLogRow]:
        """All rows of a group with ``start <= timestamp <= end``, oldest first."""
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM audit_log "
            "WHERE group_id = ? AND timestamp BETWEEN ? AND ? "
            "ORDER BY timestamp ASC, id ASC",
            (group_id, start, end),
        )
        return _to_rows(await cursor.fetchall())

    @staticmethod
    async def select_deletion_candidates(conn: aiosqlite.Connection) -> List[AuditLogRow]:
        """Rows across all groups that can represent a message deletion.

        Covers enhanced ``VIOLATION`` rows and legacy rows (type ``AUTO`` or
        absent). Malformed rows are included so callers can count them as
        decode failures.
        """
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM audit_log "
            f"WHERE ({PAYLOAD_TYPE_SQL}) IS NULL OR ({PAYLOAD_TYPE_SQL}) IN (?, ?)",
            (EventType.VIOLATION.value, EventType.AUTO.value),
        )
        return _to_rows(await cursor.fetchall())

    @staticmethod
    async def group_ids(conn: aiosqlite.Connection) -> List[str]:
        cursor = await conn.execute("SELECT DISTINCT group_id FROM audit_log")
        return [str(row[0]) for row in await cursor.fetchall()]
