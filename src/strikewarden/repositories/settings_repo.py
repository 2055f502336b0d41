"""
Persistent per-group settings and keyword whitelist.

Setting values are stored as JSON text so numbers, booleans and lists keep
their type across a round trip.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

import aiosqlite

from strikewarden.util.logger import get_logger

logger = get_logger("settings_repo")


class SettingsRepo:
    """Low-level CRUD for the ``settings`` and ``keyword_whitelist`` tables."""

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, group_id: str, key: str, value: Any) -> None:
        await conn.execute(
            """
            INSERT INTO settings (group_id, key, value) VALUES (?, ?, ?)
            ON CONFLICT(group_id, key) DO UPDATE SET value = excluded.value
            """,
            (group_id, key, json.dumps(value)),
        )

    @staticmethod
    async def get_all(conn: aiosqlite.Connection, group_id: str) -> Dict[str, Any]:
        """Return every stored setting of a group.

        Values that are not valid JSON are returned as the raw string.
        """
        cursor = await conn.execute("SELECT key, value FROM settings WHERE group_id = ?", (group_id,))
        settings: Dict[str, Any] = {}
        for key, raw in await cursor.fetchall():
            try:
                settings[key] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("[SETTINGS] Non-JSON value for %s/%s, using raw text", group_id, key)
                settings[key] = raw
        return settings

    @staticmethod
    async def add_keyword(conn: aiosqlite.Connection, group_id: str, keyword: str) -> None:
        await conn.execute(
            "INSERT OR IGNORE INTO keyword_whitelist (group_id, keyword) VALUES (?, ?)",
            (group_id, keyword),
        )

    @staticmethod
    async def remove_keyword(conn: aiosqlite.Connection, group_id: str, keyword: str) -> bool:
        cursor = await conn.execute(
            "DELETE FROM keyword_whitelist WHERE group_id = ? AND keyword = ?",
            (group_id, keyword),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def list_keywords(conn: aiosqlite.Connection, group_id: str) -> List[str]:
        cursor = await conn.execute(
            "SELECT keyword FROM keyword_whitelist WHERE group_id = ? ORDER BY keyword",
            (group_id,),
        )
        return [row[0] for row in await cursor.fetchall()]
