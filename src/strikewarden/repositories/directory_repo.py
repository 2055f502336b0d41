"""
Known groups and users.

The moderation pipeline records every sender here so analytics can show
names next to user ids; groups are registered when the bot joins them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import aiosqlite


@dataclass
class GroupRow:
    group_id: str
    title: str


@dataclass
class UserRow:
    user_id: str
    username: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]


class DirectoryRepo:
    """Low-level CRUD for the ``groups`` and ``users`` tables."""

    @staticmethod
    async def upsert_group(conn: aiosqlite.Connection, group_id: str, title: str) -> None:
        await conn.execute(
            """
            INSERT INTO groups (group_id, title) VALUES (?, ?)
            ON CONFLICT(group_id) DO UPDATE SET title = excluded.title
            """,
            (group_id, title),
        )

    @staticmethod
    async def delete_group(conn: aiosqlite.Connection, group_id: str) -> bool:
        cursor = await conn.execute("DELETE FROM groups WHERE group_id = ?", (group_id,))
        return cursor.rowcount > 0

    @staticmethod
    async def get_group(conn: aiosqlite.Connection, group_id: str) -> Optional[GroupRow]:
        cursor = await conn.execute("SELECT group_id, title FROM groups WHERE group_id = ?", (group_id,))
        row = await cursor.fetchone()
        return GroupRow(group_id=str(row[0]), title=row[1]) if row else None

    @staticmethod
    async def list_groups(conn: aiosqlite.Connection) -> List[GroupRow]:
        cursor = await conn.execute("SELECT group_id, title FROM groups ORDER BY title")
        return [GroupRow(group_id=str(row[0]), title=row[1]) for row in await cursor.fetchall()]

    @staticmethod
    async def upsert_user(
        conn: aiosqlite.Connection,
        user_id: str,
        username: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
    ) -> None:
        await conn.execute(
            """
            INSERT INTO users (user_id, username, first_name, last_name) VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                username   = excluded.username,
                first_name = excluded.first_name,
                last_name  = excluded.last_name
            """,
            (user_id, username, first_name, last_name),
        )

    @staticmethod
    async def get_users(conn: aiosqlite.Connection, user_ids: Iterable[str]) -> Dict[str, UserRow]:
        """Return the known users among ``user_ids`` keyed by id."""
        ids = list(dict.fromkeys(str(uid) for uid in user_ids))
        if not ids:
            return {}

        placeholders = ",".join("?" * len(ids))
        cursor = await conn.execute(
            f"SELECT user_id, username, first_name, last_name FROM users WHERE user_id IN ({placeholders})",
            ids,
        )
        return {
            str(row[0]): UserRow(user_id=str(row[0]), username=row[1], first_name=row[2], last_name=row[3])
            for row in await cursor.fetchall()
        }
