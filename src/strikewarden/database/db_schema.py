"""
Schema for the strike ledger, audit log, group settings and user directory.

Column names match the store of earlier bot versions so existing
``audit_log`` rows, legacy flat payloads included, can be copied in unchanged.
Every statement is idempotent; :meth:`SchemaManager.initialize_schema` runs on
each startup.
"""

from typing import Tuple

import aiosqlite

from strikewarden.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 3

TABLES: Tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS groups (
        group_id TEXT PRIMARY KEY,
        title TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        username TEXT,
        first_name TEXT,
        last_name TEXT
    )
    """,
    # one counter per (group, user); zeroed, never deleted
    """
    CREATE TABLE IF NOT EXISTS strikes (
        group_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        count INTEGER NOT NULL DEFAULT 0 CHECK (count >= 0),
        timestamp TEXT,
        PRIMARY KEY (group_id, user_id)
    )
    """,
    # log_data holds the JSON payload
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        group_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        log_data TEXT NOT NULL
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS audit_log_no_update
    BEFORE UPDATE ON audit_log
    BEGIN
        SELECT RAISE(ABORT, 'audit_log rows are immutable');
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS settings (
        group_id TEXT NOT NULL,
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        PRIMARY KEY (group_id, key)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS keyword_whitelist (
        group_id TEXT NOT NULL,
        keyword TEXT NOT NULL COLLATE NOCASE,
        PRIMARY KEY (group_id, keyword)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
)

INDEXES: Tuple[str, ...] = (
    "CREATE INDEX IF NOT EXISTS idx_audit_log_group_time ON audit_log(group_id, timestamp DESC)",
    "CREATE INDEX IF NOT EXISTS idx_audit_log_group_user ON audit_log(group_id, user_id, timestamp DESC)",
    "CREATE INDEX IF NOT EXISTS idx_strikes_timestamp ON strikes(timestamp)",
)


class SchemaManager:
    """Creates and versions the database schema."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create missing tables, triggers and indexes and record the version.

        Args:
            db: Connection inside an open write transaction.
        """
        for statement in TABLES + INDEXES:
            await db.execute(statement)
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        logger.info("[SCHEMA] Schema ready (version %d)", SCHEMA_VERSION)
