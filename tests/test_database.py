"""
Tests for the database coordinator, connection manager and query timer.
"""

import asyncio
from datetime import timedelta

import aiosqlite
import pytest

from strikewarden.database.database import Database
from strikewarden.database.db_connection import ConnectionManager
from strikewarden.database.db_perf_mon import QueryTimer
from strikewarden.database.db_schema import SCHEMA_VERSION
from strikewarden.datatypes.audit_datatypes import ViolationPayload, ViolationType
from strikewarden.datatypes.chat_datatypes import GroupID, UserID
from strikewarden.util.time_utils import utcnow


class TestInitDatabase:

    @pytest.mark.asyncio
    async def test_init_creates_tables(self, db):
        async with db.read() as conn:
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            tables = {row[0] for row in await cursor.fetchall()}

        assert {"groups", "users", "strikes", "audit_log", "settings", "keyword_whitelist",
                "schema_version"} <= tables

    @pytest.mark.asyncio
    async def test_init_sets_schema_version(self, db):
        async with db.read() as conn:
            cursor = await conn.execute("SELECT MAX(version) FROM schema_version")
            row = await cursor.fetchone()
        assert row[0] == SCHEMA_VERSION

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, db):
        await db.initialize()
        assert db.initialized is True

    @pytest.mark.asyncio
    async def test_reopen_keeps_data(self, tmp_path):
        path = tmp_path / "reopen.db"
        first = Database(path)
        await first.initialize()
        async with first.transaction() as conn:
            await conn.execute("INSERT INTO groups (group_id, title) VALUES ('-1', 'Kept')")
        await first.shutdown()

        second = Database(path)
        await second.initialize()
        async with second.read() as conn:
            cursor = await conn.execute("SELECT title FROM groups WHERE group_id = '-1'")
            row = await cursor.fetchone()
        await second.shutdown()
        assert row[0] == "Kept"

    @pytest.mark.asyncio
    async def test_shutdown_without_initialize(self, tmp_path):
        database = Database(tmp_path / "never.db")
        await database.shutdown()
        assert database.initialized is False


class TestTransactions:

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self, db):
        with pytest.raises(RuntimeError):
            async with db.transaction() as conn:
                await conn.execute("INSERT INTO groups (group_id, title) VALUES ('-2', 'Gone')")
                raise RuntimeError("abort")

        async with db.read() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM groups")
            row = await cursor.fetchone()
        assert row[0] == 0

    @pytest.mark.asyncio
    async def test_negative_strike_count_rejected(self, db):
        with pytest.raises(aiosqlite.IntegrityError):
            async with db.transaction() as conn:
                await conn.execute("INSERT INTO strikes (group_id, user_id, count) VALUES ('-1', '1', -1)")

    def test_connection_requires_open(self):
        with pytest.raises(RuntimeError):
            ConnectionManager().connection

    def test_read_requires_open(self):
        async def use_reader():
            async with ConnectionManager().read():
                pass

        with pytest.raises(RuntimeError):
            asyncio.run(use_reader())

    @pytest.mark.asyncio
    async def test_reads_do_not_see_open_write_block(self, db, services):
        group, user = GroupID("-1"), UserID("1")
        inserted, release = asyncio.Event(), asyncio.Event()

        async def failing_writer():
            async with db.transaction() as conn:
                await services.audit_log.append(
                    group, user, ViolationPayload(violation_type=ViolationType.SPAM), conn=conn
                )
                inserted.set()
                await release.wait()
                raise RuntimeError("abort")

        writer = asyncio.create_task(failing_writer())
        await inserted.wait()
        now = utcnow()
        stats = await services.analytics.get_group_stats(group, now - timedelta(hours=1), now + timedelta(hours=1))
        page = await services.audit_log.query(group)
        release.set()
        with pytest.raises(RuntimeError):
            await writer

        assert stats.flagged.total == 0
        assert page.total == 0
        assert (await services.audit_log.query(group)).total == 0

    @pytest.mark.asyncio
    async def test_reads_see_committed_write_block(self, db, services):
        group, user = GroupID("-1"), UserID("1")
        async with db.transaction() as conn:
            await services.audit_log.append(
                group, user, ViolationPayload(violation_type=ViolationType.SPAM), conn=conn
            )
        assert (await services.audit_log.query(group)).total == 1


class TestPerformanceMonitoring:

    @pytest.mark.asyncio
    async def test_ledger_operations_are_timed(self, db, services):
        db.reset_db_performance_stats()

        await services.ledger.record_strike(
            GroupID("-1"), UserID("1"), ViolationPayload(violation_type=ViolationType.SPAM)
        )

        stats = db.get_db_performance_stats()
        assert stats["strike_ledger.record_strike"]["count"] == 1
        assert stats["audit_log.append"]["count"] == 1
        assert stats["strike_ledger.record_strike"]["total_time"] > 0

    def test_timer_statistics(self):
        timer = QueryTimer(slow_query_threshold_ms=1000)
        timer.track("query", 0.002)
        timer.track("query", 0.004)

        stats = timer.get_statistics()["query"]
        assert stats["count"] == 2
        assert stats["avg_time"] == pytest.approx(0.003)
        assert stats["min_time"] == pytest.approx(0.002)
        assert stats["max_time"] == pytest.approx(0.004)
        assert timer.get_summary().startswith("query: 2 calls, avg 3.00ms")

    def test_timer_records_failed_blocks(self):
        timer = QueryTimer()
        with pytest.raises(ValueError):
            with timer.measure("failing"):
                raise ValueError("boom")
        assert timer.get_statistics()["failing"]["count"] == 1

    def test_empty_summary(self):
        assert QueryTimer().get_summary() == "No queries tracked yet"
