"""Tests for the strikewarden command line."""

import json

import pytest

from strikewarden.database.database import Database
from strikewarden.datatypes.chat_datatypes import GroupID, UserID
from strikewarden.main import async_main, build_parser
from strikewarden.moderation.audit_export import CSV_HEADER

GROUP = "-1001234567890"
USER = "123456789"


@pytest.fixture
def cli_args(tmp_path):
    """Global options pointing the CLI at a temporary database and default config."""
    return ["--config", str(tmp_path / "missing.yml"), "--db", str(tmp_path / "cli.db")]


async def strike_count(tmp_path) -> int:
    database = Database(tmp_path / "cli.db")
    await database.initialize()
    try:
        async with database.read() as conn:
            cursor = await conn.execute(
                "SELECT count FROM strikes WHERE group_id = ? AND user_id = ?", (GroupID(GROUP), UserID(USER))
            )
            row = await cursor.fetchone()
    finally:
        await database.shutdown()
    return row[0] if row else 0


def test_parser_strike_options():
    args = build_parser().parse_args(["strikes", GROUP, USER, "--set", "4", "--reason", "Appeal"])
    assert args.command == "strikes"
    assert args.set_count == 4
    assert args.reason == "Appeal"


def test_parser_rejects_bad_timestamp():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["stats", GROUP, "--start", "last tuesday"])


def test_parser_mutually_exclusive_changes():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["strikes", GROUP, USER, "--add", "1", "--remove", "1"])


@pytest.mark.asyncio
async def test_init_creates_database(cli_args, tmp_path):
    assert await async_main([*cli_args, "init"]) == 0
    assert (tmp_path / "cli.db").exists()


@pytest.mark.asyncio
async def test_strike_changes(cli_args, tmp_path):
    assert await async_main([*cli_args, "strikes", GROUP, USER, "--add", "3"]) == 0
    assert await async_main([*cli_args, "strikes", GROUP, USER, "--remove", "1"]) == 0
    assert await strike_count(tmp_path) == 2

    assert await async_main([*cli_args, "strikes", GROUP, USER, "--set", "0"]) == 0
    assert await strike_count(tmp_path) == 0


@pytest.mark.asyncio
async def test_validation_error_exit_code(cli_args, tmp_path):
    assert await async_main([*cli_args, "strikes", GROUP, USER, "--add", "0"]) == 1
    assert await strike_count(tmp_path) == 0


@pytest.mark.asyncio
async def test_export_writes_file(cli_args, tmp_path):
    await async_main([*cli_args, "strikes", GROUP, USER, "--add", "2", "--reason", "Spam, again"])
    target = tmp_path / "export.csv"

    assert await async_main([*cli_args, "export", GROUP, "--output", str(target)]) == 0

    lines = target.read_text(encoding="utf-8").splitlines()
    assert lines[0] == ",".join(CSV_HEADER)
    assert '"Spam, again"' in lines[1]


@pytest.mark.asyncio
async def test_export_json_with_type_filter(cli_args, tmp_path):
    await async_main([*cli_args, "strikes", GROUP, USER, "--add", "2"])
    await async_main([*cli_args, "strikes", GROUP, USER, "--remove", "1"])
    target = tmp_path / "export.json"

    await async_main([*cli_args, "export", GROUP, "--format", "json", "--type", "MANUAL-STRIKE-REMOVE",
                      "--output", str(target)])

    records = json.loads(target.read_text(encoding="utf-8"))
    assert [r["action"] for r in records] == ["Removed 1 strike(s)"]


@pytest.mark.asyncio
async def test_analytics_commands(cli_args):
    assert await async_main([*cli_args, "stats", GROUP]) == 0
    assert await async_main([*cli_args, "activity", GROUP, "--limit", "5"]) == 0
    assert await async_main([*cli_args, "patterns", GROUP]) == 0
    assert await async_main([*cli_args, "effectiveness", GROUP, "--start", "2025-08-01T00:00:00Z"]) == 0
    assert await async_main([*cli_args, "top-groups", "--limit", "3"]) == 0
    assert await async_main([*cli_args, "top-groups", "--limit", "0"]) == 1
