"""
strikewarden command line
=========================

Administrative entry point over a configured strikewarden database: create the
schema, inspect or change strike counts, export the audit log and print
analytics.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Optional, Sequence

from dotenv import load_dotenv

from strikewarden.analytics.analytics_engine import AnalyticsEngine
from strikewarden.configuration.app_configuration import AppConfig
from strikewarden.configuration.group_settings import GroupSettingsService
from strikewarden.database.database import Database
from strikewarden.datatypes.chat_datatypes import to_group_id, to_user_id
from strikewarden.moderation.audit_log import AuditLog
from strikewarden.moderation.strike_ledger import StrikeLedger
from strikewarden.util.errors import ModerationError
from strikewarden.util.logger import get_logger, handle_exception
from strikewarden.util.time_utils import parse_timestamp, utcnow

logger = get_logger("main")

DEFAULT_STATS_DAYS = 7


@dataclass
class Services:
    """The moderation core wired to one database."""

    database: Database
    settings: GroupSettingsService
    audit_log: AuditLog
    ledger: StrikeLedger
    analytics: AnalyticsEngine


def create_services(database: Database, config: AppConfig) -> Services:
    settings = GroupSettingsService(database, config)
    audit_log = AuditLog(database, config)
    return Services(
        database=database,
        settings=settings,
        audit_log=audit_log,
        ledger=StrikeLedger(database, audit_log, settings),
        analytics=AnalyticsEngine(database, config),
    )


def _timestamp_arg(value: str) -> datetime:
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 date/time: {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="strikewarden", description="Strike ledger and audit log administration")
    parser.add_argument("--config", type=Path, default=None, help="Path to app_config.yml")
    parser.add_argument("--db", type=Path, default=None, help="Database file (overrides config and environment)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the database schema")

    strikes = sub.add_parser("strikes", help="Show or change a user's strikes")
    strikes.add_argument("group_id")
    strikes.add_argument("user_id")
    change = strikes.add_mutually_exclusive_group()
    change.add_argument("--add", type=int, metavar="N")
    change.add_argument("--remove", type=int, metavar="N")
    change.add_argument("--set", type=int, metavar="N", dest="set_count")
    change.add_argument("--history", action="store_true", help="Show the user's audit history")
    strikes.add_argument("--reason", default="Changed from command line")

    export = sub.add_parser("export", help="Export the audit log of a group")
    export.add_argument("group_id")
    export.add_argument("--format", choices=["csv", "json"], default="csv", dest="fmt")
    export.add_argument("--user", dest="user_id")
    export.add_argument("--type", dest="event_type")
    export.add_argument("--start", type=_timestamp_arg)
    export.add_argument("--end", type=_timestamp_arg)
    export.add_argument("--output", type=Path, help="Write to this file instead of the default filename")

    for name, help_text in (
        ("stats", "Group statistics"),
        ("activity", "Per-user activity"),
        ("patterns", "Hourly and daily activity"),
        ("effectiveness", "Moderation effectiveness"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("group_id")
        cmd.add_argument("--start", type=_timestamp_arg)
        cmd.add_argument("--end", type=_timestamp_arg)
        if name == "activity":
            cmd.add_argument("--limit", type=int, default=20)

    top = sub.add_parser("top-groups", help="Groups ranked by deleted messages")
    top.add_argument("--limit", type=int, default=5)

    return parser


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def _window(args: argparse.Namespace) -> tuple[datetime, datetime]:
    end = args.end or utcnow()
    start = args.start or end - timedelta(days=DEFAULT_STATS_DAYS)
    return start, end


async def run_command(args: argparse.Namespace, services: Services) -> int:
    """Execute a parsed sub-command against initialized services."""
    if args.command == "init":
        active = await services.ledger.total_active_strikes()
        logger.info("Database ready at %s (%d active strikes)", services.database.db_path, active)
        return 0

    if args.command == "strikes":
        group_id, user_id = to_group_id(args.group_id), to_user_id(args.user_id)
        if args.history:
            rows = await services.ledger.get_strike_history(group_id, user_id)
            _print_json([row.to_dict() for row in rows])
            return 0
        if args.add is not None:
            change = await services.ledger.add_strikes(group_id, user_id, args.add, reason=args.reason)
        elif args.remove is not None:
            change = await services.ledger.remove_strike(group_id, user_id, args.remove, reason=args.reason)
        elif args.set_count is not None:
            change = await services.ledger.set_strikes(group_id, user_id, args.set_count, reason=args.reason)
        else:
            record = await services.ledger.get_strikes(group_id, user_id)
            _print_json(record.to_dict())
            return 0
        _print_json({"previousCount": change.previous_count, "newCount": change.new_count})
        return 0

    if args.command == "export":
        result = await services.audit_log.export(
            to_group_id(args.group_id),
            user_id=to_user_id(args.user_id) if args.user_id else None,
            event_type=args.event_type,
            start=args.start,
            end=args.end,
            fmt=args.fmt,
        )
        target = args.output or Path(result.filename)
        target.write_text(result.content, encoding="utf-8")
        logger.info("Wrote %d rows to %s", result.row_count, target)
        return 0

    if args.command == "stats":
        start, end = _window(args)
        stats = await services.analytics.get_group_stats(to_group_id(args.group_id), start, end)
        _print_json(stats.to_dict())
        return 0

    if args.command == "activity":
        start, end = _window(args)
        activity = await services.analytics.get_user_activity_stats(
            to_group_id(args.group_id), start, end, limit=args.limit
        )
        _print_json([entry.to_dict() for entry in activity])
        return 0

    if args.command == "patterns":
        start, end = _window(args)
        patterns = await services.analytics.get_activity_patterns(to_group_id(args.group_id), start, end)
        _print_json(patterns.to_dict())
        return 0

    if args.command == "effectiveness":
        start, end = _window(args)
        result = await services.analytics.get_moderation_effectiveness(to_group_id(args.group_id), start, end)
        _print_json(result.to_dict())
        return 0

    if args.command == "top-groups":
        groups = await services.analytics.get_top_groups_by_deletions(args.limit)
        _print_json([entry.to_dict() for entry in groups])
        return 0

    logger.error("Unknown command %s", args.command)
    return 2


async def async_main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse ``argv``, open the database, run the command and shut down.

    Returns
    -------
    int
        Process exit code: 0 on success, 1 on a moderation or storage error.
    """
    load_dotenv()
    args = build_parser().parse_args(argv)

    config = AppConfig(args.config) if args.config else AppConfig()
    db_path = args.db.resolve() if args.db else config.database_path
    database = Database(db_path, config.slow_query_threshold_ms)

    try:
        await database.initialize()
    except Exception as exc:
        logger.critical("Failed to initialize database %s: %s", db_path, exc)
        return 1

    try:
        return await run_command(args, create_services(database, config))
    except ModerationError as exc:
        logger.error("%s: %s", exc.code, exc.message)
        return 1
    finally:
        await database.shutdown()


def main() -> int:
    """Console-script entry point."""
    sys.excepthook = handle_exception
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
