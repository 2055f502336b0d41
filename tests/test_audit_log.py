"""Tests for the audit log: queries, filters, exports and malformed rows."""

import json
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

from strikewarden.datatypes.audit_datatypes import (
    EventType,
    LegacyAutoPayload,
    ManualStrikePayload,
    ScannedPayload,
)
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID
from strikewarden.moderation.audit_export import CSV_HEADER, export_filename
from strikewarden.repositories.audit_repo import AuditRepo
from strikewarden.util.errors import NotFoundError, ValidationError
from strikewarden.util.time_utils import to_storage

GROUP = GroupID("-1001234567890")
USER = UserID("123456789")
OTHER_USER = UserID("987654321")
ADMIN = ChatUser(id=UserID("42"), first_name="Alice", username="alice_admin")
BASE = datetime(2025, 8, 1, 10, 0, tzinfo=timezone.utc)


def scan(score: float = 0.1) -> ScannedPayload:
    return ScannedPayload(user=ChatUser(id=USER), message_excerpt="hello there", spam_score=score)


async def insert_raw(db, log_data: str, minutes: int = 0, user_id: str = USER) -> int:
    async with db.transaction() as conn:
        return await AuditRepo.insert(conn, to_storage(BASE + timedelta(minutes=minutes)), GROUP, user_id, log_data)


class TestQuery:
    """Paginated, filtered reads."""

    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, services):
        for i in range(5):
            await services.audit_log.append(GROUP, USER, scan(i / 10), BASE + timedelta(minutes=i))

        page = await services.audit_log.query(GROUP, page=1, limit=2)
        assert page.total == 5
        assert page.total_pages == 3
        assert page.has_next is True
        assert page.has_prev is False
        assert [row.details["spamScore"] for row in page.rows] == [0.4, 0.3]

        last = await services.audit_log.query(GROUP, page=3, limit=2)
        assert len(last.rows) == 1
        assert last.has_next is False
        assert last.has_prev is True

        body = last.to_dict()
        assert body["pagination"] == {
            "page": 3, "limit": 2, "total": 5, "totalPages": 3, "hasNext": False, "hasPrev": True,
        }

    @pytest.mark.asyncio
    async def test_default_and_clamped_limit(self, services):
        assert (await services.audit_log.query(GROUP)).limit == 50
        assert (await services.audit_log.query(GROUP, limit=500)).limit == 200

    @pytest.mark.asyncio
    async def test_clamped_limit_pages_over_large_log(self, db, services):
        for i in range(205):
            await insert_raw(db, json.dumps({"type": "SCANNED", "spamScore": 0.1}), minutes=i)

        first = await services.audit_log.query(GROUP, limit=500)
        assert (first.limit, first.total, first.total_pages) == (200, 205, 2)
        assert len(first.rows) == 200
        assert first.has_next is True
        assert first.has_prev is False

        second = await services.audit_log.query(GROUP, page=2, limit=500)
        assert len(second.rows) == 5
        assert second.has_next is False
        assert second.has_prev is True

    @pytest.mark.asyncio
    async def test_invalid_paging_rejected(self, services):
        with pytest.raises(ValidationError):
            await services.audit_log.query(GROUP, page=0)
        with pytest.raises(ValidationError):
            await services.audit_log.query(GROUP, limit=0)

    @pytest.mark.asyncio
    async def test_empty_group(self, services):
        page = await services.audit_log.query(GroupID("-100555"))
        assert page.total == 0
        assert page.rows == []
        assert page.total_pages == 0

    @pytest.mark.asyncio
    async def test_auto_filter_excludes_manual_events(self, db, services):
        await services.audit_log.append(GROUP, USER, LegacyAutoPayload(classification_score=0.9))
        await services.audit_log.append(GROUP, USER, LegacyAutoPayload(type_tag=None))
        await services.audit_log.append(GROUP, USER, scan())
        await services.audit_log.append(
            GROUP, USER, ManualStrikePayload(kind=EventType.MANUAL_STRIKE_ADD, amount=1, admin=ADMIN)
        )

        assert (await services.audit_log.query(GROUP, event_type="AUTO")).total == 3
        manual = await services.audit_log.query(GROUP, event_type="MANUAL-STRIKE-ADD")
        assert manual.total == 1
        assert manual.rows[0].type == "MANUAL-STRIKE-ADD"
        assert (await services.audit_log.query(GROUP, event_type="SCANNED")).total == 1

    @pytest.mark.asyncio
    async def test_user_and_time_filters(self, services):
        await services.audit_log.append(GROUP, USER, scan(), BASE)
        await services.audit_log.append(GROUP, OTHER_USER, scan(), BASE + timedelta(hours=1))
        await services.audit_log.append(GROUP, USER, scan(), BASE + timedelta(hours=2))

        assert (await services.audit_log.query(GROUP, user_id=USER)).total == 2
        window = await services.audit_log.query(
            GROUP, start=BASE + timedelta(minutes=30), end=BASE + timedelta(hours=2)
        )
        assert window.total == 2
        assert window.filters.to_dict()["startDate"] == (BASE + timedelta(minutes=30)).isoformat()

    @pytest.mark.asyncio
    async def test_malformed_row_becomes_unknown(self, db, services):
        await services.audit_log.append(GROUP, USER, scan(), BASE)
        await insert_raw(db, "{not json", minutes=1)
        await insert_raw(db, json.dumps({"type": "SOMETHING-NEW"}), minutes=2)

        page = await services.audit_log.query(GROUP)
        assert page.total == 3
        assert [row.type for row in page.rows] == ["UNKNOWN", "UNKNOWN", "SCANNED"]
        assert page.rows[0].action == "Parse error"
        assert page.rows[0].details == {"error": "Failed to parse log data"}
        assert page.rows[2].action == "Message analyzed"


class TestEvents:

    @pytest.mark.asyncio
    async def test_get_event(self, services):
        payload = scan(0.33)
        appended = await services.audit_log.append(GROUP, USER, payload, BASE)

        event = await services.audit_log.get_event(appended.id)
        assert event.payload == payload
        assert event.timestamp == BASE
        assert event.event_type is EventType.SCANNED

    @pytest.mark.asyncio
    async def test_get_missing_event(self, services):
        with pytest.raises(NotFoundError):
            await services.audit_log.get_event(9999)

    @pytest.mark.asyncio
    async def test_rows_are_immutable(self, db, services):
        await services.audit_log.append(GROUP, USER, scan())
        with pytest.raises(aiosqlite.Error):
            async with db.transaction() as conn:
                await conn.execute("UPDATE audit_log SET log_data = '{}'")

        page = await services.audit_log.query(GROUP)
        assert page.rows[0].type == "SCANNED"


class TestExport:
    """CSV and JSON exports."""

    @pytest.mark.asyncio
    async def test_csv_quotes_embedded_characters(self, services):
        await services.audit_log.append(
            GROUP, USER,
            LegacyAutoPayload(reason='Message with "quotes" and, commas', classification_score=0.9),
            BASE,
        )

        result = await services.audit_log.export(GROUP, fmt="csv")

        assert result.media_type == "text/csv"
        assert result.row_count == 1
        lines = result.content.split("\r\n")
        assert lines[0] == ",".join(CSV_HEADER)
        assert '"Message with ""quotes"" and, commas"' in lines[1]
        assert ",AUTO,Auto-strike," in lines[1]

    @pytest.mark.asyncio
    async def test_csv_parse_error_row(self, db, services):
        event_id = await insert_raw(db, "[1, 2, 3]")

        result = await services.audit_log.export(GROUP, fmt="csv")

        expected = f"{event_id},{to_storage(BASE)},{GROUP},{USER},UNKNOWN,Parse error,,Failed to parse log data,,,,,,,"
        assert result.content.split("\r\n")[1] == expected

    @pytest.mark.asyncio
    async def test_json_flattens_admin(self, services):
        await services.ledger.add_strikes(GROUP, USER, 2, admin=ADMIN, reason="Manual review")

        result = await services.audit_log.export(GROUP, fmt="json")

        assert result.media_type == "application/json"
        records = json.loads(result.content)
        assert len(records) == 1
        record = records[0]
        assert record["type"] == "MANUAL-STRIKE-ADD"
        assert record["action"] == "Added 2 strike(s)"
        assert record["amount"] == 2
        assert record["reason"] == "Manual review"
        assert record["adminId"] == "42"
        assert record["adminName"] == "Alice"
        assert record["adminUsername"] == "alice_admin"
        assert record["chatId"] == GROUP

    @pytest.mark.asyncio
    async def test_json_parse_error_record(self, db, services):
        await insert_raw(db, "not json at all")
        records = json.loads((await services.audit_log.export(GROUP, fmt="json")).content)
        assert records[0]["type"] == "UNKNOWN"
        assert records[0]["error"] == "Failed to parse log data"

    @pytest.mark.asyncio
    async def test_export_applies_filters(self, services):
        await services.audit_log.append(GROUP, USER, scan(), BASE)
        await services.audit_log.append(GROUP, OTHER_USER, scan(), BASE)

        result = await services.audit_log.export(GROUP, user_id=OTHER_USER, fmt="json")
        records = json.loads(result.content)
        assert [r["userId"] for r in records] == [OTHER_USER]

    @pytest.mark.asyncio
    async def test_unsupported_format(self, services):
        with pytest.raises(ValidationError):
            await services.audit_log.export(GROUP, fmt="xml")

    @pytest.mark.asyncio
    async def test_filename(self, services):
        result = await services.audit_log.export(GROUP, fmt="json")
        assert result.filename.startswith(f"audit_log_{GROUP}_")
        assert result.filename.endswith(".json")
        assert export_filename("-100123", "csv", BASE) == "audit_log_-100123_2025-08-01.csv"
