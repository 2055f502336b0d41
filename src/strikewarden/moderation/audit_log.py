"""
Append-only audit log of every automated and manual moderation decision.

Responsibilities:
- Append encoded payloads, either in an own transaction or inside a caller's
  transaction (the strike ledger appends in the same commit as the counter)
- Paginated, filtered queries (newest first) with a hard page-size cap
- CSV / JSON exports up to the configured row limit
- Per-row decode failure handling: a malformed payload becomes an ``UNKNOWN``
  placeholder row and never aborts a page or export
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import aiosqlite

from strikewarden.configuration.app_configuration import AppConfig, app_config
from strikewarden.database.database import Database
from strikewarden.datatypes.audit_datatypes import (
    UNKNOWN_EVENT_TYPE,
    AuditEvent,
    AuditExport,
    AuditFilter,
    AuditPage,
    AuditPayload,
    AuditRow,
)
from strikewarden.datatypes.chat_datatypes import GroupID, UserID, to_group_id, to_user_id
from strikewarden.moderation import audit_export
from strikewarden.moderation.audit_codec import decode_payload, decode_row, encode_payload
from strikewarden.repositories.audit_repo import AuditLogRow, AuditRepo
from strikewarden.util.errors import DecodeError, NotFoundError, StorageError, ValidationError
from strikewarden.util.logger import get_logger
from strikewarden.util.time_utils import to_storage, utcnow

logger = get_logger("audit_log")


def _decode_or_none(row: AuditLogRow) -> Optional[AuditPayload]:
    try:
        return decode_payload(row.log_data)
    except DecodeError as exc:
        logger.warning("[AUDIT LOG] Could not decode audit row %s: %s", row.id, exc)
        return None


def format_row(row: AuditLogRow) -> AuditRow:
    """Display-ready row; undecodable payloads become an ``UNKNOWN`` placeholder."""
    payload = _decode_or_none(row)
    if payload is None:
        return AuditRow(
            id=row.id,
            timestamp=row.timestamp,
            group_id=row.group_id,
            user_id=row.user_id,
            type=UNKNOWN_EVENT_TYPE,
            action=audit_export.PARSE_ERROR_ACTION,
            details={"error": audit_export.PARSE_ERROR_MESSAGE},
        )

    return AuditRow(
        id=row.id,
        timestamp=row.timestamp,
        group_id=row.group_id,
        user_id=row.user_id,
        type=audit_export.payload_type_label(payload),
        action=audit_export.describe_action(payload),
        details=audit_export.payload_details(payload),
    )


class AuditLog:
    """Service wrapper around the ``audit_log`` table."""

    def __init__(self, database: Database, config: Optional[AppConfig] = None):
        self.database = database
        self.config = config or app_config

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def append(
        self,
        group_id: GroupID,
        user_id: UserID,
        payload: AuditPayload,
        timestamp: Optional[datetime] = None,
        *,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> AuditEvent:
        """
        Append one event and return it with its assigned id.

        When ``conn`` is given the insert joins the caller's open transaction and
        database errors propagate unchanged so the caller can roll back.
        Otherwise the insert is committed on its own.

        Raises:
            StorageError: The standalone insert failed.
        """
        ts = timestamp or utcnow()
        log_data = encode_payload(payload, ts)
        stored_ts = to_storage(ts)

        with self.database.timer.measure("audit_log.append"):
            if conn is not None:
                event_id = await AuditRepo.insert(conn, stored_ts, str(group_id), str(user_id), log_data)
            else:
                try:
                    async with self.database.transaction() as own_conn:
                        event_id = await AuditRepo.insert(own_conn, stored_ts, str(group_id), str(user_id), log_data)
                except aiosqlite.Error as exc:
                    logger.error("[AUDIT LOG] Failed to append %s event for %s/%s: %s",
                                 payload.event_type, group_id, user_id, exc)
                    raise StorageError(f"Failed to append {payload.event_type} audit event") from exc

        logger.debug("[AUDIT LOG] Appended %s event %s for %s/%s", payload.event_type, event_id, group_id, user_id)
        return AuditEvent(
            id=event_id,
            timestamp=ts,
            group_id=to_group_id(group_id),
            user_id=to_user_id(user_id),
            payload=payload,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        group_id: GroupID,
        user_id: Optional[UserID] = None,
        event_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> AuditPage:
        """
        One page of a group's audit rows, newest first.

        ``limit`` defaults to the configured page size and is clamped to the
        configured maximum (200).

        Raises:
            ValidationError: ``page`` or ``limit`` is below 1.
        """
        if limit is None:
            limit = self.config.audit_default_page_size
        if page < 1:
            raise ValidationError("page must be at least 1", details={"page": page})
        if limit < 1:
            raise ValidationError("limit must be at least 1", details={"limit": limit})
        limit = min(limit, self.config.audit_max_page_size)

        audit_filter = AuditFilter(
            group_id=group_id,
            user_id=user_id,
            event_type=str(event_type) if event_type else None,
            start=start,
            end=end,
        )

        with self.database.timer.measure("audit_log.query"):
            async with self.database.read() as conn:
                total = await AuditRepo.count(conn, audit_filter)
                rows = await AuditRepo.select(conn, audit_filter, limit, (page - 1) * limit)

        return AuditPage(
            rows=[format_row(row) for row in rows],
            page=page,
            limit=limit,
            total=total,
            filters=audit_filter,
        )

    async def export(
        self,
        group_id: GroupID,
        user_id: Optional[UserID] = None,
        event_type: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        fmt: str = "csv",
    ) -> AuditExport:
        """
        Export every matching row (up to the configured limit) as CSV or JSON.

        Raises:
            ValidationError: Unsupported ``fmt``.
        """
        media_type = audit_export.EXPORT_MEDIA_TYPES.get(fmt)
        if media_type is None:
            raise ValidationError('Format must be "csv" or "json"', details={"format": fmt})

        audit_filter = AuditFilter(
            group_id=group_id,
            user_id=user_id,
            event_type=str(event_type) if event_type else None,
            start=start,
            end=end,
        )

        with self.database.timer.measure("audit_log.export"):
            async with self.database.read() as conn:
                rows = await AuditRepo.select(conn, audit_filter, self.config.audit_export_limit)

        records = [
            audit_export.flatten_record(row.id, row.timestamp, row.group_id, row.user_id, _decode_or_none(row))
            for row in rows
        ]
        content = audit_export.render_csv(records) if fmt == "csv" else audit_export.render_json(records)

        logger.info("[AUDIT LOG] Exported %d rows of group %s as %s", len(records), group_id, fmt)
        return AuditExport(
            filename=audit_export.export_filename(str(group_id), fmt),
            content=content,
            media_type=media_type,
            row_count=len(records),
        )

    async def get_event(self, event_id: int) -> AuditEvent:
        """
        Raises:
            NotFoundError: No row with ``event_id``.
            DecodeError: The stored payload is malformed.
        """
        async with self.database.read() as conn:
            row = await AuditRepo.get(conn, event_id)
        if row is None:
            raise NotFoundError(f"Audit event {event_id} not found", details={"id": event_id})
        return decode_row(row)

    async def get_user_rows(
        self,
        group_id: GroupID,
        user_id: UserID,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditRow]:
        """A user's formatted audit rows in one group, newest first."""
        audit_filter = AuditFilter(group_id=group_id, user_id=user_id)
        async with self.database.read() as conn:
            rows = await AuditRepo.select(conn, audit_filter, limit, offset)
        return [format_row(row) for row in rows]
