"""
Per-(group, user) strike counters.

Every mutation runs in one transaction together with the audit event that
explains it, so a counter never changes without its audit row (and vice versa).
Expiration is lazy: a counter whose last strike is older than the group's
``strike_expiration_days`` is zeroed the next time it is read.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import List, Optional, Union

import aiosqlite

from strikewarden.configuration.group_settings import GroupSettingsService
from strikewarden.database.database import Database
from strikewarden.datatypes.audit_datatypes import (
    AuditRow,
    EventType,
    LegacyAutoPayload,
    ManualStrikePayload,
    ViolationPayload,
)
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID
from strikewarden.datatypes.penalty_datatypes import StrikeChange, StrikeRecord
from strikewarden.moderation.audit_log import AuditLog
from strikewarden.repositories.strike_repo import StrikeRepo, StrikeRow
from strikewarden.util.errors import StorageError, ValidationError
from strikewarden.util.logger import get_logger
from strikewarden.util.time_utils import parse_optional_timestamp, to_storage, utcnow

logger = get_logger("strike_ledger")

MIN_AMOUNT = 1
MAX_AMOUNT = 100
MIN_COUNT = 0
MAX_COUNT = 1000

GOOD_BEHAVIOR_REASON = "Good behavior"

ViolationEvent = Union[ViolationPayload, LegacyAutoPayload]


def _validate_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or not MIN_AMOUNT <= amount <= MAX_AMOUNT:
        raise ValidationError(
            f"Amount must be between {MIN_AMOUNT} and {MAX_AMOUNT}",
            details={"amount": amount},
        )


def _validate_count(count: int) -> None:
    if isinstance(count, bool) or not isinstance(count, int) or not MIN_COUNT <= count <= MAX_COUNT:
        raise ValidationError(
            f"Count must be between {MIN_COUNT} and {MAX_COUNT}",
            details={"count": count},
        )


def _to_record(group_id: GroupID, user_id: UserID, row: Optional[StrikeRow]) -> StrikeRecord:
    if row is None:
        return StrikeRecord(group_id=group_id, user_id=user_id)
    return StrikeRecord(
        group_id=group_id,
        user_id=user_id,
        count=row.count,
        last_strike_at=parse_optional_timestamp(row.timestamp),
    )


class StrikeLedger:
    """Owns the ``strikes`` table; every write also appends an audit event."""

    def __init__(self, database: Database, audit_log: AuditLog, settings: GroupSettingsService):
        self.database = database
        self.audit_log = audit_log
        self.settings = settings

    async def _expire(
        self,
        conn: aiosqlite.Connection,
        group_id: GroupID,
        user_id: UserID,
        now: datetime,
        expiration_days: int,
    ) -> None:
        if expiration_days <= 0:
            return
        cutoff = now - timedelta(days=expiration_days)
        if await StrikeRepo.expire_before(conn, group_id, user_id, to_storage(cutoff)):
            logger.info("[STRIKE LEDGER] Strikes of %s in %s expired after %d days", user_id, group_id, expiration_days)

    async def _current_count(self, conn: aiosqlite.Connection, group_id: GroupID, user_id: UserID) -> int:
        row = await StrikeRepo.get(conn, group_id, user_id)
        return row.count if row else 0

    # ------------------------------------------------------------------
    # Automated strikes
    # ------------------------------------------------------------------

    async def record_strike(
        self,
        group_id: GroupID,
        user_id: UserID,
        violation: ViolationEvent,
        timestamp: Optional[datetime] = None,
    ) -> int:
        """
        Increment the counter and append the violation event atomically.

        Returns:
            The new strike count.

        Raises:
            ValidationError: ``violation`` is not a violation payload.
            StorageError: The transaction failed; neither write is kept.
        """
        if not isinstance(violation, (ViolationPayload, LegacyAutoPayload)):
            raise ValidationError(f"Not a violation event: {type(violation).__name__}")

        now = timestamp or utcnow()
        try:
            with self.database.timer.measure("strike_ledger.record_strike"):
                async with self.database.transaction() as conn:
                    await StrikeRepo.increment(conn, group_id, user_id, 1, to_storage(now))
                    await self.audit_log.append(group_id, user_id, violation, now, conn=conn)
                    new_count = await self._current_count(conn, group_id, user_id)
        except aiosqlite.Error as exc:
            logger.error("[STRIKE LEDGER] Failed to record strike for %s in %s: %s", user_id, group_id, exc)
            raise StorageError("Failed to record strike", details={"groupId": group_id, "userId": user_id}) from exc

        logger.info("[STRIKE LEDGER] User %s in %s committed strike #%d", user_id, group_id, new_count)
        return new_count

    # ------------------------------------------------------------------
    # Manual mutators
    # ------------------------------------------------------------------

    async def _apply_manual(
        self,
        kind: EventType,
        group_id: GroupID,
        user_id: UserID,
        amount: int,
        admin: Optional[ChatUser],
        reason: str,
        restart_clock: bool = False,
    ) -> StrikeChange:
        now = utcnow()
        policy = await self.settings.get_policy(group_id)
        try:
            with self.database.timer.measure(f"strike_ledger.{kind.value.lower()}"):
                async with self.database.transaction() as conn:
                    await self._expire(conn, group_id, user_id, now, policy.strike_expiration_days)
                    row = await StrikeRepo.get(conn, group_id, user_id)
                    previous = row.count if row else 0

                    if kind is EventType.MANUAL_STRIKE_ADD:
                        new_count = previous + amount
                        timestamp: Optional[str] = to_storage(now)
                    elif kind is EventType.MANUAL_STRIKE_REMOVE:
                        new_count = max(0, previous - amount)
                        if not row or new_count == 0:
                            timestamp = None
                        else:
                            timestamp = to_storage(now) if restart_clock else row.timestamp
                    else:
                        new_count = amount
                        timestamp = to_storage(now) if new_count > 0 else None

                    await StrikeRepo.set_count(conn, group_id, user_id, new_count, timestamp)
                    payload = ManualStrikePayload(
                        kind=kind,
                        amount=amount,
                        reason=reason,
                        admin=admin,
                        target_user=ChatUser(id=user_id),
                    )
                    await self.audit_log.append(group_id, user_id, payload, now, conn=conn)
        except aiosqlite.Error as exc:
            logger.error("[STRIKE LEDGER] %s failed for %s in %s: %s", kind, user_id, group_id, exc)
            raise StorageError(f"{kind} failed", details={"groupId": group_id, "userId": user_id}) from exc

        logger.info("[STRIKE LEDGER] %s by %s: %s in %s went %d -> %d",
                    kind, admin.id if admin else "system", user_id, group_id, previous, new_count)
        return StrikeChange(previous_count=previous, new_count=new_count)

    async def add_strikes(
        self,
        group_id: GroupID,
        user_id: UserID,
        amount: int,
        admin: Optional[ChatUser] = None,
        reason: str = "Manual strike addition",
    ) -> StrikeChange:
        """Add ``amount`` (1..100) strikes; the timestamp becomes now."""
        _validate_amount(amount)
        return await self._apply_manual(EventType.MANUAL_STRIKE_ADD, group_id, user_id, amount, admin, reason)

    async def remove_strike(
        self,
        group_id: GroupID,
        user_id: UserID,
        amount: int = 1,
        admin: Optional[ChatUser] = None,
        reason: str = "Manual strike removal",
    ) -> StrikeChange:
        """Remove ``amount`` (1..100) strikes, never going below zero."""
        _validate_amount(amount)
        return await self._apply_manual(EventType.MANUAL_STRIKE_REMOVE, group_id, user_id, amount, admin, reason)

    async def set_strikes(
        self,
        group_id: GroupID,
        user_id: UserID,
        count: int,
        admin: Optional[ChatUser] = None,
        reason: str = "Manual strike count set",
    ) -> StrikeChange:
        """Set the counter to ``count`` (0..1000); 0 clears the timestamp."""
        _validate_count(count)
        return await self._apply_manual(EventType.MANUAL_STRIKE_SET, group_id, user_id, count, admin, reason)

    async def forgive_strike(
        self,
        group_id: GroupID,
        user_id: UserID,
        good_behavior_days: int,
    ) -> Optional[StrikeChange]:
        """
        Remove one strike when the last one is more than ``good_behavior_days`` old.

        Remaining strikes restart their clock, so the next one is forgiven only
        after another clean period. Returns None when nothing was forgiven.
        """
        if good_behavior_days <= 0:
            return None
        record = await self.get_strikes(group_id, user_id)
        if record.count == 0 or record.last_strike_at is None:
            return None
        if utcnow() - record.last_strike_at <= timedelta(days=good_behavior_days):
            return None
        return await self._apply_manual(
            EventType.MANUAL_STRIKE_REMOVE, group_id, user_id, 1, None, GOOD_BEHAVIOR_REASON, restart_clock=True
        )

    # ------------------------------------------------------------------
    # Reads and resets
    # ------------------------------------------------------------------

    async def get_strikes(self, group_id: GroupID, user_id: UserID) -> StrikeRecord:
        """Current counter after applying expiration; absent rows read as 0."""
        now = utcnow()
        policy = await self.settings.get_policy(group_id)
        try:
            async with self.database.transaction() as conn:
                await self._expire(conn, group_id, user_id, now, policy.strike_expiration_days)
                row = await StrikeRepo.get(conn, group_id, user_id)
        except aiosqlite.Error as exc:
            raise StorageError("Failed to read strikes", details={"groupId": group_id, "userId": user_id}) from exc
        return _to_record(group_id, user_id, row)

    async def reset_strikes(self, group_id: GroupID, user_id: UserID) -> None:
        """Zero the counter (after a kick or ban)."""
        try:
            async with self.database.transaction() as conn:
                await StrikeRepo.reset(conn, group_id, user_id)
        except aiosqlite.Error as exc:
            raise StorageError("Failed to reset strikes", details={"groupId": group_id, "userId": user_id}) from exc
        logger.info("[STRIKE LEDGER] Strikes reset for %s in %s", user_id, group_id)

    async def get_strike_history(
        self,
        group_id: GroupID,
        user_id: UserID,
        limit: int = 50,
        offset: int = 0,
    ) -> List[AuditRow]:
        """The user's audit rows in the group, newest first."""
        if limit < 1 or offset < 0:
            raise ValidationError("limit must be positive and offset non-negative",
                                  details={"limit": limit, "offset": offset})
        return await self.audit_log.get_user_rows(group_id, user_id, limit, offset)

    async def total_active_strikes(self) -> int:
        async with self.database.read() as conn:
            return await StrikeRepo.total_active(conn)
