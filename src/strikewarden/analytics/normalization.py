"""
Normalization of decoded audit events into analytic facts.

Both payload schemas are mapped here, once, so aggregate queries never inspect
payload fields:

- ``SCANNED``                    -> scan fact
- ``VIOLATION``                  -> violation fact (+ deletion fact when the
                                    action is ``message_deleted``)
- legacy ``deleted`` / no action -> SPAM violation fact + deletion fact
- legacy ``warned/muted/...``    -> penalty fact
- ``PENALTY``                    -> penalty fact
- ``MANUAL-STRIKE-*``            -> nothing
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from strikewarden.datatypes.audit_datatypes import (
    AuditEvent,
    LegacyAutoPayload,
    PenaltyAction,
    PenaltyPayload,
    ScannedPayload,
    ViolationPayload,
    ViolationType,
)
from strikewarden.moderation.audit_codec import decode_row
from strikewarden.repositories.audit_repo import AuditLogRow
from strikewarden.util.errors import DecodeError
from strikewarden.util.logger import get_logger

logger = get_logger("analytics_normalization")


@dataclass(slots=True, frozen=True)
class ScanFact:
    timestamp: datetime
    user_id: str
    spam_score: Optional[float]


@dataclass(slots=True, frozen=True)
class ViolationFact:
    timestamp: datetime
    user_id: str
    violation_type: str
    score: Optional[float]


@dataclass(slots=True, frozen=True)
class DeletionFact:
    timestamp: datetime
    user_id: str


@dataclass(slots=True, frozen=True)
class PenaltyFact:
    timestamp: datetime
    user_id: str
    action: PenaltyAction


@dataclass(slots=True)
class Facts:
    """Facts of one window, each list in log order (oldest first)."""

    scans: List[ScanFact] = field(default_factory=list)
    violations: List[ViolationFact] = field(default_factory=list)
    deletions: List[DeletionFact] = field(default_factory=list)
    penalties: List[PenaltyFact] = field(default_factory=list)
    decode_failures: int = 0

    def add_event(self, event: AuditEvent) -> None:
        payload = event.payload
        ts, user_id = event.timestamp, str(event.user_id)

        if isinstance(payload, ScannedPayload):
            self.scans.append(ScanFact(ts, user_id, payload.spam_score))
        elif isinstance(payload, ViolationPayload):
            self.violations.append(ViolationFact(ts, user_id, payload.violation_type.value, payload.score))
            if payload.message_deleted:
                self.deletions.append(DeletionFact(ts, user_id))
        elif isinstance(payload, LegacyAutoPayload):
            if payload.is_deletion:
                self.violations.append(ViolationFact(ts, user_id, ViolationType.SPAM.value, payload.score))
                self.deletions.append(DeletionFact(ts, user_id))
            elif payload.penalty_action is not None:
                self.penalties.append(PenaltyFact(ts, user_id, payload.penalty_action))
            else:
                logger.debug("[ANALYTICS] Ignoring legacy row %s with action %r", event.id, payload.action)
        elif isinstance(payload, PenaltyPayload):
            self.penalties.append(PenaltyFact(ts, user_id, payload.action))


def normalize_events(events: Iterable[AuditEvent]) -> Facts:
    facts = Facts()
    for event in events:
        facts.add_event(event)
    return facts


def normalize_rows(rows: Iterable[AuditLogRow]) -> Facts:
    """Decode and normalize raw rows; undecodable rows are counted and skipped."""
    facts = Facts()
    for row in rows:
        try:
            event = decode_row(row)
        except DecodeError as exc:
            facts.decode_failures += 1
            logger.warning("[ANALYTICS] Skipping audit row %s: %s", row.id, exc)
            continue
        facts.add_event(event)
    return facts
