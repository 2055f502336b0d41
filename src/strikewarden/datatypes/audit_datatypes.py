"""
Audit log event types and payload variants.

Every audit row stores a JSON payload tagged by its ``type`` field. Two schemas
coexist in the log:

- the enhanced schema (``SCANNED``, ``VIOLATION``, ``PENALTY`` and the three
  ``MANUAL-STRIKE-*`` kinds), one payload class per kind;
- the legacy flat schema (``type`` ``AUTO`` or absent), decoded into
  :class:`LegacyAutoPayload`.

Decoding lives in :mod:`strikewarden.moderation.audit_codec`; the legacy to
enhanced mapping used by analytics lives in
:mod:`strikewarden.analytics.normalization`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID


class EventType(Enum):
    """Value of the ``type`` field of an audit payload."""

    AUTO = "AUTO"
    SCANNED = "SCANNED"
    VIOLATION = "VIOLATION"
    PENALTY = "PENALTY"
    MANUAL_STRIKE_ADD = "MANUAL-STRIKE-ADD"
    MANUAL_STRIKE_REMOVE = "MANUAL-STRIKE-REMOVE"
    MANUAL_STRIKE_SET = "MANUAL-STRIKE-SET"

    def __str__(self) -> str:
        return self.value

    @property
    def is_manual(self) -> bool:
        return self.value.startswith("MANUAL")


MANUAL_EVENT_TYPES = (
    EventType.MANUAL_STRIKE_ADD,
    EventType.MANUAL_STRIKE_REMOVE,
    EventType.MANUAL_STRIKE_SET,
)

# Placeholder type of rows whose payload failed to decode
UNKNOWN_EVENT_TYPE = "UNKNOWN"


class ViolationType(Enum):
    SPAM = "SPAM"
    PROFANITY = "PROFANITY"

    def __str__(self) -> str:
        return self.value


class PenaltyAction(Enum):
    """Enforcement actions recorded in PENALTY events."""

    USER_WARNED = "user_warned"
    USER_MUTED = "user_muted"
    USER_KICKED = "user_kicked"
    USER_BANNED = "user_banned"

    def __str__(self) -> str:
        return self.value


class Severity(Enum):
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    def __str__(self) -> str:
        return self.value


class ExecutedBy(Enum):
    AUTO_MODERATOR = "AUTO_MODERATOR"
    ADMIN = "ADMIN"

    def __str__(self) -> str:
        return self.value


# Actions of a VIOLATION event: the message was removed, or only recorded
VIOLATION_ACTIONS = ("message_deleted", "message_flagged")

# Legacy rows written by older bot versions: "deleted" (or no action) marks a
# deleted violating message, the others an enforcement action.
LEGACY_DELETION_ACTIONS = ("deleted", None)
LEGACY_PENALTY_ACTIONS: Dict[str, PenaltyAction] = {
    "warned": PenaltyAction.USER_WARNED,
    "muted": PenaltyAction.USER_MUTED,
    "kicked": PenaltyAction.USER_KICKED,
    "banned": PenaltyAction.USER_BANNED,
}


@dataclass(slots=True)
class ScannedPayload:
    """A message was seen and scored."""

    user: Optional[ChatUser] = None
    message_excerpt: str = ""
    spam_score: Optional[float] = None
    profanity_score: Optional[float] = None
    profanity_type: Optional[str] = None
    message_length: Optional[int] = None
    action: str = "message_analyzed"

    @property
    def event_type(self) -> EventType:
        return EventType.SCANNED


@dataclass(slots=True)
class ViolationPayload:
    """A message scored above the group's threshold."""

    violation_type: ViolationType
    user: Optional[ChatUser] = None
    message_excerpt: str = ""
    reason: str = "Violation detected"
    spam_score: Optional[float] = None
    profanity_score: Optional[float] = None
    profanity_type: Optional[str] = None
    classification_score: Optional[float] = None
    message_length: Optional[int] = None
    threshold_exceeded: Optional[float] = None
    action: str = "message_deleted"

    @property
    def event_type(self) -> EventType:
        return EventType.VIOLATION

    @property
    def score(self) -> Optional[float]:
        """Score of the detected violation kind."""
        if self.classification_score is not None:
            return self.classification_score
        if self.violation_type is ViolationType.PROFANITY:
            return self.profanity_score
        return self.spam_score

    @property
    def message_deleted(self) -> bool:
        return self.action == "message_deleted"


@dataclass(slots=True)
class PenaltyPayload:
    """An enforcement action was taken against a user."""

    action: PenaltyAction
    severity: Severity
    executed_by: ExecutedBy
    strike_count: int
    user: Optional[ChatUser] = None
    reason: str = "Strike limit reached"
    violation_type: Optional[str] = None
    mute_duration_minutes: Optional[int] = None

    @property
    def event_type(self) -> EventType:
        return EventType.PENALTY


@dataclass(slots=True)
class ManualStrikePayload:
    """An administrator changed a user's strike count by hand."""

    kind: EventType
    amount: int
    reason: str = ""
    admin: Optional[ChatUser] = None
    target_user: Optional[ChatUser] = None

    def __post_init__(self) -> None:
        if self.kind not in MANUAL_EVENT_TYPES:
            raise ValueError(f"{self.kind} is not a manual strike event type")

    @property
    def event_type(self) -> EventType:
        return self.kind


@dataclass(slots=True)
class LegacyAutoPayload:
    """Older flat schema: an implicit SPAM violation plus deletion.

    ``type_tag`` is ``"AUTO"`` or None when the stored payload had no type.
    """

    user: Optional[ChatUser] = None
    action: Optional[str] = "deleted"
    message_excerpt: str = ""
    reason: Optional[str] = None
    classification_score: Optional[float] = None
    violation_type: Optional[str] = None
    spam_score: Optional[float] = None
    profanity_score: Optional[float] = None
    profanity_type: Optional[str] = None
    strike_count: Optional[int] = None
    type_tag: Optional[str] = "AUTO"

    @property
    def event_type(self) -> EventType:
        return EventType.AUTO

    @property
    def is_deletion(self) -> bool:
        return self.action in LEGACY_DELETION_ACTIONS

    @property
    def penalty_action(self) -> Optional[PenaltyAction]:
        return LEGACY_PENALTY_ACTIONS.get(self.action or "")

    @property
    def score(self) -> Optional[float]:
        if self.classification_score is not None:
            return self.classification_score
        return self.spam_score


AuditPayload = Union[
    ScannedPayload,
    ViolationPayload,
    PenaltyPayload,
    ManualStrikePayload,
    LegacyAutoPayload,
]


@dataclass(slots=True, frozen=True)
class AuditEvent:
    """An immutable, decoded audit log row."""

    id: int
    timestamp: datetime
    group_id: GroupID
    user_id: UserID
    payload: AuditPayload

    @property
    def event_type(self) -> EventType:
        return self.payload.event_type


@dataclass(slots=True, frozen=True)
class AuditFilter:
    """Row filter shared by paginated queries and exports."""

    group_id: GroupID
    user_id: Optional[UserID] = None
    event_type: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "type": self.event_type,
            "startDate": self.start.isoformat() if self.start else None,
            "endDate": self.end.isoformat() if self.end else None,
        }


@dataclass(slots=True)
class AuditRow:
    """A display-ready audit row; ``type`` is ``UNKNOWN`` for undecodable payloads."""

    id: int
    timestamp: str
    group_id: str
    user_id: str
    type: str
    action: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "groupId": self.group_id,
            "userId": self.user_id,
            "type": self.type,
            "action": self.action,
            "details": dict(self.details),
        }


@dataclass(slots=True)
class AuditPage:
    """One page of audit rows plus pagination metadata."""

    rows: List[AuditRow]
    page: int
    limit: int
    total: int
    filters: AuditFilter

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "data": [row.to_dict() for row in self.rows],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": self.total,
                "totalPages": self.total_pages,
                "hasNext": self.has_next,
                "hasPrev": self.has_prev,
            },
            "filters": self.filters.to_dict(),
        }


@dataclass(slots=True, frozen=True)
class AuditExport:
    """A rendered export artifact."""

    filename: str
    content: str
    media_type: str
    row_count: int
