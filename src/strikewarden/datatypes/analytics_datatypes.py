"""
Result types returned by the analytics engine.

Each result exposes ``to_dict()`` producing the camelCase shape consumed by the
dashboard layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(slots=True)
class FlaggedBreakdown:
    total: int = 0
    spam: int = 0
    profanity: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "spam": self.spam, "profanity": self.profanity}


@dataclass(slots=True)
class ViolationTypeCount:
    type: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "count": self.count}


@dataclass(slots=True)
class ModerationEfficiency:
    messages_scanned: int = 0
    violations_detected: int = 0
    users_actioned: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messagesScanned": self.messages_scanned,
            "violationsDetected": self.violations_detected,
            "usersActioned": self.users_actioned,
        }


@dataclass(slots=True)
class GroupStats:
    """Aggregate moderation statistics of one group over a time window."""

    total_messages: int = 0
    flagged: FlaggedBreakdown = field(default_factory=FlaggedBreakdown)
    deleted_messages: int = 0
    muted_users: int = 0
    kicked_users: int = 0
    banned_users: int = 0
    average_spam_score: float = 0.0
    flagged_rate: float = 0.0
    top_violation_types: List[ViolationTypeCount] = field(default_factory=list)
    efficiency: ModerationEfficiency = field(default_factory=ModerationEfficiency)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalMessages": self.total_messages,
            "flaggedMessages": self.flagged.to_dict(),
            "deletedMessages": self.deleted_messages,
            "mutedUsers": self.muted_users,
            "kickedUsers": self.kicked_users,
            "bannedUsers": self.banned_users,
            "averageSpamScore": self.average_spam_score,
            "flaggedRate": self.flagged_rate,
            "topViolationTypes": [entry.to_dict() for entry in self.top_violation_types],
            "autoModerationEfficiency": self.efficiency.to_dict(),
        }


@dataclass(slots=True)
class UserActivity:
    user_id: str
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    messages_sent: int = 0
    violations: int = 0
    penalties: int = 0
    avg_spam_score: float = 0.0

    @property
    def violation_rate(self) -> float:
        if self.messages_sent == 0:
            return 0.0
        return round(self.violations / self.messages_sent * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "username": self.username,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "messagesSent": self.messages_sent,
            "violations": self.violations,
            "penalties": self.penalties,
            "averageSpamScore": self.avg_spam_score,
            "violationRate": self.violation_rate,
        }


@dataclass(slots=True)
class ActivityBucket:
    """Scanned messages and violations in one hour-of-day or calendar day."""

    key: str
    messages: int = 0
    violations: int = 0

    def to_dict(self, key_name: str) -> Dict[str, Any]:
        return {key_name: self.key, "messages": self.messages, "violations": self.violations}


@dataclass(slots=True)
class ActivityPatterns:
    hourly: List[ActivityBucket] = field(default_factory=list)
    daily: List[ActivityBucket] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hourlyDistribution": [bucket.to_dict("hour") for bucket in self.hourly],
            "dailyActivity": [bucket.to_dict("date") for bucket in self.daily],
        }


@dataclass(slots=True)
class ResponseTime:
    """A violation paired with the penalty that followed it."""

    user_id: str
    violation_type: str
    penalty_action: str
    response_time_seconds: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "violationType": self.violation_type,
            "penaltyAction": self.penalty_action,
            "responseTimeSeconds": self.response_time_seconds,
        }


@dataclass(slots=True)
class RepeatOffender:
    user_id: str
    total_violations: int
    active_days: int
    avg_violation_score: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "totalViolations": self.total_violations,
            "activeDays": self.active_days,
            "averageViolationScore": self.avg_violation_score,
        }


@dataclass(slots=True)
class ModerationEffectiveness:
    total_violations: int = 0
    matched_violations: int = 0
    average_response_time_seconds: float = 0.0
    response_time_distribution: List[ResponseTime] = field(default_factory=list)
    repeat_offenders: List[RepeatOffender] = field(default_factory=list)
    total_repeat_offenders: int = 0
    effectiveness_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalViolations": self.total_violations,
            "matchedViolations": self.matched_violations,
            "averageResponseTimeSeconds": self.average_response_time_seconds,
            "responseTimeDistribution": [entry.to_dict() for entry in self.response_time_distribution],
            "repeatOffenders": [entry.to_dict() for entry in self.repeat_offenders],
            "totalRepeatOffenders": self.total_repeat_offenders,
            "effectivenessScore": self.effectiveness_score,
        }


@dataclass(slots=True)
class GroupDeletions:
    group_id: str
    title: Optional[str]
    deletions: int

    def to_dict(self) -> Dict[str, Any]:
        return {"groupId": self.group_id, "title": self.title, "deletions": self.deletions}
