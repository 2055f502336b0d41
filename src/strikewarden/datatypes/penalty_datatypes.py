"""
Strike ledger records and penalty escalation types.

This module defines the PenaltyTier enum, the per-group GroupPenaltyPolicy and
the StrikeRecord stored by the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from strikewarden.datatypes.chat_datatypes import GroupID, UserID


class PenaltyTier(Enum):
    """Enforcement tiers ordered from least to most severe."""

    ALERT = "ALERT"
    MUTE = "MUTE"
    KICK = "KICK"
    BAN = "BAN"

    def __str__(self) -> str:
        return self.value

    @property
    def severity_rank(self) -> int:
        """Tie-break rank when two tiers share a threshold (BAN highest)."""
        return _SEVERITY_RANK[self]

    @property
    def audit_action(self) -> str:
        """Action name written to PENALTY audit events."""
        return _AUDIT_ACTIONS[self]

    @property
    def expels_user(self) -> bool:
        """KICK and BAN remove the user and reset the ledger."""
        return self in (PenaltyTier.KICK, PenaltyTier.BAN)


_SEVERITY_RANK = {
    PenaltyTier.ALERT: 1,
    PenaltyTier.MUTE: 2,
    PenaltyTier.KICK: 3,
    PenaltyTier.BAN: 4,
}

_AUDIT_ACTIONS = {
    PenaltyTier.ALERT: "user_warned",
    PenaltyTier.MUTE: "user_muted",
    PenaltyTier.KICK: "user_kicked",
    PenaltyTier.BAN: "user_banned",
}


@dataclass(slots=True, frozen=True)
class GroupPenaltyPolicy:
    """Escalation thresholds for one group.

    Attributes:
        alert_level: Strike count that triggers a warning (0 disables).
        mute_level: Strike count that triggers a mute (0 disables).
        kick_level: Strike count that triggers a temporary expulsion (0 disables).
        ban_level: Strike count that triggers a permanent ban (0 disables).
        mute_duration_minutes: How long a mute lasts.
        strike_expiration_days: Strikes older than this are forgotten on read (0 = never).
    """

    alert_level: int = 1
    mute_level: int = 2
    kick_level: int = 3
    ban_level: int = 0
    mute_duration_minutes: int = 60
    strike_expiration_days: int = 30

    def __post_init__(self) -> None:
        for name in ("alert_level", "mute_level", "kick_level", "ban_level",
                     "mute_duration_minutes", "strike_expiration_days"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")

    def thresholds(self) -> List[Tuple[PenaltyTier, int]]:
        """Return ``(tier, level)`` for every tier, including disabled ones."""
        return [
            (PenaltyTier.ALERT, self.alert_level),
            (PenaltyTier.MUTE, self.mute_level),
            (PenaltyTier.KICK, self.kick_level),
            (PenaltyTier.BAN, self.ban_level),
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alertLevel": self.alert_level,
            "muteLevel": self.mute_level,
            "kickLevel": self.kick_level,
            "banLevel": self.ban_level,
            "muteDurationMinutes": self.mute_duration_minutes,
            "strikeExpirationDays": self.strike_expiration_days,
        }


@dataclass(slots=True)
class StrikeRecord:
    """Current violation counter of a user within a group."""

    group_id: GroupID
    user_id: UserID
    count: int = 0
    last_strike_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groupId": self.group_id,
            "userId": self.user_id,
            "count": self.count,
            "lastStrikeTimestamp": self.last_strike_at.isoformat() if self.last_strike_at else None,
        }


@dataclass(slots=True, frozen=True)
class StrikeChange:
    """Before/after counts returned by the manual ledger mutators."""

    previous_count: int
    new_count: int
