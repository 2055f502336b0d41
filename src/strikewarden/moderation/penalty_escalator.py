"""
Penalty escalation: strike count -> enforcement tier -> side effect.

Tier selection is a pure function of the new count and the group policy. The
escalator then runs the tier's enforcement call, records a ``PENALTY`` audit
event on success and resets the ledger after a kick or ban. A failing
enforcement call is logged and reported on the outcome; the strike that caused
it stays committed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from strikewarden.configuration.group_settings import GroupSettings
from strikewarden.datatypes.audit_datatypes import (
    AuditEvent,
    ExecutedBy,
    LegacyAutoPayload,
    PenaltyAction,
    PenaltyPayload,
    Severity,
    ViolationPayload,
    ViolationType,
)
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID
from strikewarden.datatypes.penalty_datatypes import GroupPenaltyPolicy, PenaltyTier
from strikewarden.moderation.audit_log import AuditLog
from strikewarden.moderation.enforcement import Enforcement, render_warning
from strikewarden.moderation.strike_ledger import StrikeLedger
from strikewarden.util.errors import EnforcementError
from strikewarden.util.logger import get_logger

logger = get_logger("penalty_escalator")

TIER_SEVERITY = {
    PenaltyTier.ALERT: Severity.INFO,
    PenaltyTier.MUTE: Severity.LOW,
    PenaltyTier.KICK: Severity.MEDIUM,
    PenaltyTier.BAN: Severity.HIGH,
}

WARNING_REASON = "Strike warning"
LIMIT_REASON = "Strike limit reached"


def select_tier(new_count: int, policy: GroupPenaltyPolicy) -> Optional[PenaltyTier]:
    """
    Pick the deepest enabled tier reached by ``new_count``.

    Among thresholds with ``0 < level <= new_count`` the highest level wins;
    equal levels resolve by severity (BAN > KICK > MUTE > ALERT).

    Returns:
        The tier to apply, or None when no enabled threshold is reached.
    """
    candidates = [
        (level, tier.severity_rank, tier)
        for tier, level in policy.thresholds()
        if level > 0 and level <= new_count
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda item: (item[0], item[1]))[2]


@dataclass(slots=True)
class EscalationOutcome:
    """Result of :meth:`PenaltyEscalator.evaluate`.

    ``tier`` is None when no threshold was reached. ``error`` is set when the
    enforcement call failed; ``penalty_event`` only when it succeeded.
    """

    tier: Optional[PenaltyTier]
    strike_count: int
    executed: bool = False
    strikes_reset: bool = False
    penalty_event: Optional[AuditEvent] = None
    error: Optional[EnforcementError] = None

    @property
    def action(self) -> Optional[PenaltyAction]:
        return PenaltyAction(self.tier.audit_action) if self.tier else None


class PenaltyEscalator:
    """Applies the penalty tier reached by a user's new strike count."""

    def __init__(self, enforcement: Enforcement, ledger: StrikeLedger, audit_log: AuditLog):
        self.enforcement = enforcement
        self.ledger = ledger
        self.audit_log = audit_log

    async def _execute(
        self,
        tier: PenaltyTier,
        group_id: GroupID,
        user: ChatUser,
        new_count: int,
        settings: GroupSettings,
        violation_type: Optional[str],
        reason: Optional[str],
    ) -> None:
        policy = settings.policy
        if tier is PenaltyTier.ALERT:
            template = (
                settings.profanity_warning_message
                if violation_type == ViolationType.PROFANITY.value
                else settings.warning_message
            )
            text = render_warning(template, user, new_count, reason)
            delete_after = settings.warning_message_delete_seconds or None
            await self.enforcement.send_message(group_id, text, delete_after=delete_after)
        elif tier is PenaltyTier.MUTE:
            await self.enforcement.mute(group_id, user.id, policy.mute_duration_minutes)
        elif tier is PenaltyTier.KICK:
            await self.enforcement.kick(group_id, user.id)
        elif tier is PenaltyTier.BAN:
            await self.enforcement.ban(group_id, user.id)

    async def evaluate(
        self,
        group_id: GroupID,
        user: ChatUser,
        new_count: int,
        settings: GroupSettings,
        violation: Optional[Union[ViolationPayload, LegacyAutoPayload]] = None,
    ) -> EscalationOutcome:
        """
        Select the tier for ``new_count`` and apply it.

        Raises:
            StorageError: The PENALTY append or the post-expulsion reset failed.
        """
        tier = select_tier(new_count, settings.policy)
        if tier is None:
            logger.info("[PENALTY ESCALATOR] No action configured for strike #%d of %s in %s",
                        new_count, user.id, group_id)
            return EscalationOutcome(tier=None, strike_count=new_count)

        violation_type: Optional[str] = None
        reason: Optional[str] = None
        if isinstance(violation, ViolationPayload):
            violation_type = violation.violation_type.value
            reason = violation.reason
        elif isinstance(violation, LegacyAutoPayload):
            violation_type = violation.violation_type or ViolationType.SPAM.value
            reason = violation.reason

        logger.warning("[PENALTY ESCALATOR] Executing %s for %s in %s at strike #%d",
                       tier, user.id, group_id, new_count)
        outcome = EscalationOutcome(tier=tier, strike_count=new_count)

        try:
            await self._execute(tier, group_id, user, new_count, settings, violation_type, reason)
        except Exception as exc:
            error = EnforcementError(
                f"{tier} failed for user {user.id}: {exc}",
                action=tier.audit_action,
                details={"groupId": group_id, "userId": user.id, "strikeCount": new_count},
            )
            logger.error("[PENALTY ESCALATOR] %s", error.message)
            outcome.error = error
            return outcome

        outcome.executed = True
        payload = PenaltyPayload(
            action=PenaltyAction(tier.audit_action),
            severity=TIER_SEVERITY[tier],
            executed_by=ExecutedBy.AUTO_MODERATOR,
            strike_count=new_count,
            user=user,
            reason=WARNING_REASON if tier is PenaltyTier.ALERT else LIMIT_REASON,
            violation_type=violation_type,
            mute_duration_minutes=settings.policy.mute_duration_minutes if tier is PenaltyTier.MUTE else None,
        )
        try:
            outcome.penalty_event = await self.audit_log.append(group_id, user.id, payload)
        finally:
            # the user is already gone, so the counter resets even without its PENALTY row
            if tier.expels_user:
                await self.ledger.reset_strikes(group_id, user.id)
                outcome.strikes_reset = True

        return outcome
