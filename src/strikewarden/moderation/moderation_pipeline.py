"""
Per-message moderation flow.

For every group message:

1. Record the sender in the user directory.
2. Skip private chats, empty texts and admins/moderators.
3. Forgive one strike after a clean period (``goodBehaviorDays``) and tell the
   user in a private message.
4. Skip keyword-whitelisted messages.
5. Classify the text and append a ``SCANNED`` event.
6. On a violation: delete the message (best effort), record the strike together
   with its ``VIOLATION`` event and hand the new count to the escalator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence

from strikewarden.configuration.group_settings import GroupSettings, GroupSettingsService
from strikewarden.datatypes.audit_datatypes import ScannedPayload, ViolationPayload, ViolationType
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID
from strikewarden.datatypes.penalty_datatypes import StrikeChange
from strikewarden.moderation.audit_log import AuditLog
from strikewarden.moderation.enforcement import Classifier, ClassificationScores, Enforcement
from strikewarden.moderation.penalty_escalator import EscalationOutcome, PenaltyEscalator
from strikewarden.moderation.strike_ledger import StrikeLedger
from strikewarden.util.errors import StorageError
from strikewarden.util.logger import get_logger

logger = get_logger("moderation_pipeline")

EXCERPT_LENGTH = 100

GOOD_BEHAVIOR_NOTICE = (
    "Your good behavior has been noticed, and one of your strikes in {group} has been removed. Keep it up!"
)


class ModerationStatus(Enum):
    SKIPPED = "skipped"
    CLEAN = "clean"
    VIOLATION = "violation"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class IncomingMessage:
    """A chat message as handed over by the bot layer."""

    group_id: GroupID
    message_id: Any
    user: ChatUser
    text: Optional[str]
    is_private: bool = False
    admin_ids: Sequence[UserID] = field(default_factory=tuple)
    group_title: Optional[str] = None


@dataclass(slots=True)
class ModerationResult:
    status: ModerationStatus
    skip_reason: Optional[str] = None
    scores: Optional[ClassificationScores] = None
    violation_type: Optional[ViolationType] = None
    message_deleted: bool = False
    strike_count: Optional[int] = None
    escalation: Optional[EscalationOutcome] = None


def detect_violation(scores: ClassificationScores, settings: GroupSettings) -> Optional[ViolationType]:
    """Spam is checked first; profanity only when enabled for the group."""
    if scores.spam_score >= settings.spam_threshold:
        return ViolationType.SPAM
    if settings.profanity_enabled and scores.profanity_score >= settings.profanity_threshold:
        return ViolationType.PROFANITY
    return None


class ModerationPipeline:
    """Glue between the bot's message events and the moderation core."""

    def __init__(
        self,
        settings: GroupSettingsService,
        classifier: Classifier,
        enforcement: Enforcement,
        ledger: StrikeLedger,
        audit_log: AuditLog,
        escalator: Optional[PenaltyEscalator] = None,
    ):
        self.settings = settings
        self.classifier = classifier
        self.enforcement = enforcement
        self.ledger = ledger
        self.audit_log = audit_log
        self.escalator = escalator or PenaltyEscalator(enforcement, ledger, audit_log)

    async def _forgive_good_behavior(
        self, message: IncomingMessage, settings: GroupSettings
    ) -> Optional[StrikeChange]:
        user = message.user
        change = await self.ledger.forgive_strike(message.group_id, user.id, settings.good_behavior_days)
        if change is None:
            return None

        logger.info("[MODERATION PIPELINE] Forgave one strike of %s in %s for good behavior (%d -> %d)",
                    user.id, message.group_id, change.previous_count, change.new_count)
        # a private chat shares the user's id
        notice = GOOD_BEHAVIOR_NOTICE.format(group=message.group_title or message.group_id)
        try:
            await self.enforcement.send_message(GroupID(str(user.id)), notice)
        except Exception as exc:
            logger.warning("[MODERATION PIPELINE] Could not send good behavior notice to %s: %s", user.id, exc)
        return change

    async def process_message(self, message: IncomingMessage) -> ModerationResult:
        """
        Moderate a single message.

        Raises:
            StorageError: Appending the scan or recording the strike failed.
        """
        if message.is_private:
            return ModerationResult(ModerationStatus.SKIPPED, skip_reason="private_chat")
        if not message.text:
            return ModerationResult(ModerationStatus.SKIPPED, skip_reason="no_text")

        group_id, user = message.group_id, message.user
        try:
            await self.settings.record_user(user)
        except StorageError as exc:
            logger.warning("[MODERATION PIPELINE] Could not record user %s: %s", user.id, exc)

        settings = await self.settings.get_group_settings(group_id)
        if str(user.id) in {str(aid) for aid in message.admin_ids} or settings.is_moderator(user.id):
            return ModerationResult(ModerationStatus.SKIPPED, skip_reason="moderator")

        await self._forgive_good_behavior(message, settings)

        if settings.keyword_whitelist_bypass and settings.matching_keywords(message.text):
            logger.info("[MODERATION PIPELINE] Ignoring message from %s due to whitelisted keyword bypass", user.id)
            return ModerationResult(ModerationStatus.SKIPPED, skip_reason="whitelisted_keyword")

        scores = await self.classifier.classify(message.text, settings.whitelisted_keywords)
        excerpt = message.text[:EXCERPT_LENGTH]
        await self.audit_log.append(group_id, user.id, ScannedPayload(
            user=user,
            message_excerpt=excerpt,
            spam_score=scores.spam_score,
            profanity_score=scores.profanity_score,
            profanity_type=scores.profanity_type,
            message_length=len(message.text),
        ))
        logger.debug("[MODERATION PIPELINE] Message from %s in %s scored spam=%.2f profanity=%.2f",
                     user.id, group_id, scores.spam_score, scores.profanity_score)

        violation_type = detect_violation(scores, settings)
        if violation_type is None:
            return ModerationResult(ModerationStatus.CLEAN, scores=scores)

        deleted = True
        try:
            await self.enforcement.delete_message(group_id, message.message_id)
        except Exception as exc:
            deleted = False
            logger.warning("[MODERATION PIPELINE] Could not delete message %s in %s: %s",
                           message.message_id, group_id, exc)

        if violation_type is ViolationType.SPAM:
            score, threshold, reason = scores.spam_score, settings.spam_threshold, "Promotional content detected"
        else:
            score, threshold = scores.profanity_score, settings.profanity_threshold
            reason = "Inappropriate language detected"
            if scores.profanity_type:
                reason = f"{reason} ({scores.profanity_type})"

        violation = ViolationPayload(
            violation_type=violation_type,
            user=user,
            message_excerpt=excerpt,
            reason=reason,
            spam_score=scores.spam_score,
            profanity_score=scores.profanity_score,
            profanity_type=scores.profanity_type,
            classification_score=score,
            message_length=len(message.text),
            threshold_exceeded=threshold,
            action="message_deleted" if deleted else "message_flagged",
        )

        # Expired strikes must be cleared before the increment
        await self.ledger.get_strikes(group_id, user.id)
        new_count = await self.ledger.record_strike(group_id, user.id, violation)
        escalation = await self.escalator.evaluate(group_id, user, new_count, settings, violation)

        return ModerationResult(
            status=ModerationStatus.VIOLATION,
            scores=scores,
            violation_type=violation_type,
            message_deleted=deleted,
            strike_count=new_count,
            escalation=escalation,
        )
