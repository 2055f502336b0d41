"""Tests for tier selection and penalty execution."""

from unittest.mock import AsyncMock, patch

import pytest

from strikewarden.datatypes.audit_datatypes import (
    ExecutedBy,
    PenaltyAction,
    PenaltyPayload,
    Severity,
    ViolationPayload,
    ViolationType,
)
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID
from strikewarden.datatypes.penalty_datatypes import GroupPenaltyPolicy, PenaltyTier
from strikewarden.moderation.penalty_escalator import PenaltyEscalator, select_tier
from strikewarden.util.errors import EnforcementError, StorageError

GROUP = GroupID("-1001234567890")
USER = ChatUser(id=UserID("123456789"), first_name="Bob", username="spammer")


@pytest.fixture
def escalator(services, enforcement):
    return PenaltyEscalator(enforcement, services.ledger, services.audit_log)


def violation(kind: ViolationType = ViolationType.SPAM, reason: str = "Promotional content detected"):
    return ViolationPayload(violation_type=kind, user=USER, reason=reason)


class TestSelectTier:
    """select_tier picks the deepest enabled threshold reached."""

    def test_default_policy_levels(self):
        policy = GroupPenaltyPolicy()
        assert select_tier(0, policy) is None
        assert select_tier(1, policy) is PenaltyTier.ALERT
        assert select_tier(2, policy) is PenaltyTier.MUTE
        assert select_tier(3, policy) is PenaltyTier.KICK

    def test_count_beyond_last_threshold(self):
        assert select_tier(5, GroupPenaltyPolicy()) is PenaltyTier.KICK

    def test_ban_enabled(self):
        policy = GroupPenaltyPolicy(ban_level=4)
        assert select_tier(4, policy) is PenaltyTier.BAN
        assert select_tier(3, policy) is PenaltyTier.KICK

    def test_equal_levels_resolve_to_most_severe(self):
        policy = GroupPenaltyPolicy(alert_level=0, mute_level=0, kick_level=3, ban_level=3)
        assert select_tier(3, policy) is PenaltyTier.BAN

    def test_disabled_tiers_skipped(self):
        policy = GroupPenaltyPolicy(alert_level=0, mute_level=2, kick_level=0, ban_level=0)
        assert select_tier(1, policy) is None
        assert select_tier(9, policy) is PenaltyTier.MUTE

    def test_all_disabled(self):
        policy = GroupPenaltyPolicy(alert_level=0, mute_level=0, kick_level=0, ban_level=0)
        assert select_tier(100, policy) is None

    def test_invalid_policy_rejected(self):
        with pytest.raises(ValueError):
            GroupPenaltyPolicy(mute_level=-1)


class TestEvaluate:
    """PenaltyEscalator.evaluate runs enforcement and records PENALTY events."""

    @pytest.mark.asyncio
    async def test_no_tier_does_nothing(self, services, escalator, enforcement):
        await services.settings.update_setting(GROUP, "alertLevel", 0)
        settings = await services.settings.get_group_settings(GROUP)

        outcome = await escalator.evaluate(GROUP, USER, 1, settings, violation())

        assert outcome.tier is None
        assert outcome.action is None
        enforcement.send_message.assert_not_called()
        assert (await services.audit_log.query(GROUP)).total == 0

    @pytest.mark.asyncio
    async def test_alert_sends_warning(self, services, escalator, enforcement):
        settings = await services.settings.get_group_settings(GROUP)

        outcome = await escalator.evaluate(GROUP, USER, 1, settings, violation())

        assert outcome.tier is PenaltyTier.ALERT
        assert outcome.executed is True
        enforcement.send_message.assert_awaited_once_with(
            GROUP,
            '⚠️ @spammer, please avoid posting promotional/banned content. '
            'Reason: "Promotional content detected" (Strike 1)',
            delete_after=15,
        )
        payload = outcome.penalty_event.payload
        assert isinstance(payload, PenaltyPayload)
        assert payload.action is PenaltyAction.USER_WARNED
        assert payload.severity is Severity.INFO
        assert payload.reason == "Strike warning"
        assert payload.executed_by is ExecutedBy.AUTO_MODERATOR
        assert payload.mute_duration_minutes is None

    @pytest.mark.asyncio
    async def test_alert_uses_profanity_template(self, services, escalator, enforcement):
        settings = await services.settings.get_group_settings(GROUP)

        await escalator.evaluate(GROUP, USER, 1, settings,
                                 violation(ViolationType.PROFANITY, "Inappropriate language detected"))

        text = enforcement.send_message.await_args.args[1]
        assert text.startswith("⚠️ @spammer, please keep your language appropriate and respectful.")

    @pytest.mark.asyncio
    async def test_warning_without_auto_delete(self, services, escalator, enforcement):
        await services.settings.update_setting(GROUP, "warningMessageDeleteSeconds", 0)
        settings = await services.settings.get_group_settings(GROUP)

        await escalator.evaluate(GROUP, USER, 1, settings, violation())

        assert enforcement.send_message.await_args.kwargs["delete_after"] is None

    @pytest.mark.asyncio
    async def test_mute_uses_policy_duration(self, services, escalator, enforcement):
        settings = await services.settings.get_group_settings(GROUP)

        outcome = await escalator.evaluate(GROUP, USER, 2, settings, violation())

        enforcement.mute.assert_awaited_once_with(GROUP, USER.id, 60)
        assert outcome.action is PenaltyAction.USER_MUTED
        assert outcome.strikes_reset is False
        payload = outcome.penalty_event.payload
        assert payload.severity is Severity.LOW
        assert payload.mute_duration_minutes == 60
        assert payload.strike_count == 2
        assert payload.reason == "Strike limit reached"
        assert payload.violation_type == "SPAM"

    @pytest.mark.asyncio
    async def test_kick_resets_strikes(self, services, escalator, enforcement):
        await services.ledger.set_strikes(GROUP, USER.id, 3)
        settings = await services.settings.get_group_settings(GROUP)

        outcome = await escalator.evaluate(GROUP, USER, 3, settings, violation())

        enforcement.kick.assert_awaited_once_with(GROUP, USER.id)
        assert outcome.strikes_reset is True
        assert outcome.penalty_event.payload.severity is Severity.MEDIUM
        assert (await services.ledger.get_strikes(GROUP, USER.id)).count == 0

    @pytest.mark.asyncio
    async def test_ban_resets_strikes(self, services, escalator, enforcement):
        await services.settings.update_setting(GROUP, "banLevel", 4)
        await services.ledger.set_strikes(GROUP, USER.id, 4)
        settings = await services.settings.get_group_settings(GROUP)

        outcome = await escalator.evaluate(GROUP, USER, 4, settings, violation())

        enforcement.ban.assert_awaited_once_with(GROUP, USER.id)
        enforcement.kick.assert_not_called()
        assert outcome.penalty_event.payload.severity is Severity.HIGH
        assert (await services.ledger.get_strikes(GROUP, USER.id)).count == 0

    @pytest.mark.asyncio
    async def test_kick_resets_strikes_when_penalty_append_fails(self, services, escalator, enforcement):
        await services.ledger.set_strikes(GROUP, USER.id, 3)
        settings = await services.settings.get_group_settings(GROUP)

        with patch.object(services.audit_log, "append", AsyncMock(side_effect=StorageError("disk I/O error"))):
            with pytest.raises(StorageError):
                await escalator.evaluate(GROUP, USER, 3, settings, violation())

        enforcement.kick.assert_awaited_once_with(GROUP, USER.id)
        assert (await services.ledger.get_strikes(GROUP, USER.id)).count == 0

    @pytest.mark.asyncio
    async def test_enforcement_failure_reported(self, services, escalator, enforcement):
        """A failed kick keeps the strikes and writes no PENALTY event."""
        enforcement.kick.side_effect = RuntimeError("not enough rights to restrict/unrestrict chat member")
        await services.ledger.set_strikes(GROUP, USER.id, 3)
        settings = await services.settings.get_group_settings(GROUP)

        outcome = await escalator.evaluate(GROUP, USER, 3, settings, violation())

        assert outcome.executed is False
        assert outcome.strikes_reset is False
        assert outcome.penalty_event is None
        assert isinstance(outcome.error, EnforcementError)
        assert outcome.error.action == "user_kicked"
        assert (await services.ledger.get_strikes(GROUP, USER.id)).count == 3
        assert (await services.audit_log.query(GROUP, event_type="PENALTY")).total == 0
