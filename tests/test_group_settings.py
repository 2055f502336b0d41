"""Tests for group_settings module."""

import pytest
import yaml

from strikewarden.configuration.app_configuration import AppConfig
from strikewarden.configuration.group_settings import (
    SETTING_VALIDATORS,
    GroupSettings,
    GroupSettingsService,
)
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID
from strikewarden.datatypes.penalty_datatypes import GroupPenaltyPolicy
from strikewarden.repositories.settings_repo import SettingsRepo
from strikewarden.util.errors import NotFoundError, ValidationError

GROUP = GroupID("-1001234567890")


class TestGroupSettings:
    """Tests for the GroupSettings dataclass."""

    def test_defaults(self):
        settings = GroupSettings(group_id=GROUP)

        assert settings.policy == GroupPenaltyPolicy()
        assert settings.spam_threshold == 0.85
        assert settings.profanity_threshold == 0.7
        assert settings.profanity_enabled is True
        assert settings.warning_message_delete_seconds == 15
        assert settings.keyword_whitelist_bypass is True
        assert settings.good_behavior_days == 7

    def test_moderator_lookup(self):
        settings = GroupSettings(group_id=GROUP, moderator_ids=[UserID("42")])

        assert settings.is_moderator(UserID("42")) is True
        assert settings.is_moderator(UserID("43")) is False

    def test_matching_keywords_case_insensitive(self):
        settings = GroupSettings(group_id=GROUP, whitelisted_keywords=["Giveaway", "promo"])

        assert settings.matching_keywords("Join our GIVEAWAY") == ["Giveaway"]
        assert settings.matching_keywords("nothing here") == []

    def test_to_dict_uses_setting_keys(self):
        data = GroupSettings(group_id=GROUP).to_dict()

        assert set(SETTING_VALIDATORS) <= set(data)
        assert data["whitelistedKeywords"] == []


class TestGroupSettingsService:
    """Tests for GroupSettingsService persistence and validation."""

    @pytest.mark.asyncio
    async def test_defaults_for_unknown_group(self, services):
        settings = await services.settings.get_group_settings(GROUP)

        assert settings.group_id == GROUP
        assert settings.policy.mute_level == 2
        assert settings.policy.strike_expiration_days == 30

    @pytest.mark.asyncio
    async def test_update_setting_persists(self, db, config, services):
        updated = await services.settings.update_setting(GROUP, "muteLevel", 5)
        assert updated.policy.mute_level == 5

        fresh = GroupSettingsService(db, config)
        assert (await fresh.get_policy(GROUP)).mute_level == 5

    @pytest.mark.asyncio
    async def test_update_list_and_bool_settings(self, services):
        await services.settings.update_setting(GROUP, "moderatorIds", [42, " 43 "])
        settings = await services.settings.update_setting(GROUP, "profanityEnabled", False)

        assert settings.moderator_ids == ["42", "43"]
        assert settings.profanity_enabled is False

    @pytest.mark.asyncio
    async def test_good_behavior_days_can_be_disabled(self, services):
        settings = await services.settings.update_setting(GROUP, "goodBehaviorDays", 0)
        assert settings.good_behavior_days == 0
        assert settings.to_dict()["goodBehaviorDays"] == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key,value", [
        ("unknownKey", 1),
        ("muteLevel", -1),
        ("muteLevel", True),
        ("muteLevel", "3"),
        ("spamThreshold", 1.5),
        ("profanityEnabled", "yes"),
        ("warningMessage", "   "),
        ("moderatorIds", "42"),
        ("goodBehaviorDays", -3),
    ])
    async def test_invalid_updates_rejected(self, services, key, value):
        with pytest.raises(ValidationError):
            await services.settings.update_setting(GROUP, key, value)

    @pytest.mark.asyncio
    async def test_invalid_stored_value_falls_back(self, db, config):
        async with db.transaction() as conn:
            await SettingsRepo.upsert(conn, GROUP, "kickLevel", -4)
            await SettingsRepo.upsert(conn, GROUP, "muteLevel", 6)

        settings = await GroupSettingsService(db, config).get_group_settings(GROUP)

        assert settings.policy.kick_level == 3
        assert settings.policy.mute_level == 6

    @pytest.mark.asyncio
    async def test_yaml_group_defaults(self, db, tmp_path):
        path = tmp_path / "app_config.yml"
        path.write_text(yaml.safe_dump({"group_defaults": {"muteLevel": 4, "banLevel": 6}}), encoding="utf-8")

        policy = await GroupSettingsService(db, AppConfig(path)).get_policy(GROUP)

        assert policy.mute_level == 4
        assert policy.ban_level == 6

    @pytest.mark.asyncio
    async def test_keyword_whitelist(self, services):
        assert await services.settings.add_keyword(GROUP, " giveaway ") == ["giveaway"]
        await services.settings.add_keyword(GROUP, "GIVEAWAY")
        assert await services.settings.list_keywords(GROUP) == ["giveaway"]

        settings = await services.settings.get_group_settings(GROUP)
        assert settings.whitelisted_keywords == ["giveaway"]

        assert await services.settings.remove_keyword(GROUP, "giveaway") is True
        assert await services.settings.remove_keyword(GROUP, "giveaway") is False
        assert (await services.settings.get_group_settings(GROUP)).whitelisted_keywords == []

    @pytest.mark.asyncio
    async def test_empty_keyword_rejected(self, services):
        with pytest.raises(ValidationError):
            await services.settings.add_keyword(GROUP, "   ")

    @pytest.mark.asyncio
    async def test_group_directory(self, services):
        await services.settings.register_group(GROUP, "Main Group")
        await services.settings.register_group(GROUP, "Renamed Group")
        await services.settings.register_group(GroupID("-100777"), "Another Group")

        assert (await services.settings.get_group(GROUP)).title == "Renamed Group"
        assert [g.title for g in await services.settings.list_groups()] == ["Another Group", "Renamed Group"]
        with pytest.raises(NotFoundError):
            await services.settings.get_group(GroupID("-100000"))

    @pytest.mark.asyncio
    async def test_record_user_updates_names(self, db, services):
        await services.settings.record_user(ChatUser(id=UserID("7"), first_name="Old"))
        await services.settings.record_user(ChatUser(id=UserID("7"), first_name="New", username="newname"))

        async with db.read() as conn:
            cursor = await conn.execute("SELECT first_name, username FROM users WHERE user_id = '7'")
            row = await cursor.fetchone()
        assert tuple(row) == ("New", "newname")
