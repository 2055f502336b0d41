"""
Persistent per-group configuration for the moderation core.

Responsibilities:
- Merge per-group rows from the ``settings`` table over the defaults of the
  application configuration
- Validate and persist single-setting updates
- Maintain the keyword whitelist that lets matching messages bypass moderation
- Register groups and record chat users for analytics name lookups

Settings are keyed by their camelCase names (``muteLevel``, ``spamThreshold``)
so values written by older bot versions keep working.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import aiosqlite

from strikewarden.configuration.app_configuration import AppConfig, app_config
from strikewarden.database.database import Database
from strikewarden.datatypes.chat_datatypes import ChatUser, GroupID, UserID
from strikewarden.datatypes.penalty_datatypes import GroupPenaltyPolicy
from strikewarden.repositories.directory_repo import DirectoryRepo, GroupRow
from strikewarden.repositories.settings_repo import SettingsRepo
from strikewarden.util.errors import NotFoundError, StorageError, ValidationError
from strikewarden.util.logger import get_logger

logger = get_logger("group_settings")


@dataclass(slots=True)
class GroupSettings:
    """Effective configuration of one group (stored values over defaults)."""

    group_id: GroupID
    policy: GroupPenaltyPolicy = field(default_factory=GroupPenaltyPolicy)
    spam_threshold: float = 0.85
    profanity_threshold: float = 0.7
    profanity_enabled: bool = True
    warning_message: str = "⚠️ {user}, please avoid posting promotional/banned content."
    profanity_warning_message: str = "⚠️ {user}, please keep your language appropriate and respectful."
    warning_message_delete_seconds: int = 15
    moderator_ids: List[UserID] = field(default_factory=list)
    whitelisted_keywords: List[str] = field(default_factory=list)
    keyword_whitelist_bypass: bool = True
    good_behavior_days: int = 7

    def is_moderator(self, user_id: UserID) -> bool:
        return str(user_id) in {str(mid) for mid in self.moderator_ids}

    def matching_keywords(self, text: str) -> List[str]:
        """Whitelisted keywords contained in ``text`` (case-insensitive)."""
        lowered = text.lower()
        return [kw for kw in self.whitelisted_keywords if kw.lower() in lowered]

    def to_dict(self) -> Dict[str, Any]:
        data = self.policy.to_dict()
        data.update({
            "spamThreshold": self.spam_threshold,
            "profanityThreshold": self.profanity_threshold,
            "profanityEnabled": self.profanity_enabled,
            "warningMessage": self.warning_message,
            "profanityWarningMessage": self.profanity_warning_message,
            "warningMessageDeleteSeconds": self.warning_message_delete_seconds,
            "moderatorIds": [str(mid) for mid in self.moderator_ids],
            "whitelistedKeywords": list(self.whitelisted_keywords),
            "keywordWhitelistBypass": self.keyword_whitelist_bypass,
            "goodBehaviorDays": self.good_behavior_days,
        })
        return data


def _non_negative_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError("must be a non-negative integer")
    return value


def _probability(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        raise ValueError("must be a number between 0 and 1")
    return float(value)


def _boolean(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError("must be true or false")
    return value


def _template(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("must be a non-empty string")
    return value


def _id_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        raise ValueError("must be a list of user ids")
    return [str(item).strip() for item in value]


# Setting key -> validator returning the normalized value
SETTING_VALIDATORS: Dict[str, Callable[[Any], Any]] = {
    "alertLevel": _non_negative_int,
    "muteLevel": _non_negative_int,
    "kickLevel": _non_negative_int,
    "banLevel": _non_negative_int,
    "muteDurationMinutes": _non_negative_int,
    "strikeExpirationDays": _non_negative_int,
    "spamThreshold": _probability,
    "profanityThreshold": _probability,
    "profanityEnabled": _boolean,
    "warningMessage": _template,
    "profanityWarningMessage": _template,
    "warningMessageDeleteSeconds": _non_negative_int,
    "moderatorIds": _id_list,
    "keywordWhitelistBypass": _boolean,
    "goodBehaviorDays": _non_negative_int,
}


class GroupSettingsService:
    """
    Read/write access to per-group settings, keywords and the user directory.

    Effective settings are cached per group and invalidated on every write made
    through this service.
    """

    def __init__(self, database: Database, config: Optional[AppConfig] = None):
        self.database = database
        self.config = config or app_config
        self._cache: Dict[GroupID, GroupSettings] = {}

    def _build(self, group_id: GroupID, stored: Dict[str, Any], keywords: List[str]) -> GroupSettings:
        values = self.config.group_defaults
        for key, value in stored.items():
            validator = SETTING_VALIDATORS.get(key)
            if validator is None:
                logger.debug("[GROUP SETTINGS] Ignoring unknown stored key %s for group %s", key, group_id)
                continue
            try:
                values[key] = validator(value)
            except ValueError as exc:
                logger.warning("[GROUP SETTINGS] Stored %s for group %s %s, using default", key, group_id, exc)

        policy = GroupPenaltyPolicy(
            alert_level=values["alertLevel"],
            mute_level=values["muteLevel"],
            kick_level=values["kickLevel"],
            ban_level=values["banLevel"],
            mute_duration_minutes=values["muteDurationMinutes"],
            strike_expiration_days=values["strikeExpirationDays"],
        )
        return GroupSettings(
            group_id=group_id,
            policy=policy,
            spam_threshold=float(values["spamThreshold"]),
            profanity_threshold=float(values["profanityThreshold"]),
            profanity_enabled=bool(values["profanityEnabled"]),
            warning_message=values["warningMessage"],
            profanity_warning_message=values["profanityWarningMessage"],
            warning_message_delete_seconds=int(values["warningMessageDeleteSeconds"]),
            moderator_ids=[UserID(str(mid)) for mid in values["moderatorIds"]],
            whitelisted_keywords=keywords,
            keyword_whitelist_bypass=bool(values["keywordWhitelistBypass"]),
            good_behavior_days=int(values["goodBehaviorDays"]),
        )

    async def get_group_settings(self, group_id: GroupID) -> GroupSettings:
        """Return the effective settings of a group, loading them on first use."""
        cached = self._cache.get(group_id)
        if cached is not None:
            return cached

        async with self.database.read() as conn:
            stored = await SettingsRepo.get_all(conn, group_id)
            keywords = await SettingsRepo.list_keywords(conn, group_id)

        settings = self._build(group_id, stored, keywords)
        self._cache[group_id] = settings
        return settings

    async def get_policy(self, group_id: GroupID) -> GroupPenaltyPolicy:
        return (await self.get_group_settings(group_id)).policy

    async def update_setting(self, group_id: GroupID, key: str, value: Any) -> GroupSettings:
        """
        Validate and persist a single setting.

        Raises:
            ValidationError: Unknown key or invalid value.
            StorageError: The write failed.
        """
        validator = SETTING_VALIDATORS.get(key)
        if validator is None:
            raise ValidationError(f"Unknown setting: {key}", details={"key": key})
        try:
            normalized = validator(value)
        except ValueError as exc:
            raise ValidationError(f"Invalid value for {key}: {exc}", details={"key": key, "value": value}) from exc

        try:
            async with self.database.transaction() as conn:
                await SettingsRepo.upsert(conn, group_id, key, normalized)
        except aiosqlite.Error as exc:
            logger.error("[GROUP SETTINGS] Failed to store %s for group %s: %s", key, group_id, exc)
            raise StorageError(f"Failed to store setting {key}") from exc

        self._cache.pop(group_id, None)
        logger.info("[GROUP SETTINGS] Group %s set %s=%r", group_id, key, normalized)
        return await self.get_group_settings(group_id)

    # --------------------------
    # Keyword whitelist
    # --------------------------
    async def add_keyword(self, group_id: GroupID, keyword: str) -> List[str]:
        keyword = keyword.strip()
        if not keyword:
            raise ValidationError("Keyword must not be empty")
        try:
            async with self.database.transaction() as conn:
                await SettingsRepo.add_keyword(conn, group_id, keyword)
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to add keyword {keyword!r}") from exc

        self._cache.pop(group_id, None)
        return await self.list_keywords(group_id)

    async def remove_keyword(self, group_id: GroupID, keyword: str) -> bool:
        """Remove a keyword; returns False when it was not whitelisted."""
        try:
            async with self.database.transaction() as conn:
                removed = await SettingsRepo.remove_keyword(conn, group_id, keyword.strip())
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to remove keyword {keyword!r}") from exc

        self._cache.pop(group_id, None)
        return removed

    async def list_keywords(self, group_id: GroupID) -> List[str]:
        async with self.database.read() as conn:
            return await SettingsRepo.list_keywords(conn, group_id)

    # --------------------------
    # Groups and users
    # --------------------------
    async def register_group(self, group_id: GroupID, title: str) -> None:
        try:
            async with self.database.transaction() as conn:
                await DirectoryRepo.upsert_group(conn, group_id, title)
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to register group {group_id}") from exc
        logger.info("[GROUP SETTINGS] Registered group %s (%s)", group_id, title)

    async def get_group(self, group_id: GroupID) -> GroupRow:
        """Raises NotFoundError for groups that were never registered."""
        async with self.database.read() as conn:
            row = await DirectoryRepo.get_group(conn, group_id)
        if row is None:
            raise NotFoundError(f"Unknown group: {group_id}", details={"groupId": group_id})
        return row

    async def list_groups(self) -> List[GroupRow]:
        async with self.database.read() as conn:
            return await DirectoryRepo.list_groups(conn)

    async def record_user(self, user: ChatUser) -> None:
        try:
            async with self.database.transaction() as conn:
                await DirectoryRepo.upsert_user(conn, user.id, user.username, user.first_name, user.last_name)
        except aiosqlite.Error as exc:
            raise StorageError(f"Failed to record user {user.id}") from exc
