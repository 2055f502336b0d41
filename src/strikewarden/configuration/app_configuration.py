from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from strikewarden.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("STRIKEWARDEN_CONFIG", "./config/app_config.yml")).resolve()

# Defaults applied to every group that has not stored its own value
DEFAULT_GROUP_SETTINGS: Dict[str, Any] = {
    "alertLevel": 1,
    "muteLevel": 2,
    "kickLevel": 3,
    "banLevel": 0,
    "muteDurationMinutes": 60,
    "strikeExpirationDays": 30,
    "spamThreshold": 0.85,
    "profanityThreshold": 0.7,
    "profanityEnabled": True,
    "warningMessage": "⚠️ {user}, please avoid posting promotional/banned content.",
    "profanityWarningMessage": "⚠️ {user}, please keep your language appropriate and respectful.",
    "warningMessageDeleteSeconds": 15,
    "moderatorIds": [],
    "keywordWhitelistBypass": True,
    "goodBehaviorDays": 7,
}


class AppConfig:
    """File-lock based accessor around the YAML application configuration.

    Caches the contents of ``./config/app_config.yml`` and exposes typed
    shortcuts for the database, audit and analytics settings. Missing keys fall
    back to built-in defaults, so an absent file yields a working configuration.
    """

    def __init__(self, config_path: Path = CONFIG_PATH) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
            return {}
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
            return {}

        if not isinstance(data, dict):
            logger.error("[APP CONFIGURATION] Config %s is not a mapping, ignoring it.", self.config_path)
            return {}
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name, {})
        return section if isinstance(section, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Re-read the YAML file and return the loaded mapping (empty on error)."""
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def database_path(self) -> Path:
        """Database file; ``STRIKEWARDEN_DB_PATH`` takes precedence over the YAML value."""
        env_path = os.getenv("STRIKEWARDEN_DB_PATH")
        if env_path:
            return Path(env_path).resolve()
        value = self._section("database").get("path", "./data/strikewarden.db")
        return Path(str(value)).resolve()

    @property
    def slow_query_threshold_ms(self) -> float:
        return float(self._section("database").get("slow_query_threshold_ms", 100.0))

    @property
    def group_defaults(self) -> Dict[str, Any]:
        """Built-in group defaults overlaid with the ``group_defaults`` section."""
        merged = dict(DEFAULT_GROUP_SETTINGS)
        merged.update(self._section("group_defaults"))
        return merged

    @property
    def audit_max_page_size(self) -> int:
        return int(self._section("audit").get("max_page_size", 200))

    @property
    def audit_default_page_size(self) -> int:
        return int(self._section("audit").get("default_page_size", 50))

    @property
    def audit_export_limit(self) -> int:
        return int(self._section("audit").get("export_limit", 10000))

    @property
    def response_window_seconds(self) -> int:
        """Maximum delay between a violation and the penalty it is paired with."""
        return int(self._section("analytics").get("response_window_seconds", 300))

    @property
    def repeat_offender_limit(self) -> int:
        return int(self._section("analytics").get("repeat_offender_limit", 10))

    @property
    def top_violation_types_limit(self) -> int:
        return int(self._section("analytics").get("top_violation_types", 5))


app_config = AppConfig()
