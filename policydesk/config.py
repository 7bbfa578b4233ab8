"""Configuration management for policydesk.

Loads ``settings.yaml`` and ``.env`` from a config directory into a
Config object. Property getters provide typed access with defaults;
``dispatcher_options()`` turns the ``dispatcher`` section into a
validated ``DispatcherOptions``.

Environment variables override settings.yaml for dispatcher options:

    POLICYDESK_STRICT_MODE, POLICYDESK_MAX_CACHE_SIZE,
    POLICYDESK_ENABLE_HISTORY, POLICYDESK_DEFAULT_CHANNEL,
    POLICYDESK_TTL_MS, POLICYDESK_MAX_HISTORY_SIZE

Key classes:
    Config: Central configuration manager.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError
from .models import DispatcherOptions

logger = structlog.get_logger("policydesk.config")

ENV_PREFIX = "POLICYDESK_"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_value(raw: str) -> Any:
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    return raw.strip()


class Config:
    """Central configuration manager for policydesk.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = Path(config_dir)

        # Load environment variables
        env_file = self.config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if not filepath.exists():
            return {}
        try:
            with open(filepath, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Cannot parse {filename}: {e}", setting_name=filename
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{filename} must contain a mapping", setting_name=filename
            )
        return data

    # ------------------------------------------------------------------
    # Dispatcher
    # ------------------------------------------------------------------

    @property
    def dispatcher_settings(self) -> Dict[str, Any]:
        """The ``dispatcher`` section merged with POLICYDESK_* env vars."""
        section = self.settings.get("dispatcher", {}) or {}
        if not isinstance(section, dict):
            logger.error("dispatcher_settings_invalid_type", type=type(section).__name__)
            section = {}
        merged = dict(section)
        for name in DispatcherOptions.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                merged[name] = _env_value(raw)
        return merged

    def dispatcher_options(self) -> DispatcherOptions:
        """Build validated dispatcher options.

        Raises:
            ConfigurationError: A value is out of range or of the wrong
                type, or an unknown option is present.
        """
        values = self.dispatcher_settings
        unknown = sorted(set(values) - set(DispatcherOptions.model_fields))
        if unknown:
            raise ConfigurationError(
                f"Unknown dispatcher option(s): {', '.join(unknown)}",
                setting_name=unknown[0],
            )
        try:
            return DispatcherOptions.model_validate(values)
        except PydanticValidationError as e:
            first = e.errors()[0]
            setting = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid dispatcher option {setting}: {first.get('msg')}",
                setting_name=setting,
            ) from e

    @property
    def rules_file(self) -> Optional[Path]:
        """Optional YAML file of extra compliance rules."""
        configured = self.settings.get("rules_file")
        if not configured:
            return None
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = self.config_dir / path
        return path

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    @property
    def plugins_dir(self) -> Path:
        """Get plugins directory path."""
        configured = self.settings.get("plugins_dir")
        if configured:
            return Path(configured).expanduser()
        return self.config_dir.parent / "plugins"

    @property
    def builtin_plugins(self) -> List[str]:
        """Built-in plugins to install, in hook order."""
        plugins = self.settings.get("builtin_plugins", ["sanitizer", "audit"])
        if not isinstance(plugins, list):
            logger.error("builtin_plugins_invalid_type", type=type(plugins).__name__)
            return []
        return plugins

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"cache": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)

    def validate(self) -> bool:
        """Check settings at startup.

        Logs problems but does not raise; returns False if any were
        found so the caller can decide whether to continue.
        """
        ok = True
        try:
            self.dispatcher_options()
        except ConfigurationError as e:
            logger.error(
                "config_invalid_value",
                key=f"dispatcher.{e.setting_name}",
                error=e.message,
            )
            ok = False

        rules = self.rules_file
        if rules is not None and not rules.is_file():
            logger.error("rules_file_missing", path=str(rules))
            ok = False

        level = str(self.logging_level).upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            logger.warning("config_invalid_value", key="logging.level", value=level)
            ok = False
        return ok
