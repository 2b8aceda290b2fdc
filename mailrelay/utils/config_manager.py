"""Configuration manager for persistent settings stored as JSON."""

import json
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import (
    ConfigurationError,
    FileSystemError,
    InvalidConfigError,
    MailRelayError,
)
from .logging import get_logger, log_call
from .paths import CONFIG_PATH

logger = get_logger(__name__)


class SMTPConfig(BaseModel):
    """Pydantic model for SMTP session defaults."""

    timeout: float = Field(default=30.0, gt=0)  # per read/write, in seconds
    strict_replies: bool = False
    wrap_body: bool = True
    client_hostname: str = "localhost"


class CampaignConfig(BaseModel):
    """Pydantic model for batch sending."""

    pause_seconds: float = Field(default=0.5, ge=0)


class LoggingConfig(BaseModel):
    """Pydantic model for logging settings."""

    log_level: str = "INFO"
    console_level: str = "WARNING"
    file_level: str = "DEBUG"
    max_file_size: int = 5_242_880  # 5 MB
    backup_count: int = 5


class AppConfig(BaseModel):
    """Pydantic model for overall application configuration."""

    version: str = "0.1.0"
    smtp: SMTPConfig = Field(default_factory=SMTPConfig)
    campaign: CampaignConfig = Field(default_factory=CampaignConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages persistent application configuration."""

    def __init__(self, config_path: Optional[Path] = None):
        self.path = Path(config_path) if config_path else CONFIG_PATH
        self.config = self._load_or_create_config()
        logger.info(f"Configuration loaded from {self.path}")

    def _load_or_create_config(self) -> AppConfig:
        """Load configuration from file or create default if not present."""

        if not self.path.exists():
            logger.info("No config file found, creating default configuration.")
            config = AppConfig()
            self._save_config(config)
            return config

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            config = AppConfig(**data)
            logger.debug("Configuration successfully loaded and validated.")
            return config

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse config file: {e}")
            raise InvalidConfigError(
                f"Configuration file is not valid JSON: {str(e)}"
            ) from e
        except ValidationError as e:
            logger.error(f"Failed to validate config file: {e}")
            raise InvalidConfigError(
                f"Configuration data does not match expected schema: {str(e)}"
            ) from e
        except TypeError as e:
            raise InvalidConfigError(
                f"Configuration file must contain a JSON object: {str(e)}"
            ) from e
        except OSError as e:
            raise FileSystemError(f"Failed to read configuration file: {str(e)}") from e

    def _save_config(self, config: Optional[AppConfig] = None):
        """Save the current configuration to file."""

        config = config or self.config

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(), f, indent=2, ensure_ascii=False)
            logger.debug("Configuration successfully saved.")
        except OSError as e:
            raise FileSystemError(
                f"Failed to write configuration file: {str(e)}"
            ) from e

    @log_call
    def set_config(self, key_path: str, value: Any, persist: bool = True):
        """Set a configuration value using dot-separated key path."""

        keys = key_path.split(".")
        section = self.config

        for key in keys[:-1]:
            if not isinstance(getattr(section, key, None), BaseModel):
                raise InvalidConfigError(
                    f"Configuration path '{key_path}' is invalid: '{key}' not found"
                )
            section = getattr(section, key)

        if keys[-1] not in type(section).model_fields:
            raise InvalidConfigError(
                f"Configuration key '{keys[-1]}' does not exist in path '{key_path}'"
            )

        try:
            updated = section.model_validate(
                {**section.model_dump(), keys[-1]: value}
            )
        except ValidationError as e:
            raise InvalidConfigError(
                f"Invalid value for '{key_path}': {str(e)}"
            ) from e

        setattr(section, keys[-1], getattr(updated, keys[-1]))

        if persist:
            self._save_config()

        logger.info(f"Config key '{key_path}' updated.")

    @log_call
    def reset_to_defaults(self):
        """Reset configuration to default values."""

        try:
            logger.warning("Resetting configuration to default values.")
            self.config = AppConfig()
            self._save_config()
        except MailRelayError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to reset configuration to defaults: {str(e)}"
            ) from e


## Module-level ConfigManager Instance

_config_manager: Optional[ConfigManager] = None


def get_config_manager() -> ConfigManager:
    """Get the shared ConfigManager, loading it on first access."""

    global _config_manager

    if _config_manager is None:
        _config_manager = ConfigManager()

    return _config_manager


def set_config_manager(manager: Optional[ConfigManager]) -> None:
    """Replace the shared ConfigManager (None forces a reload on next access)."""

    global _config_manager
    _config_manager = manager
