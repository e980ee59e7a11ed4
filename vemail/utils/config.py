"""Configuration manager for persistent settings stored as JSON."""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import (
    ConfigurationError,
    FileSystemError,
    InvalidConfigError,
    MissingConfigError,
    VemailError,
)
from .logging import get_logger, log_call
from .paths import ACCOUNT_CACHE_PATH, CONFIG_PATH

logger = get_logger(__name__)

USER_ENV_VAR = "VEMAIL_USER"


class ServiceConfig(BaseModel):
    """Remote service endpoints and HTTP timeouts."""

    account_service_url: str = "https://vemail-api.vegvisr.org"
    default_store_url: str = "https://vemail-store-worker.post-e91.workers.dev"
    request_timeout: float = 15.0  # in seconds
    connect_timeout: float = 5.0  # in seconds


class SessionConfig(BaseModel):
    """Signed-in user and mailbox view defaults."""

    user_email: str = ""
    page_size: int = 50
    default_folder: str = "inbox"


class CacheConfig(BaseModel):
    """Local account cache location."""

    path: str = str(ACCOUNT_CACHE_PATH)
    namespace_key: str = "vemail_accounts"


class SyncConfig(BaseModel):
    """Retry policy for background cloud sync."""

    max_attempts: int = 1
    backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0


class LoggingConfig(BaseModel):
    """Pydantic model for logging settings."""

    log_level: str = "INFO"
    console_level: str = "WARNING"
    max_file_size: int = 5_242_880  # 5 MB
    backup_count: int = 5


class AppConfig(BaseModel):
    """Pydantic model for overall application configuration."""

    version: str = "0.1.0"
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """Manages persistent application configuration."""

    _instance = None
    _initialized = False

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_path: Optional[Path] = None):
        if not ConfigManager._initialized:
            self.path = Path(config_path) if config_path else CONFIG_PATH
            self.config = self._load_or_create_config()
            logger.info(f"Configuration loaded from {self.path}")
            ConfigManager._initialized = True

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the loaded singleton so the next call re-reads from disk."""
        cls._instance = None
        cls._initialized = False

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
            raise InvalidConfigError(f"Configuration file is not valid JSON: {str(e)}") from e
        except ValidationError as e:
            logger.error(f"Failed to validate config file: {e}")
            raise InvalidConfigError(f"Configuration data does not match expected schema: {str(e)}") from e
        except OSError as e:
            raise FileSystemError(f"Failed to read configuration file: {self.path}") from e
        except TypeError as e:
            raise InvalidConfigError(f"Configuration file must contain a JSON object: {str(e)}") from e

    def _save_config(self, config: Optional[AppConfig] = None):
        """Save the current configuration to file."""

        config = config or self.config

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(config.model_dump(), f, indent=2, ensure_ascii=False)
            logger.debug("Configuration successfully saved.")
        except OSError as e:
            raise FileSystemError(f"Failed to write configuration file: {str(e)}") from e

    @property
    def user_email(self) -> str:
        """Signed-in user identity; ``VEMAIL_USER`` wins over the stored value."""
        return os.environ.get(USER_ENV_VAR) or self.config.session.user_email

    def get_config(self, key_path: str, default: Any = None) -> Any:
        """Get a configuration value using dot-separated key path."""

        obj: Any = self.config
        for key in key_path.split("."):
            if not hasattr(obj, key):
                return default
            obj = getattr(obj, key)

        if isinstance(obj, BaseModel):
            return obj.model_dump()
        return obj

    @log_call
    def set_config(self, key_path: str, value: Any, persist: bool = True):
        """Set a configuration value using dot-separated key path.

        String values are coerced to the field's type, so ``"30"`` works for
        ``service.request_timeout``.
        """

        keys = key_path.split(".")
        obj: Any = self.config

        for key in keys[:-1]:
            if not hasattr(obj, key):
                raise MissingConfigError(f"Configuration path '{key_path}' is invalid: '{key}' not found")
            obj = getattr(obj, key)

        if not isinstance(obj, BaseModel) or keys[-1] not in type(obj).model_fields:
            raise MissingConfigError(f"Configuration key '{keys[-1]}' does not exist in path '{key_path}'")

        try:
            data = obj.model_dump()
            data[keys[-1]] = value
            validated = type(obj).model_validate(data)
        except ValidationError as e:
            raise InvalidConfigError(f"Invalid value for '{key_path}': {value!r}") from e

        setattr(obj, keys[-1], getattr(validated, keys[-1]))

        if persist:
            self._save_config()

        logger.info(f"Config key '{key_path}' updated.")

    @log_call
    def reset_to_defaults(self):
        """Reset configuration to default values."""

        logger.warning("Resetting configuration to default values.")
        self.config = AppConfig()
        self._save_config()

    @log_call
    def backup_config(self) -> Path:
        """Create a backup of the current configuration file."""

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        backup_path = self.path.with_name(f"config_backup_{timestamp}.json")

        try:
            with open(backup_path, "w", encoding="utf-8") as f:
                json.dump(self.config.model_dump(), f, indent=2)

        except OSError as e:
            raise FileSystemError(f"Failed to write backup file: {str(e)}") from e
        except VemailError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Failed to backup configuration: {str(e)}") from e

        logger.info(f"Configuration backup created at {backup_path}")
        return backup_path
