"""
Configuration management for the Ruuvi REST publisher.
Loads configuration from environment variables with validation and defaults.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union
from dotenv import load_dotenv
import logging


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


class Config:
    """
    Configuration manager that loads settings from environment variables.
    Provides validation and type conversion for configuration values.
    """

    def __init__(self, env_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration manager.

        Args:
            env_file: Path to .env file (defaults to .env in the working directory)
        """
        self.logger = logging.getLogger(__name__)

        if env_file is None:
            env_file = Path.cwd() / ".env"

        if Path(env_file).exists():
            load_dotenv(env_file)
            self.logger.info(f"Loaded configuration from {env_file}")
        else:
            self.logger.debug(f"Environment file {env_file} not found, using system environment")

    def get_str(self, key: str, default: Optional[str] = None) -> str:
        """Get string configuration value."""
        value = os.getenv(key, default)
        if value is None:
            raise ConfigurationError(f"Required configuration key '{key}' not found")
        return value

    def get_optional_str(self, key: str) -> Optional[str]:
        """Get string configuration value, or None when unset or blank."""
        value = os.getenv(key)
        if value is None or not value.strip():
            return None
        return value

    def get_int(self, key: str, default: Optional[int] = None) -> int:
        """Get integer configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            return default

        try:
            return int(value)
        except ValueError:
            raise ConfigurationError(f"Configuration key '{key}' must be an integer, got '{value}'")

    def get_optional_int(self, key: str) -> Optional[int]:
        """Get integer configuration value, or None when unset or blank."""
        value = os.getenv(key)
        if value is None or not value.strip():
            return None
        return self.get_int(key)

    def get_float(self, key: str, default: Optional[float] = None) -> float:
        """Get float configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            return default

        try:
            return float(value)
        except ValueError:
            raise ConfigurationError(f"Configuration key '{key}' must be a float, got '{value}'")

    def get_bool(self, key: str, default: Optional[bool] = None) -> bool:
        """Get boolean configuration value."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            return default

        return value.lower() in ('true', '1', 'yes', 'on', 'enabled')

    def get_path(self, key: str, default: Optional[Union[str, Path]] = None) -> Path:
        """Get path configuration value. Relative paths resolve against the working directory."""
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise ConfigurationError(f"Required configuration key '{key}' not found")
            value = str(default)

        path = Path(value).expanduser()
        if not path.is_absolute():
            path = Path.cwd() / path

        return path

    # REST publisher configuration
    @property
    def endpoint_url(self) -> Optional[str]:
        return self.get_optional_str("RUUVI_REST_ENDPOINT_URL")

    @property
    def publish_mode(self) -> str:
        return self.get_str("RUUVI_REST_PUBLISH_MODE", "size").lower()

    @property
    def batch_size(self) -> int:
        return self.get_int("RUUVI_REST_BATCH_SIZE", 0)

    @property
    def max_batch_age(self) -> Optional[int]:
        return self.get_optional_int("RUUVI_REST_MAX_BATCH_AGE")

    @property
    def average_interval(self) -> int:
        return self.get_int("RUUVI_REST_AVERAGE_INTERVAL", 60)

    @property
    def sample_rate(self) -> int:
        return self.get_int("RUUVI_REST_SAMPLE_RATE", 0)

    @property
    def known_devices_only(self) -> bool:
        return self.get_bool("RUUVI_REST_KNOWN_DEVICES_ONLY", False)

    @property
    def trust_ssl(self) -> bool:
        return self.get_bool("RUUVI_REST_TRUST_SSL", False)

    @property
    def request_timeout(self) -> float:
        return self.get_float("RUUVI_REST_REQUEST_TIMEOUT", 10.0)

    @property
    def retry_attempts(self) -> int:
        return self.get_int("RUUVI_REST_RETRY_ATTEMPTS", 0)

    # BLE configuration
    @property
    def ble_adapter(self) -> str:
        return self.get_str("BLE_ADAPTER", "auto")

    @property
    def ble_queue_size(self) -> int:
        return self.get_int("BLE_QUEUE_SIZE", 1000)

    # Device registry
    @property
    def devices_file(self) -> Path:
        return self.get_path("DEVICES_FILE", "./config/devices.json")

    # Logging configuration
    @property
    def log_level(self) -> str:
        return self.get_str("LOG_LEVEL", "INFO").upper()

    @property
    def log_dir(self) -> Path:
        return self.get_path("LOG_DIR", "./logs")

    @property
    def log_max_file_size(self) -> int:
        return self.get_int("LOG_MAX_FILE_SIZE", 10 * 1024 * 1024)  # 10MB

    @property
    def log_backup_count(self) -> int:
        return self.get_int("LOG_BACKUP_COUNT", 5)

    @property
    def log_enable_console(self) -> bool:
        return self.get_bool("LOG_ENABLE_CONSOLE", True)

    @property
    def log_enable_syslog(self) -> bool:
        return self.get_bool("LOG_ENABLE_SYSLOG", False)

    def _batching_values(self) -> Dict[str, Any]:
        return {
            "publish_mode": self.publish_mode,
            "batch_size": self.batch_size,
            "max_batch_age": self.max_batch_age,
            "average_interval": self.average_interval,
            "sample_rate": self.sample_rate,
            "known_devices_only": self.known_devices_only,
        }

    def agent_options(self, **overrides: Any):
        """
        Build validated batching options for a sink without an endpoint.

        Environment values are used for every option that is not present in
        ``overrides`` (or is present with a value of None).

        Raises:
            ConfigurationError: If the resulting options are invalid
        """
        from ..publisher.options import AgentOptions

        values = self._batching_values()
        values.update({key: value for key, value in overrides.items() if value is not None})

        return AgentOptions.create(**values)

    def rest_agent_options(self, **overrides: Any):
        """
        Build validated options for publishing to the REST endpoint.

        Raises:
            ConfigurationError: If the endpoint is missing or any option is invalid
        """
        from ..publisher.options import RestAgentOptions

        values = self._batching_values()
        values.update({
            "endpoint_url": self.endpoint_url,
            "trust_ssl": self.trust_ssl,
            "request_timeout": self.request_timeout,
            "retry_attempts": self.retry_attempts,
        })
        values.update({key: value for key, value in overrides.items() if value is not None})

        if not values.get("endpoint_url"):
            raise ConfigurationError("An endpoint URL is required (RUUVI_REST_ENDPOINT_URL)")

        return RestAgentOptions.create(**values)

    def validate_configuration(self) -> bool:
        """
        Validate all non-agent configuration values.

        Returns:
            bool: True if configuration is valid

        Raises:
            ConfigurationError: If configuration is invalid
        """
        errors = []

        try:
            if self.ble_queue_size < 1:
                errors.append("BLE_QUEUE_SIZE must be at least 1")
        except ConfigurationError as e:
            errors.append(str(e))

        try:
            valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
            if self.log_level not in valid_levels:
                errors.append(f"LOG_LEVEL must be one of {valid_levels}")
            if self.log_max_file_size < 1:
                errors.append("LOG_MAX_FILE_SIZE must be positive")
            if self.log_backup_count < 0:
                errors.append("LOG_BACKUP_COUNT cannot be negative")
        except ConfigurationError as e:
            errors.append(str(e))

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"- {error}" for error in errors))

        return True

    def get_summary(self) -> Dict[str, Any]:
        """Get configuration summary for logging/debugging."""
        return {
            'rest': {
                'endpoint_url': self.endpoint_url,
                'publish_mode': self.publish_mode,
                'batch_size': self.batch_size,
                'max_batch_age': self.max_batch_age,
                'average_interval': self.average_interval,
                'sample_rate': self.sample_rate,
                'known_devices_only': self.known_devices_only,
                'trust_ssl': self.trust_ssl,
                'request_timeout': self.request_timeout,
                'retry_attempts': self.retry_attempts,
            },
            'ble': {
                'adapter': self.ble_adapter,
                'queue_size': self.ble_queue_size,
            },
            'devices': {
                'file': str(self.devices_file),
            },
            'logging': {
                'level': self.log_level,
                'dir': str(self.log_dir),
                'enable_console': self.log_enable_console,
                'enable_syslog': self.log_enable_syslog,
            },
        }
