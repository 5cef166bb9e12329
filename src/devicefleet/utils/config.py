"""Configuration utilities for devicefleet."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

console = Console()

CONFIG_DIR = Path.home() / ".devicefleet"
CONFIG_FILE_YAML = CONFIG_DIR / "config.yaml"

# Connection to the management API
DEFAULT_REST_CONFIG = {
    "url": "http://localhost:8080",
    "username": "tenant@thingsboard.org",
    "password": "tenant",
    "timeout": 30,
    "verify_ssl": True,
}

# Fleet shape; the index range is half-open [start_idx, end_idx)
DEFAULT_DEVICE_CONFIG = {
    "start_idx": 0,
    "end_idx": 1000,
    "type": "default",
    "name_prefix": "Device ",
}

# Bulk phase tuning
DEFAULT_BULK_CONFIG = {
    "workers": 100,
    "progress_interval": 1.0,  # seconds between progress lines
    "refresh_interval": 600.0,  # 10 minutes between re-logins
    "settle_interval": 1.0,  # grace period before the removal summary
}

DEFAULT_LOGGING_CONFIG = {
    "level": "INFO",
    "file_enabled": False,
    "directory": "~/.devicefleet/logs",
    "format": "detailed",
}


class Config:
    """Manages devicefleet configuration stored as YAML."""

    def __init__(self):
        """Initialize the configuration manager."""
        self.config_data: Dict[str, Any] = {}
        self._config_loaded = False
        self._config_dir_ensured = False

    def _ensure_config_dir(self):
        """Ensure the configuration directory exists."""
        if not self._config_dir_ensured:
            config_dir = getattr(self, "_config_dir", CONFIG_DIR)
            if not config_dir.exists():
                config_dir.mkdir(parents=True)
                console.print(f"Created configuration directory: {config_dir}")
            self._config_dir_ensured = True

    def _ensure_config_loaded(self):
        """Ensure configuration is loaded from file."""
        if not self._config_loaded:
            self._ensure_config_dir()
            self._load_config()
            self._config_loaded = True

    def reload_config(self):
        """Force reload configuration from file."""
        self._config_loaded = False
        self._ensure_config_loaded()

    def _load_config(self):
        """Load configuration from the YAML file, if present."""
        config_file_yaml = getattr(self, "_config_file_yaml", CONFIG_FILE_YAML)
        if not config_file_yaml.exists():
            self.config_data = {}
            return

        try:
            with open(config_file_yaml, "r", encoding="utf-8") as f:
                self.config_data = yaml.safe_load(f) or {}

            self._expand_tilde_paths()

        except yaml.YAMLError as e:
            console.print(
                f"[red]Error: Configuration file {config_file_yaml} is not valid YAML: {e}[/red]"
            )
            self.config_data = {}
        except OSError as e:
            console.print(f"[red]Error reading configuration file {config_file_yaml}: {e}[/red]")
            self.config_data = {}

    def _expand_tilde_paths(self):
        """Expand tilde (~) paths in configuration sections."""
        for section_data in self.config_data.values():
            if isinstance(section_data, dict):
                for key, value in section_data.items():
                    if isinstance(value, str) and value.startswith("~"):
                        section_data[key] = str(Path(value).expanduser())

    def save_config(self):
        """Save the configuration to YAML file."""
        self._ensure_config_dir()
        config_file_yaml = getattr(self, "_config_file_yaml", CONFIG_FILE_YAML)
        try:
            with open(config_file_yaml, "w", encoding="utf-8") as f:
                yaml.dump(self.config_data, f, default_flow_style=False, indent=2, sort_keys=False)
        except OSError as e:
            console.print(f"[red]Error saving configuration: {e}[/red]")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value with dot notation support.

        Args:
            key: Configuration key (supports dot notation like "bulk.workers")
            default: Default value if key doesn't exist

        Returns:
            Configuration value
        """
        self._ensure_config_loaded()

        value: Any = self.config_data
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any):
        """
        Set a configuration value and save it.

        Args:
            key: Configuration key (supports dot notation like "rest.url")
            value: Configuration value
        """
        self._ensure_config_loaded()

        keys = key.split(".")
        target = self.config_data
        for k in keys[:-1]:
            if not isinstance(target.get(k), dict):
                target[k] = {}
            target = target[k]
        target[keys[-1]] = value

        self.save_config()

    def delete(self, key: str) -> bool:
        """
        Delete a configuration value.

        Args:
            key: Configuration key (supports dot notation)

        Returns:
            True if the key existed and was removed
        """
        self._ensure_config_loaded()

        keys = key.split(".")
        target = self.config_data
        for k in keys[:-1]:
            target = target.get(k)
            if not isinstance(target, dict):
                return False
        if keys[-1] not in target:
            return False

        del target[keys[-1]]
        self.save_config()
        return True

    def get_all(self) -> Dict[str, Any]:
        """
        Get all configuration values from the file.

        Returns:
            All configuration values
        """
        self._ensure_config_loaded()
        return copy.deepcopy(self.config_data)

    def get_effective_config(self) -> Dict[str, Any]:
        """
        Get every section with defaults and environment overrides applied.

        Returns:
            Mapping of section name to effective settings
        """
        return {
            "rest": self.get_rest_config(),
            "device": self.get_device_config(),
            "bulk": self.get_bulk_config(),
            "logging": self.get_logging_config(),
        }

    def get_rest_config(self) -> Dict[str, Any]:
        """
        Get REST connection configuration with defaults and environment variable overrides.

        Returns:
            REST configuration dictionary
        """
        rest_config = self._section("rest", DEFAULT_REST_CONFIG)

        rest_config["url"] = self._get_env_str("DEVICEFLEET_REST_URL", rest_config["url"])
        rest_config["username"] = self._get_env_str(
            "DEVICEFLEET_REST_USERNAME", rest_config["username"]
        )
        rest_config["password"] = self._get_env_str(
            "DEVICEFLEET_REST_PASSWORD", rest_config["password"]
        )
        rest_config["timeout"] = self._get_env_float(
            "DEVICEFLEET_REST_TIMEOUT", rest_config["timeout"]
        )
        rest_config["verify_ssl"] = self._get_env_bool(
            "DEVICEFLEET_REST_VERIFY_SSL", rest_config["verify_ssl"]
        )

        return rest_config

    def get_device_config(self) -> Dict[str, Any]:
        """
        Get device range configuration with defaults and environment variable overrides.

        Returns:
            Device configuration dictionary
        """
        device_config = self._section("device", DEFAULT_DEVICE_CONFIG)

        device_config["start_idx"] = self._get_env_int(
            "DEVICEFLEET_DEVICE_START_IDX", device_config["start_idx"]
        )
        device_config["end_idx"] = self._get_env_int(
            "DEVICEFLEET_DEVICE_END_IDX", device_config["end_idx"]
        )

        return device_config

    def get_bulk_config(self) -> Dict[str, Any]:
        """
        Get bulk phase configuration with defaults and environment variable overrides.

        Returns:
            Bulk configuration dictionary
        """
        bulk_config = self._section("bulk", DEFAULT_BULK_CONFIG)

        bulk_config["workers"] = self._get_env_int(
            "DEVICEFLEET_BULK_WORKERS", bulk_config["workers"]
        )

        return bulk_config

    def get_logging_config(self) -> Dict[str, Any]:
        """
        Get logging configuration with defaults and environment variable overrides.

        Returns:
            Logging configuration dictionary
        """
        logging_config = self._section("logging", DEFAULT_LOGGING_CONFIG)

        logging_config["level"] = self._get_env_str(
            "DEVICEFLEET_LOG_LEVEL", logging_config["level"]
        ).upper()
        logging_config["directory"] = str(Path(logging_config["directory"]).expanduser())

        return logging_config

    def validate_bulk_config(self, bulk_config: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Validate bulk configuration.

        Args:
            bulk_config: Bulk configuration to validate. If None, uses current config.

        Returns:
            List of validation errors
        """
        if bulk_config is None:
            bulk_config = self.get_bulk_config()

        errors = []

        workers = bulk_config.get("workers")
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            errors.append("workers must be a positive integer")
        elif workers > 1000:
            errors.append("workers cannot exceed 1000")

        for field in ("progress_interval", "refresh_interval"):
            value = bulk_config.get(field)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                errors.append(f"{field} must be a positive number of seconds")

        settle = bulk_config.get("settle_interval")
        if isinstance(settle, bool) or not isinstance(settle, (int, float)) or settle < 0:
            errors.append("settle_interval must be a non-negative number of seconds")

        return errors

    def get_config_file_path(self) -> Path:
        """
        Get the path to the configuration file.

        Returns:
            Path to the configuration file
        """
        return getattr(self, "_config_file_yaml", CONFIG_FILE_YAML)

    def _section(self, name: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
        """Merge a config file section over its defaults."""
        self._ensure_config_loaded()
        section = dict(defaults)

        file_section = self.config_data.get(name, {})
        if isinstance(file_section, dict):
            section.update(file_section)
        return section

    def _get_env_str(self, env_var: str, default: str) -> str:
        """
        Get string value from environment variable.

        Args:
            env_var: Environment variable name
            default: Default value if env var is not set

        Returns:
            String value
        """
        value = os.environ.get(env_var)
        if value is None or value == "":
            return default
        return value

    def _get_env_bool(self, env_var: str, default: bool) -> bool:
        """
        Get boolean value from environment variable.

        Args:
            env_var: Environment variable name
            default: Default value if env var is not set

        Returns:
            Boolean value
        """
        value = os.environ.get(env_var)
        if value is None:
            return default
        return value.lower() in ("true", "1", "yes", "on")

    def _get_env_int(self, env_var: str, default: int) -> int:
        """
        Get integer value from environment variable.

        Args:
            env_var: Environment variable name
            default: Default value if env var is not set

        Returns:
            Integer value
        """
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            console.print(
                f"Warning: Invalid integer value for {env_var}: {value}. Using default: {default}"
            )
            return default

    def _get_env_float(self, env_var: str, default: float) -> float:
        """Get float value from environment variable."""
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            console.print(
                f"Warning: Invalid number for {env_var}: {value}. Using default: {default}"
            )
            return default
