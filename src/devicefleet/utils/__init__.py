"""Core utility modules for devicefleet."""

from .config import CONFIG_DIR, CONFIG_FILE_YAML, Config
from .logging_config import LoggingConfig, get_logger, setup_logging
from .validators import validate_index_range, validate_rest_settings

__all__ = [
    "CONFIG_DIR",
    "CONFIG_FILE_YAML",
    "Config",
    "LoggingConfig",
    "get_logger",
    "setup_logging",
    "validate_index_range",
    "validate_rest_settings",
]
