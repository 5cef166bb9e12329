"""Logging configuration for devicefleet."""

import json
import logging
import logging.handlers
import os
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

ROOT_LOGGER_NAME = "devicefleet"


class LogLevel(str, Enum):
    """Log levels for configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


@dataclass
class LoggingConfig:
    """Configuration for logging system."""

    level: LogLevel = LogLevel.INFO
    format_type: LogFormat = LogFormat.DETAILED
    enable_file_logging: bool = False
    enable_console_logging: bool = True
    log_directory: str = str(Path.home() / ".devicefleet" / "logs")
    log_filename: str = "devicefleet.log"
    max_file_size_mb: int = 10
    backup_count: int = 5
    include_thread_info: bool = True
    console_colors: bool = True
    log_http_requests: bool = False
    sensitive_data_patterns: List[str] = field(
        default_factory=lambda: [r"password", r"secret", r"refresh_?token"]
    )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        """Build from the ``logging`` section of the configuration file."""
        return cls(
            level=LogLevel(str(data.get("level", "INFO")).upper()),
            format_type=LogFormat(data.get("format", LogFormat.DETAILED.value)),
            enable_file_logging=bool(data.get("file_enabled", False)),
            log_directory=str(data.get("directory", cls.log_directory)),
        )


class SensitiveDataFilter(logging.Filter):
    """Filter to redact ``key=value`` / ``key: value`` secrets from log messages."""

    def __init__(self, patterns: List[str]) -> None:
        """
        Initialize the filter with sensitive key patterns.

        Args:
            patterns: Regex patterns matching the names of sensitive fields
        """
        super().__init__()
        self.patterns = patterns
        self.compiled_patterns = [
            re.compile(rf"({pattern}['\"]?\s*[:=]\s*['\"]?)[^\s,'\"}}]+", re.IGNORECASE)
            for pattern in patterns
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Redact sensitive data in place.

        Returns:
            bool: Always True (records are modified, never dropped)
        """
        if isinstance(record.msg, str):
            record.msg = self._redact_sensitive_data(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self._redact_sensitive_data(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True

    def _redact_sensitive_data(self, text: str) -> str:
        for pattern in self.compiled_patterns:
            text = pattern.sub(r"\1[REDACTED]", text)
        return text


class StructuredFormatter(logging.Formatter):
    """Formatter producing one JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """Console formatter with color support."""

    # ANSI color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def __init__(self, use_colors: bool = True, include_thread_info: bool = True) -> None:
        """
        Initialize the colored formatter.

        Args:
            use_colors: Whether to use colors in output
            include_thread_info: Whether to show the emitting thread's name
        """
        super().__init__()
        self.use_colors = use_colors and self._supports_color()
        self.include_thread_info = include_thread_info

    def _supports_color(self) -> bool:
        """Check if the terminal supports colors."""
        return (
            hasattr(sys.stdout, "isatty")
            and sys.stdout.isatty()
            and os.environ.get("TERM") != "dumb"
        )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        thread = f"[{record.threadName}] " if self.include_thread_info else ""

        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            level = f"{color}{record.levelname:<8}{self.COLORS['RESET']}"
        else:
            level = f"{record.levelname:<8}"

        formatted = f"[{timestamp}] {level} {thread}- {record.name} - {record.getMessage()}"
        if record.exc_info:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


class FleetLoggingManager:
    """
    Manager for devicefleet logging configuration.

    Installs console and optional rotating file handlers on the
    ``devicefleet`` logger. Modules keep using ``logging.getLogger(__name__)``.
    """

    def __init__(self, config: Optional[LoggingConfig] = None):
        """
        Initialize the logging manager.

        Args:
            config: Logging configuration
        """
        self.config = config or LoggingConfig()
        self._handlers_configured = False

    def setup_logging(self) -> None:
        """Set up handlers on the package root logger."""
        if self._handlers_configured:
            return

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(getattr(logging, self.config.level.value))
        root_logger.handlers.clear()

        if self.config.enable_console_logging:
            root_logger.addHandler(self._create_console_handler())

        if self.config.enable_file_logging:
            Path(self.config.log_directory).mkdir(parents=True, exist_ok=True)
            root_logger.addHandler(self._create_file_handler())

        self._configure_third_party_logging()
        self._handlers_configured = True

    def _create_console_handler(self) -> logging.Handler:
        """Create console handler with appropriate formatter."""
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, self.config.level.value))

        formatter: logging.Formatter
        if self.config.format_type == LogFormat.JSON:
            formatter = StructuredFormatter()
        elif self.config.format_type == LogFormat.SIMPLE:
            formatter = logging.Formatter("%(levelname)s - %(message)s")
        else:
            formatter = ColoredConsoleFormatter(
                use_colors=self.config.console_colors,
                include_thread_info=self.config.include_thread_info,
            )

        handler.setFormatter(formatter)
        if self.config.sensitive_data_patterns:
            handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _create_file_handler(self) -> logging.Handler:
        """Create rotating file handler with JSON records."""
        log_file = Path(self.config.log_directory) / self.config.log_filename

        handler = logging.handlers.RotatingFileHandler(
            filename=str(log_file),
            maxBytes=self.config.max_file_size_mb * 1024 * 1024,
            backupCount=self.config.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(getattr(logging, self.config.level.value))
        handler.setFormatter(StructuredFormatter())
        if self.config.sensitive_data_patterns:
            handler.addFilter(SensitiveDataFilter(self.config.sensitive_data_patterns))
        return handler

    def _configure_third_party_logging(self) -> None:
        """Reduce noise from HTTP libraries."""
        level = logging.DEBUG if self.config.log_http_requests else logging.WARNING
        for logger_name in ("urllib3", "urllib3.connectionpool", "requests"):
            logging.getLogger(logger_name).setLevel(level)

    def get_logger(self, name: str) -> logging.Logger:
        """
        Get a logger under the devicefleet namespace.

        Args:
            name: Logger name (usually module name)

        Returns:
            logging.Logger: Logger instance
        """
        if not self._handlers_configured:
            self.setup_logging()

        if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
            name = f"{ROOT_LOGGER_NAME}.{name}"
        return logging.getLogger(name)


# Global logging manager instance
_global_logging_manager: Optional[FleetLoggingManager] = None


def get_logging_manager() -> FleetLoggingManager:
    """Get the global logging manager instance."""
    global _global_logging_manager
    if _global_logging_manager is None:
        _global_logging_manager = FleetLoggingManager()
    return _global_logging_manager


def setup_logging(config: Optional[LoggingConfig] = None) -> FleetLoggingManager:
    """
    Set up logging for the CLI.

    Args:
        config: Logging configuration

    Returns:
        The installed logging manager
    """
    global _global_logging_manager
    _global_logging_manager = FleetLoggingManager(config)
    _global_logging_manager.setup_logging()
    return _global_logging_manager


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger."""
    return get_logging_manager().get_logger(name)
