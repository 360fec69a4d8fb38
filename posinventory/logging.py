#!/usr/bin/env python3
"""
Logging configuration for the POS inventory application.

Features:
- Rich console formatting for development logs
- Rotating file handlers for production logging
- Quick debug mode activation via --debug, DEBUG=1 or POSINV_DEBUG=1
"""
import logging
import os
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

from posinventory.config import DEFAULT_HOME, LogLevel, POSInventoryConfig


DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
RICH_LOG_FORMAT = "%(message)s"
MAX_LOG_SIZE = 10 * 1024 * 1024  # 10 MB
APP_NAME = "posinventory"


LOG_LEVEL_MAP = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
    LogLevel.CRITICAL: logging.CRITICAL,
}


class LoggingMode(str, Enum):
    """Mode for logging configuration."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"


def get_environment_log_level() -> Optional[int]:
    """
    Check for debug flags in environment variables.

    Supports DEBUG=1, POSINV_DEBUG=1 and POSINV_LOGLEVEL=<level name>.
    """
    if os.environ.get("DEBUG") == "1" or os.environ.get("POSINV_DEBUG") == "1":
        return logging.DEBUG

    level_name = os.environ.get("POSINV_LOGLEVEL")
    if level_name:
        numeric_level = getattr(logging, level_name.upper(), None)
        if isinstance(numeric_level, int):
            return numeric_level

    return None


def get_console_handler(rich: bool = True) -> logging.Handler:
    """Build the console handler, Rich-formatted unless ``rich`` is False."""
    if rich:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter(RICH_LOG_FORMAT))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))

    return handler


def get_file_handler(log_file: Path, backup_count: int = 5) -> logging.Handler:
    """Build a rotating file handler, creating the log directory if needed."""
    log_file.parent.mkdir(parents=True, exist_ok=True)

    handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_LOG_SIZE,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(DEFAULT_LOG_FORMAT))
    return handler


def resolve_log_level(
    config: Optional[POSInventoryConfig],
    log_level: Optional[Union[int, str, LogLevel]] = None,
    debug: bool = False,
) -> int:
    """
    Determine the effective log level. Priority:
    1. --debug flag
    2. explicit ``log_level`` argument
    3. environment variables
    4. configuration setting
    """
    if debug:
        return logging.DEBUG

    if isinstance(log_level, LogLevel):
        return LOG_LEVEL_MAP[log_level]
    if isinstance(log_level, int):
        return log_level
    if isinstance(log_level, str):
        numeric_level = getattr(logging, log_level.upper(), None)
        if isinstance(numeric_level, int):
            return numeric_level

    env_level = get_environment_log_level()
    if env_level is not None:
        return env_level

    if config is not None:
        return LOG_LEVEL_MAP.get(config.log_level, logging.INFO)

    return logging.INFO


def configure_logging(
    config: Optional[POSInventoryConfig] = None,
    mode: LoggingMode = LoggingMode.DEVELOPMENT,
    log_level: Optional[Union[int, str, LogLevel]] = None,
    log_file: Optional[Path] = None,
    debug: bool = False,
) -> None:
    """
    Configure the root logger.

    Development mode logs to a Rich console handler. Production mode also
    writes to a rotating file (``config.log_file`` or ~/.posinv/logs/app.log).
    """
    effective_level = resolve_log_level(config, log_level, debug)

    effective_log_file = log_file or (config.log_file if config else None)
    if effective_log_file is None and mode == LoggingMode.PRODUCTION:
        effective_log_file = DEFAULT_HOME / "logs" / "app.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(effective_level)

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    use_rich = mode == LoggingMode.DEVELOPMENT and (config is None or config.color_output)
    root_logger.addHandler(get_console_handler(rich=use_rich))

    if effective_log_file is not None:
        root_logger.addHandler(get_file_handler(
            effective_log_file,
            backup_count=config.backup_count if config else 5,
        ))

    logger.debug(
        f"Logging configured in {mode.value} mode at level "
        f"{logging.getLevelName(effective_level)}"
    )


# Module-level logger for convenience
logger = logging.getLogger(APP_NAME)
