#!/usr/bin/env python3
"""
Configuration management for the POS inventory core.

This module handles loading, merging, and validating configuration from:
1. Default values
2. User config file (~/.posinv/config.toml)
3. Environment variables (prefixed with POSINV_)
4. Command-line ``key=value`` overrides
"""
from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import tomli
import typer
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_HOME = Path.home() / ".posinv"
DEFAULT_CONFIG_FILE = DEFAULT_HOME / "config.toml"


class LogLevel(str, Enum):
    """Log levels for application logging."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class QueueConfig(BaseModel):
    """Write queue retry and sizing settings."""
    max_retries: int = 3
    retry_delay: float = 0.1
    max_pending: Optional[int] = None

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_retries must be at least 1, got {v}")
        return v

    @field_validator("retry_delay")
    @classmethod
    def validate_retry_delay(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"retry_delay cannot be negative, got {v}")
        return v

    @field_validator("max_pending")
    @classmethod
    def validate_max_pending(cls, v: Optional[int]) -> Optional[int]:
        if v is not None and v < 1:
            raise ValueError(f"max_pending must be a positive integer, got {v}")
        return v


class ReservationConfig(BaseModel):
    """Stock reservation settings."""
    expiration_minutes: int = 15

    @field_validator("expiration_minutes")
    @classmethod
    def validate_expiration(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"expiration_minutes must be positive, got {v}")
        return v


class PaymentConfig(BaseModel):
    """Secrets used to verify payment gateway callbacks."""
    vnpay_secret: Optional[str] = None
    momo_access_key: Optional[str] = None
    momo_secret_key: Optional[str] = None
    zalopay_key2: Optional[str] = None


class POSInventoryConfig(BaseSettings):
    """Main configuration model for the POS inventory application."""
    app_name: str = "POS Inventory"
    version: str = "0.1.0"

    # Storage settings
    database_path: Path = DEFAULT_HOME / "inventory.db"
    database_timeout: float = 5.0
    echo_sql: bool = False

    queue: QueueConfig = QueueConfig()
    reservations: ReservationConfig = ReservationConfig()
    payments: PaymentConfig = PaymentConfig()

    # Logging settings
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[Path] = None
    color_output: bool = True
    backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="POSINV_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
    )


NESTED_SECTIONS = {"queue": QueueConfig, "reservations": ReservationConfig, "payments": PaymentConfig}


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries, with values from override taking precedence.

    If both values are dictionaries, they are deep-merged recursively.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_toml_config(file_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load configuration from a TOML file.

    Returns an empty dict if the file doesn't exist or cannot be parsed.
    """
    try:
        path = Path(file_path)
        if not path.exists():
            return {}

        with open(path, "rb") as f:
            return tomli.load(f)
    except (tomli.TOMLDecodeError, PermissionError, IsADirectoryError) as e:
        typer.echo(f"Error loading config file {file_path}: {e}", err=True)
        return {}


def _set_nested(target: Dict[str, Any], parts: List[str], value: Any) -> None:
    current = target
    for part in parts[:-1]:
        current = current.setdefault(part, {})
    current[parts[-1]] = value


def env_to_config_dict(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Convert environment variables with the POSINV_ prefix to a nested config dictionary.

    Example: POSINV_QUEUE__MAX_RETRIES=5 becomes {'queue': {'max_retries': '5'}}
    """
    environ = os.environ if environ is None else environ
    prefix = POSInventoryConfig.model_config["env_prefix"]
    delimiter = POSInventoryConfig.model_config["env_nested_delimiter"]
    known = set(POSInventoryConfig.model_fields)

    config_dict: Dict[str, Any] = {}
    for key, value in environ.items():
        if not key.upper().startswith(prefix):
            continue
        parts = key[len(prefix):].lower().split(delimiter)
        # Flags like POSINV_DEBUG are read by the logging setup, not the model
        if parts[0] not in known:
            continue
        _set_nested(config_dict, parts, value)

    return config_dict


def cli_to_config_dict(overrides: List[str]) -> Dict[str, Any]:
    """
    Parse ``key=value`` overrides, with dotted keys for nested sections.

    Example: ``queue.retry_delay=0.5`` becomes {'queue': {'retry_delay': '0.5'}}
    A leading ``--`` is accepted and ignored.
    """
    config_dict: Dict[str, Any] = {}

    for item in overrides:
        item = item[2:] if item.startswith("--") else item
        if "=" not in item:
            typer.echo(f"Ignoring malformed config override: {item}", err=True)
            continue
        key, value = item.split("=", 1)
        _set_nested(config_dict, key.strip().lower().split("."), value)

    return config_dict


def _drop_unknown_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    filtered: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in POSInventoryConfig.model_fields:
            continue
        section = NESTED_SECTIONS.get(key)
        if section is not None and isinstance(value, dict):
            value = {k: v for k, v in value.items() if k in section.model_fields}
        filtered[key] = value
    return filtered


def load_config(
    config_file: Optional[Path] = None,
    cli_overrides: Optional[List[str]] = None,
    raise_unknown: bool = True,
    environ: Optional[Dict[str, str]] = None,
) -> POSInventoryConfig:
    """
    Load and merge configuration from all sources.

    Order of precedence (highest to lowest):
    1. CLI overrides
    2. Environment variables
    3. User config file
    4. Default values from POSInventoryConfig

    Raises:
        pydantic.ValidationError: If configuration is invalid or contains
            unknown fields while ``raise_unknown`` is set.
    """
    if config_file is None:
        config_file = DEFAULT_CONFIG_FILE

    merged: Dict[str, Any] = {}
    merged = deep_merge(merged, load_toml_config(config_file))
    merged = deep_merge(merged, env_to_config_dict(environ))
    merged = deep_merge(merged, cli_to_config_dict(cli_overrides or []))

    if not raise_unknown:
        merged = _drop_unknown_fields(merged)

    return POSInventoryConfig.model_validate(merged)
