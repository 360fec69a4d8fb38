#!/usr/bin/env python3
"""
Error handling for the POS inventory application.

This module provides:
1. Custom exception classes for store, inventory and payment failures
2. Global exception handling for the Typer app
3. Error logging with sanitized command context
4. User-friendly error messages
"""
import functools
import os
import re
import sys
import traceback
import uuid
from typing import Any, Callable, Dict, List, Optional

import typer

from posinventory.logging import logger


# Error text the SQLite engine uses for transient lock contention.
# Matching is case-sensitive.
TRANSIENT_LOCK_MESSAGES = ("database is locked", "SQLITE_BUSY")


class POSInventoryError(Exception):
    """Base class for all POS inventory exceptions."""
    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code or "POSINV-GEN-ERR"
        super().__init__(message)


class ConfigError(POSInventoryError):
    """Error related to configuration issues."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-CFG-ERR")


class StoreError(POSInventoryError):
    """A database operation failed and should not be retried."""
    def __init__(self, message: str, error_code: str = "POSINV-STR-ERR"):
        super().__init__(message, error_code)


class TransientStoreError(StoreError):
    """The store was busy or locked by another writer; retrying may succeed."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-BUSY-ERR")


class NotFoundError(POSInventoryError):
    """A referenced record does not exist."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-NF-ERR")


class InsufficientStockError(POSInventoryError):
    """The requested change would drive stock below zero."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-STOCK-ERR")


class ConflictError(POSInventoryError):
    """Optimistic lock lost: the record changed since it was read."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-CONFLICT-ERR")


class QueueFullError(POSInventoryError):
    """The write queue reached its configured pending limit."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-QFULL-ERR")


class ReservationError(POSInventoryError):
    """A reservation is missing or not in the state the operation needs."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-RSV-ERR")


class SignatureMismatchError(POSInventoryError):
    """A payment gateway callback failed signature verification."""
    def __init__(self, message: str):
        super().__init__(message, "POSINV-SIG-ERR")


# Patterns for sensitive information that should be redacted
SENSITIVE_PATTERNS = [
    re.compile(r'(?i)(password|passwd|secret|token|key|auth)=([^&\s]+)'),
    re.compile(r'(?i)(api[_\-]?key)=([^&\s]+)'),
    re.compile(r'(?i)(vnp_SecureHash|signature|mac)=([^&\s]+)'),
]

# CLI argument names whose values are always redacted
SENSITIVE_ARG_NAMES = {
    'password', 'secret', 'key', 'token', 'credential', 'api-key',
    'api_key', 'auth', 'signature', 'mac',
}


def sanitize_string(text: str) -> str:
    """Remove sensitive key=value pairs from a string."""
    if not text:
        return text

    sanitized = text
    for pattern in SENSITIVE_PATTERNS:
        sanitized = pattern.sub(r'\1=[REDACTED]', sanitized)
    return sanitized


def sanitize_command_args(args: List[str]) -> List[str]:
    """
    Sanitize command-line arguments to remove sensitive information.

    Handles both ``--key=value`` and ``--key value`` forms.
    """
    sanitized_args: List[str] = []
    redact_next = False

    for arg in args or []:
        if redact_next:
            sanitized_args.append("[REDACTED]")
            redact_next = False
            continue

        if arg.startswith("-") and "=" in arg:
            key, value = arg.split("=", 1)
            if _is_sensitive_name(key):
                sanitized_args.append(f"{key}=[REDACTED]")
            else:
                sanitized_args.append(f"{key}={sanitize_string(value)}")
        elif arg.startswith("-"):
            sanitized_args.append(arg)
            redact_next = _is_sensitive_name(arg)
        else:
            sanitized_args.append(sanitize_string(arg))

    return sanitized_args


def _is_sensitive_name(option: str) -> bool:
    name = option.lstrip("-").lower()
    return any(part in name for part in SENSITIVE_ARG_NAMES)


def sanitize_dict(data: Dict[str, Any], depth: int = 3) -> Dict[str, Any]:
    """
    Recursively sanitize a dictionary to remove sensitive information.

    Args:
        data: Dictionary to sanitize
        depth: Maximum recursion depth

    Returns:
        Sanitized copy of the dictionary
    """
    if depth <= 0:
        return {"[MAX_DEPTH]": "..."}

    result: Dict[str, Any] = {}
    for key, value in data.items():
        if _is_sensitive_name(str(key)):
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_dict(value, depth - 1)
        elif isinstance(value, str):
            result[key] = sanitize_string(value)
        else:
            result[key] = value
    return result


def generate_error_id() -> str:
    """Generate a short unique error ID for tracking purposes."""
    return str(uuid.uuid4())[:8]


def get_command_context(ctx: Optional[typer.Context]) -> Dict[str, Any]:
    """Collect sanitized information about the command being executed."""
    context_info: Dict[str, Any] = {"args": sanitize_command_args(sys.argv)}

    if ctx is not None:
        context_info["command"] = ctx.command_path
        context_info["params"] = sanitize_dict(dict(ctx.params or {}))

    context_info["env"] = {
        key: "[REDACTED]" if _is_sensitive_name(key) else sanitize_string(value)
        for key, value in os.environ.items()
        if key.startswith("POSINV_")
    }
    return context_info


def exception_handler(func: Callable) -> Callable:
    """
    Wrap a Typer command so that errors are logged with context and reported
    to the user without a raw traceback.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except POSInventoryError as e:
            _report(e, args, kwargs, known=True)
            sys.exit(1)
        except Exception as e:
            _report(e, args, kwargs, known=False)
            sys.exit(1)

    return wrapper


def _report(error: Exception, args: tuple, kwargs: dict, known: bool) -> None:
    error_id = generate_error_id()
    ctx = kwargs.get("ctx")
    if ctx is None:
        ctx = next((a for a in args if isinstance(a, typer.Context)), None)

    error_code = error.error_code if known else "POSINV-UNK-ERR"
    logger.error(
        f"Exception occurred [ID: {error_id}] [Code: {error_code}]\n"
        f"Error: {error}\n"
        f"Command context: {get_command_context(ctx)}\n\n"
        f"Traceback:\n{''.join(traceback.format_exception(type(error), error, error.__traceback__))}"
    )

    typer.secho("Error: ", fg=typer.colors.RED, bold=True, nl=False, err=True)
    if known:
        typer.secho(str(error), fg=typer.colors.RED, err=True)
    else:
        typer.secho(
            f"An unexpected error occurred [ID: {error_id}].\n"
            f"Please check the log file for details.",
            fg=typer.colors.RED,
            err=True,
        )


def patch_typer_commands(app: typer.Typer, decorator: Callable) -> None:
    """Apply ``decorator`` to every command of ``app`` and its sub-apps."""
    for command in app.registered_commands:
        if callable(command.callback):
            command.callback = decorator(command.callback)

    for group in app.registered_groups:
        if group.typer_instance is not None:
            patch_typer_commands(group.typer_instance, decorator)


def handle_keyboard_interrupt(func: Callable) -> Callable:
    """Exit with the conventional SIGINT status instead of a traceback."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            typer.echo("\nOperation cancelled by user.")
            sys.exit(130)

    return wrapper


def apply_error_handling(app: typer.Typer) -> typer.Typer:
    """
    Install the global exception handler on every command of ``app``.

    Must be called after all commands and sub-apps are registered.
    """
    patch_typer_commands(app, lambda func: handle_keyboard_interrupt(exception_handler(func)))
    return app
