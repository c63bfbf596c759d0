"""
Logging setup for IHHT.

Configured once per process through dictConfig: a stderr console handler for
the CLI and a size-rotated file under ~/.ihht/logs. The [logging] section of
the config file controls the file handler.
"""

import logging
import logging.config
import os
import sys

from pathlib import Path
from typing import Any

from ihht.constants import (
    DEFAULT_LOG_BACKUP_COUNT,
    DEFAULT_LOG_DIR,
    DEFAULT_LOG_FILE,
    DEFAULT_LOG_MAX_BYTES,
)

_logging_configured = False

_FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers kept at WARNING so engine output stays readable
_QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool")


def get_log_dir() -> Path:
    """Log directory (~/.ihht/logs), created on first use."""
    os.makedirs(DEFAULT_LOG_DIR, mode=0o700, exist_ok=True)
    return DEFAULT_LOG_DIR


def get_log_path() -> Path:
    """Path of the active log file; rotated backups sit beside it."""
    return get_log_dir() / DEFAULT_LOG_FILE


def _get_user_logging_config() -> dict[str, Any]:
    from ihht.config import load_config

    section = load_config().get("logging", {})
    return section if isinstance(section, dict) else {}


def _console_handler(verbose: bool) -> dict[str, Any]:
    return {
        "class": "logging.StreamHandler",
        "level": "DEBUG" if verbose else "INFO",
        "formatter": "console",
        "stream": "ext://sys.stderr",
    }


def _file_handler(settings: dict[str, Any]) -> dict[str, Any]:
    """RotatingFileHandler settings from the [logging] section."""
    max_size_mb = settings.get("max_size_mb")
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": str(settings.get("level", "DEBUG")).upper(),
        "formatter": "file",
        "filename": str(get_log_path()),
        "maxBytes": (
            max_size_mb * 1024 * 1024
            if max_size_mb is not None
            else DEFAULT_LOG_MAX_BYTES
        ),
        "backupCount": settings.get("backup_count", DEFAULT_LOG_BACKUP_COUNT),
        "encoding": "utf-8",
    }


def _build_logging_config(
    verbose: bool = False,
    console_format: str | None = None,
) -> dict[str, Any]:
    """
    Build the dictConfig dictionary.

    Args:
        verbose: Console at DEBUG instead of INFO
        console_format: Console format string, defaults to the file format

    Returns:
        Dictionary for logging.config.dictConfig()
    """
    settings = _get_user_logging_config()
    handlers: dict[str, Any] = {"console": _console_handler(verbose)}
    if settings.get("enabled", True):
        handlers["file"] = _file_handler(settings)

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "console": {"format": console_format or _FILE_FORMAT},
            "file": {"format": _FILE_FORMAT},
        },
        "handlers": handlers,
        "loggers": {name: {"level": "WARNING"} for name in _QUIET_LOGGERS},
        "root": {"level": "DEBUG", "handlers": list(handlers)},
    }


def setup_logging(
    *,
    verbose: bool = False,
    console_format: str | None = None,
) -> None:
    """
    Configure logging for the process. Later calls are no-ops.

    If the handlers cannot be built (for example an unwritable log
    directory), console-only basicConfig is used instead.
    """
    global _logging_configured

    if _logging_configured:
        return

    try:
        logging.config.dictConfig(
            _build_logging_config(verbose=verbose, console_format=console_format)
        )
    except (OSError, ValueError) as e:
        sys.stderr.write(f"WARNING: Failed to configure logging: {e}\n")
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format=console_format or "%(levelname)s: %(message)s",
        )

    _logging_configured = True
