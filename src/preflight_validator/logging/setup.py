"""Centralized logging setup for the preflight validator."""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

from preflight_validator.logging.json_formatter import StructuredJSONFormatter

ROOT_LOGGER_NAME = "preflight_validator"
JSON_LOGGER_NAME = "preflight_validator.json"
CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _env_flag(name: str, default: str = "0") -> bool:
    raw_value = os.environ.get(name, default)
    return str(raw_value).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw_value = os.environ.get(name)
    if raw_value is None or not raw_value.strip():
        return default
    return int(raw_value)


def configure_logging(verbose: bool = False, log_dir: Path | None = None) -> None:
    """
    Configure console logging on stderr and optional rotating file logs.

    Args:
        verbose: Log probe progress at INFO instead of WARNING on the console.
        log_dir: When given, also write ``preflight.log`` and ``preflight.jsonl``
                 rotating files into this directory.
    """

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(logging.DEBUG if _env_flag("PREFLIGHT_DEBUG") else logging.INFO)
    package_logger.propagate = True

    console_level = logging.INFO if verbose else logging.WARNING
    # stdout is reserved for the report so --json output stays parseable
    console_handlers = [
        h
        for h in package_logger.handlers
        if isinstance(h, logging.StreamHandler)
        and not isinstance(h, logging.FileHandler)
        and getattr(h, "stream", None) is sys.stderr
    ]
    if console_handlers:
        for handler in console_handlers:
            handler.setLevel(console_level)
    else:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(console_level)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        package_logger.addHandler(console)

    if log_dir is None:
        return

    log_dir = log_dir.expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)

    max_bytes = _env_int("PREFLIGHT_LOG_MAX_BYTES", 5 * 1024 * 1024)
    backups = _env_int("PREFLIGHT_LOG_BACKUP_COUNT", 3)

    existing_targets = {
        getattr(handler, "baseFilename", None) for handler in package_logger.handlers
    }
    general_path = str((log_dir / "preflight.log").resolve())
    if general_path not in existing_targets:
        general_handler = logging.handlers.RotatingFileHandler(
            general_path,
            maxBytes=max_bytes,
            backupCount=backups,
            encoding="utf-8",
        )
        general_handler.setLevel(logging.INFO)
        general_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        package_logger.addHandler(general_handler)

    json_logger = logging.getLogger(JSON_LOGGER_NAME)
    json_logger.setLevel(logging.DEBUG)
    json_logger.propagate = False

    existing_json_targets = {
        getattr(handler, "baseFilename", None) for handler in json_logger.handlers
    }
    json_path = str((log_dir / "preflight.jsonl").resolve())
    if json_path not in existing_json_targets:
        json_handler = logging.handlers.RotatingFileHandler(
            json_path,
            maxBytes=max_bytes,
            backupCount=backups,
            encoding="utf-8",
        )
        json_handler.setLevel(logging.DEBUG)
        json_handler.setFormatter(StructuredJSONFormatter(sort_keys=True))
        json_logger.addHandler(json_handler)
        # Package records are mirrored into the JSON log as well
        package_logger.addHandler(json_handler)
