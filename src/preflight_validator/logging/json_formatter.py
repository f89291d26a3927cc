"""JSON logging formatter with run correlation and secret redaction."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from .correlation import get_log_context

_STANDARD_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "message",
        "asctime",
    }
)


def _normalize_key(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


class StructuredJSONFormatter(logging.Formatter):
    """JSON formatter that includes run correlation context and extra fields."""

    SENSITIVE_KEYS = frozenset(
        _normalize_key(key)
        for key in (
            "access_token",
            "refresh_token",
            "token",
            "password",
            "secret",
            "client_secret",
            "api_key",
            "private_key",
            "authorization",
            "credentials",
            "cookie",
        )
    )

    def __init__(
        self,
        *,
        ensure_ascii: bool = False,
        sort_keys: bool = False,
        timestamp_format: str = "%Y-%m-%dT%H:%M:%S.%fZ",
    ) -> None:
        super().__init__()
        self.ensure_ascii = ensure_ascii
        self.sort_keys = sort_keys
        self.timestamp_format = timestamp_format

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName if record.funcName is not None else "<module>",
            "line": record.lineno,
            "thread": record.threadName,
        }

        correlation_context = get_log_context()
        if correlation_context:
            log_entry.update(correlation_context)

        if record.exc_info:
            log_entry["exception"] = self._format_exception(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_") or key in log_entry:
                continue
            log_entry[key] = value

        log_entry = self._redact_data(log_entry)

        try:
            return json.dumps(
                log_entry,
                ensure_ascii=self.ensure_ascii,
                default=str,
                sort_keys=self.sort_keys,
            )
        except (TypeError, ValueError) as exc:
            fallback_entry = {
                "timestamp": log_entry["timestamp"],
                "level": log_entry["level"],
                "logger": log_entry["logger"],
                "message": f"JSON serialization failed: {exc}",
                "original_message": str(log_entry.get("message", "")),
            }
            return json.dumps(fallback_entry, ensure_ascii=self.ensure_ascii, default=str)

    def _redact_data(self, data: Any) -> Any:
        """Recursively redact sensitive keys in dictionaries."""
        if isinstance(data, dict):
            return {
                k: (
                    "[REDACTED]"
                    if isinstance(k, str) and _normalize_key(k) in self.SENSITIVE_KEYS
                    else self._redact_data(v)
                )
                for k, v in data.items()
            }
        if isinstance(data, (list, tuple)):
            return [self._redact_data(item) for item in data]
        return data

    def _format_timestamp(self, created: float) -> str:
        return datetime.fromtimestamp(created, UTC).strftime(self.timestamp_format)

    def _format_exception(self, exc_info: Any) -> dict[str, Any]:
        exc_type, exc_value, _exc_traceback = exc_info
        return {
            "type": exc_type.__name__ if exc_type else "Unknown",
            "message": str(exc_value) if exc_value else "",
            "traceback": self.formatException(exc_info),
        }
