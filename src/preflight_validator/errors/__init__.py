"""
Centralized error handling for the preflight validator

Expected probe failure modes (missing tools, timeouts, unparsable output) are
never raised; they become probe outcomes. The errors below are the only ones
that abort a run.
"""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:  # pragma: no cover
    from preflight_validator.probes.models import ValidationReport
    from preflight_validator.utilities.logging_patterns import StructuredLogger

_logger: Optional["StructuredLogger"] = None


def _get_logger() -> "StructuredLogger":
    global _logger
    if _logger is None:
        from preflight_validator.utilities.logging_patterns import get_logger

        _logger = get_logger(__name__, component="errors")
    return _logger


class PreflightError(Exception):
    """Base exception class for all validator errors"""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)
        self.original_error = original_error

    def add_context(self, **kwargs: Any) -> "PreflightError":
        """Add additional context to the error"""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


class RegistryMisconfigurationError(PreflightError):
    """Raised when the probe registry cannot be assembled"""

    def __init__(self, message: str, probe_id: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, error_code="REGISTRY_MISCONFIGURATION", **kwargs)
        if probe_id:
            self.add_context(probe_id=probe_id)


class ConfigurationError(PreflightError):
    """Raised when settings or CLI overrides are invalid"""

    def __init__(self, message: str, config_key: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, error_code="CONFIG_ERROR", **kwargs)
        if config_key:
            self.add_context(config_key=config_key)


class ValidationCancelledError(PreflightError):
    """Raised when an operator cancels a run; carries the partial report"""

    def __init__(self, message: str, report: "ValidationReport", **kwargs: Any) -> None:
        super().__init__(message, error_code="CANCELLATION_REQUESTED", **kwargs)
        self.report = report
        self.add_context(completed_probes=len(report.results))


def log_error(error: PreflightError, level: int = logging.ERROR) -> None:
    """Log an error with full context"""
    _get_logger().log(level, f"{error.error_code}: {error.message}", error_data=error.to_dict())


__all__ = [
    "ConfigurationError",
    "PreflightError",
    "RegistryMisconfigurationError",
    "ValidationCancelledError",
    "log_error",
]
