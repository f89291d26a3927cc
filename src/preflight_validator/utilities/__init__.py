"""
Shared utilities.
"""

from .datetime_helpers import parse_iso_timestamp, utc_now
from .logging_patterns import StructuredLogger, get_logger, log_operation

__all__ = ["StructuredLogger", "get_logger", "log_operation", "parse_iso_timestamp", "utc_now"]
