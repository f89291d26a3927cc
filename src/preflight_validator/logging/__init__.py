"""Logging configuration for the ``preflight_validator`` package."""

from __future__ import annotations

from .correlation import get_log_context, probe_context, run_context
from .json_formatter import StructuredJSONFormatter
from .setup import configure_logging

__all__ = [
    "StructuredJSONFormatter",
    "configure_logging",
    "get_log_context",
    "probe_context",
    "run_context",
]
