"""
Preflight Validator - developer workstation dependency checks.

Runs a registry of probes against the host (installed tools, versions, daemons,
logins), classifies each outcome as Pass, Warning or Critical Failure, and
renders a grouped report with remediation hints.
"""

from __future__ import annotations

__version__ = "0.1.0"

from preflight_validator.classifier import SeverityPolicy, classify
from preflight_validator.errors import (
    ConfigurationError,
    PreflightError,
    RegistryMisconfigurationError,
    ValidationCancelledError,
)
from preflight_validator.probes import (
    ClassifiedResult,
    FailureSeverity,
    Probe,
    ProbeOutcome,
    ProbeStatus,
    ResultSeverity,
    ValidationReport,
    command_probe,
    host_os_probe,
)
from preflight_validator.registry import ProbeRegistry, assemble_registry
from preflight_validator.registry_loader import load_registry
from preflight_validator.report import build_report, render_json, render_text
from preflight_validator.runner import ProbeRunner, run_validation

__all__ = [
    "ClassifiedResult",
    "ConfigurationError",
    "FailureSeverity",
    "PreflightError",
    "Probe",
    "ProbeOutcome",
    "ProbeRegistry",
    "ProbeRunner",
    "ProbeStatus",
    "RegistryMisconfigurationError",
    "ResultSeverity",
    "SeverityPolicy",
    "ValidationCancelledError",
    "ValidationReport",
    "__version__",
    "assemble_registry",
    "build_report",
    "classify",
    "command_probe",
    "host_os_probe",
    "load_registry",
    "render_json",
    "render_text",
    "run_validation",
]
