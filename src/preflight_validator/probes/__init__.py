"""
Probe definitions, outcomes and the subprocess boundary they run through.
"""

from .command import CommandError, CommandResult, CommandRunner
from .factories import (
    MissingMatch,
    OutputParser,
    ParserSpec,
    PlatformInfo,
    command_probe,
    host_os_probe,
)
from .models import (
    ClassifiedResult,
    FailureSeverity,
    Probe,
    ProbeOutcome,
    ProbeStatus,
    ReportSummary,
    ResultSeverity,
    ValidationReport,
)

__all__ = [
    "ClassifiedResult",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "FailureSeverity",
    "MissingMatch",
    "OutputParser",
    "ParserSpec",
    "PlatformInfo",
    "Probe",
    "ProbeOutcome",
    "ProbeStatus",
    "ReportSummary",
    "ResultSeverity",
    "ValidationReport",
    "command_probe",
    "host_os_probe",
]
