"""Structured types for probe definitions, outcomes and validation reports.

This module provides the enums and frozen dataclasses shared by the registry,
the classifier, the runner and the report renderers. Every value here is
immutable once created; a validation run produces new values rather than
mutating existing ones.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from preflight_validator.probes.command import CommandRunner

DEFAULT_PROBE_TIMEOUT_SECONDS = 10.0


class ProbeStatus(str, Enum):
    """Raw status reported by a probe check."""

    PASS = "pass"
    FAIL = "fail"
    INDETERMINATE = "indeterminate"


class FailureSeverity(str, Enum):
    """Impact of a probe failing, declared at registration."""

    CRITICAL = "critical"
    WARNING = "warning"


class ResultSeverity(str, Enum):
    """Classified severity of a probe result."""

    PASS = "pass"
    WARNING = "warning"
    CRITICAL_FAILURE = "critical_failure"


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of executing a single probe check.

    Attributes:
        status: Pass, Fail or Indeterminate.
        detail: Short human-readable detail (parsed version, reason for failure).
        raw_output: Raw tool output retained for diagnostics.
    """

    status: ProbeStatus
    detail: str | None = None
    raw_output: str | None = None

    @classmethod
    def passed(cls, detail: str | None = None, raw_output: str | None = None) -> ProbeOutcome:
        return cls(ProbeStatus.PASS, detail, raw_output)

    @classmethod
    def failed(cls, detail: str | None = None, raw_output: str | None = None) -> ProbeOutcome:
        return cls(ProbeStatus.FAIL, detail, raw_output)

    @classmethod
    def indeterminate(
        cls, detail: str | None = None, raw_output: str | None = None
    ) -> ProbeOutcome:
        return cls(ProbeStatus.INDETERMINATE, detail, raw_output)


ProbeCheck = Callable[["CommandRunner"], ProbeOutcome]


def _detached_check(_runner: CommandRunner) -> ProbeOutcome:
    return ProbeOutcome.indeterminate("Probe was loaded from a report and cannot be executed")


@dataclass(frozen=True)
class Probe:
    """A single prerequisite check.

    The check receives the run's ``CommandRunner`` so every external process it
    spawns inherits the run's timeout and cancellation handling. Checks are
    excluded from equality so that probes rebuilt from a JSON report compare
    equal to the registered originals.
    """

    id: str
    section: str
    description: str
    check: ProbeCheck = field(default=_detached_check, compare=False, repr=False)
    severity_if_failed: FailureSeverity = FailureSeverity.CRITICAL
    remediation: str | None = None
    optional: bool = False
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS

    @property
    def can_be_critical(self) -> bool:
        return not self.optional and self.severity_if_failed is FailureSeverity.CRITICAL


@dataclass(frozen=True)
class ClassifiedResult:
    """A probe outcome paired with its classified severity."""

    probe: Probe
    outcome: ProbeOutcome
    severity: ResultSeverity

    @property
    def needs_attention(self) -> bool:
        return self.severity is not ResultSeverity.PASS


@dataclass(frozen=True)
class ReportSummary:
    total: int = 0
    passed: int = 0
    warnings: int = 0
    critical: int = 0


@dataclass(frozen=True)
class ValidationReport:
    """Complete, immutable result of one validation run.

    Attributes:
        results: Classified results in registry declaration order.
        generated_at: Timestamp of report generation (UTC).
        overall_pass: True iff no result is a critical failure.
        complete: False when the run was cancelled before every probe finished.
    """

    results: tuple[ClassifiedResult, ...]
    generated_at: datetime
    overall_pass: bool
    complete: bool = True

    @property
    def summary(self) -> ReportSummary:
        return ReportSummary(
            total=len(self.results),
            passed=self.count(ResultSeverity.PASS),
            warnings=self.count(ResultSeverity.WARNING),
            critical=self.count(ResultSeverity.CRITICAL_FAILURE),
        )

    @property
    def blocking_issues(self) -> list[ClassifiedResult]:
        """Get all results that block overall success."""
        return [r for r in self.results if r.severity is ResultSeverity.CRITICAL_FAILURE]

    def count(self, severity: ResultSeverity) -> int:
        return sum(1 for r in self.results if r.severity is severity)

    def sections(self) -> list[tuple[str, list[ClassifiedResult]]]:
        """Group results by section, preserving first-seen section order."""
        grouped: dict[str, list[ClassifiedResult]] = {}
        for result in self.results:
            grouped.setdefault(result.probe.section, []).append(result)
        return list(grouped.items())


__all__ = [
    "DEFAULT_PROBE_TIMEOUT_SECONDS",
    "ClassifiedResult",
    "FailureSeverity",
    "Probe",
    "ProbeCheck",
    "ProbeOutcome",
    "ProbeStatus",
    "ReportSummary",
    "ResultSeverity",
    "ValidationReport",
]
