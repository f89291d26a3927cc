"""Pure classification of probe outcomes into report severities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from preflight_validator.probes.models import (
    ClassifiedResult,
    FailureSeverity,
    Probe,
    ProbeOutcome,
    ProbeStatus,
    ResultSeverity,
)


@dataclass(frozen=True)
class SeverityPolicy:
    """Per-probe overrides of the failure severity declared at registration."""

    overrides: Mapping[str, FailureSeverity] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "overrides", MappingProxyType(dict(self.overrides)))

    def failure_severity(self, probe: Probe) -> FailureSeverity:
        if probe.optional:
            return FailureSeverity.WARNING
        return self.overrides.get(probe.id, probe.severity_if_failed)


DEFAULT_POLICY = SeverityPolicy()


def classify(
    probe: Probe, outcome: ProbeOutcome, policy: SeverityPolicy = DEFAULT_POLICY
) -> ClassifiedResult:
    """Map ``(probe, outcome)`` to a classified result.

    Pass maps to Pass, Indeterminate to Warning, and Fail to the probe's
    failure severity. Optional probes never classify above Warning.
    """
    if outcome.status is ProbeStatus.PASS:
        severity = ResultSeverity.PASS
    elif outcome.status is ProbeStatus.INDETERMINATE:
        severity = ResultSeverity.WARNING
    elif policy.failure_severity(probe) is FailureSeverity.CRITICAL:
        severity = ResultSeverity.CRITICAL_FAILURE
    else:
        severity = ResultSeverity.WARNING
    return ClassifiedResult(probe=probe, outcome=outcome, severity=severity)


__all__ = ["DEFAULT_POLICY", "SeverityPolicy", "classify"]
