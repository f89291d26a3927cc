from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import pytest

from preflight_validator.probes.models import FailureSeverity, Probe, ProbeOutcome
from tests.unit.preflight_validator.probe_helpers import FIXED_NOW, static_check


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def make_probe() -> Callable[..., Probe]:
    def _factory(
        probe_id: str = "runtime",
        section: str = "Core",
        *,
        outcome: ProbeOutcome | None = None,
        check: Callable[..., ProbeOutcome] | None = None,
        severity: FailureSeverity = FailureSeverity.CRITICAL,
        remediation: str | None = "install the runtime",
        optional: bool = False,
        timeout: float = 5.0,
    ) -> Probe:
        if check is None:
            check = static_check(outcome or ProbeOutcome.passed("ok"))
        return Probe(
            id=probe_id,
            section=section,
            description=f"{probe_id} is available",
            check=check,
            severity_if_failed=severity,
            remediation=remediation,
            optional=optional,
            timeout=timeout,
        )

    return _factory
