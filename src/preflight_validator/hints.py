"""Remediation hint fallbacks for probes that declare none."""

from __future__ import annotations

from typing import Final

from preflight_validator.probes.models import ClassifiedResult, ProbeStatus

DEFAULT_REMEDIATION_HINT: Final[str] = (
    "Review the probe detail above and consult the setup guide for the failing tool."
)

INDETERMINATE_REMEDIATION_HINT: Final[str] = (
    "Re-run with --verbose; the tool did not answer in time or printed unexpected output."
)


def get_remediation_hint(result: ClassifiedResult) -> str | None:
    """Return the hint to show for ``result``, or None when it passed."""
    if not result.needs_attention:
        return None
    if result.probe.remediation and result.probe.remediation.strip():
        return result.probe.remediation.strip()
    if result.outcome.status is ProbeStatus.INDETERMINATE:
        return INDETERMINATE_REMEDIATION_HINT
    return DEFAULT_REMEDIATION_HINT


__all__ = ["DEFAULT_REMEDIATION_HINT", "INDETERMINATE_REMEDIATION_HINT", "get_remediation_hint"]
