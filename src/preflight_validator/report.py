from __future__ import annotations

import json
import os
import sys
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from preflight_validator.hints import get_remediation_hint
from preflight_validator.probes.models import (
    ClassifiedResult,
    FailureSeverity,
    Probe,
    ProbeOutcome,
    ProbeStatus,
    ResultSeverity,
    ValidationReport,
)
from preflight_validator.utilities.datetime_helpers import parse_iso_timestamp

RULE_WIDTH = 70


class Colors:
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


class ReportStatus(str, Enum):
    READY = "READY"
    REVIEW = "REVIEW"
    NOT_READY = "NOT READY"


def build_report(
    results: Iterable[ClassifiedResult],
    *,
    generated_at: datetime,
    complete: bool = True,
) -> ValidationReport:
    """Aggregate classified results into an immutable report."""
    ordered = _group_by_section(results)
    overall_pass = not any(r.severity is ResultSeverity.CRITICAL_FAILURE for r in ordered)
    return ValidationReport(
        results=ordered,
        generated_at=generated_at,
        overall_pass=overall_pass,
        complete=complete,
    )


def _group_by_section(results: Iterable[ClassifiedResult]) -> tuple[ClassifiedResult, ...]:
    grouped: dict[str, list[ClassifiedResult]] = {}
    for result in results:
        grouped.setdefault(result.probe.section, []).append(result)
    return tuple(result for section_results in grouped.values() for result in section_results)


def evaluate_status(report: ValidationReport) -> tuple[ReportStatus, str]:
    """Return status label and message for the report totals."""
    summary = report.summary
    if summary.critical:
        return (
            ReportStatus.NOT_READY,
            "Environment is NOT READY - critical issues must be resolved",
        )
    if summary.warnings:
        return ReportStatus.REVIEW, "Environment is usable - review the warnings below"
    return ReportStatus.READY, "Environment is READY"


def exit_code_for(report: ValidationReport) -> int:
    """0 when the report passes, 1 when a critical failure is present."""
    return 0 if report.overall_pass else 1


# ----- Text rendering ------------------------------------------------------

_STATUS_ICONS = {
    ResultSeverity.PASS: "✅",
    ResultSeverity.WARNING: "⚠️ ",
    ResultSeverity.CRITICAL_FAILURE: "❌",
}

_SEVERITY_COLORS = {
    ResultSeverity.PASS: Colors.GREEN,
    ResultSeverity.WARNING: Colors.YELLOW,
    ResultSeverity.CRITICAL_FAILURE: Colors.RED,
}

_STATUS_COLORS = {
    ReportStatus.READY: Colors.GREEN,
    ReportStatus.REVIEW: Colors.YELLOW,
    ReportStatus.NOT_READY: Colors.RED,
}


class _Painter:
    def __init__(self, enabled: bool) -> None:
        self.enabled = enabled

    def __call__(self, text: str, *codes: str) -> str:
        if not self.enabled or not codes:
            return text
        return f"{''.join(codes)}{text}{Colors.RESET}"


def render_text(report: ValidationReport, *, color: bool = False) -> str:
    """Render the human-readable report.

    Only the header line depends on ``generated_at``; everything else is a pure
    function of the classified results.
    """
    paint = _Painter(color)
    rule = "=" * RULE_WIDTH
    lines = [
        paint(rule, Colors.BOLD, Colors.MAGENTA),
        paint("PREFLIGHT VALIDATION REPORT", Colors.BOLD, Colors.MAGENTA),
        paint(f"Generated: {report.generated_at.isoformat()}", Colors.MAGENTA),
        paint(rule, Colors.BOLD, Colors.MAGENTA),
    ]

    for section, results in report.sections():
        lines.append("")
        lines.append(paint(section, Colors.BOLD, Colors.BLUE))
        lines.append(paint("-" * RULE_WIDTH, Colors.BLUE))
        for result in results:
            lines.append(_render_result_line(result, paint))
            hint = get_remediation_hint(result)
            if hint:
                lines.append(f"      fix: {hint}")

    summary = report.summary
    lines.extend(
        [
            "",
            paint("Summary:", Colors.BOLD),
            f"  Total: {summary.total}",
            paint(f"  ✅ Passed: {summary.passed}", Colors.GREEN),
            paint(f"  ⚠️  Warnings: {summary.warnings}", Colors.YELLOW),
            paint(f"  ❌ Critical: {summary.critical}", Colors.RED),
        ]
    )

    attention = [r for r in report.results if r.needs_attention]
    if attention:
        lines.append("")
        lines.append(paint("Remediation hints:", Colors.BOLD))
        for idx, result in enumerate(attention, start=1):
            lines.append(f"{idx}. [{result.probe.id}] {get_remediation_hint(result)}")

    status, message = evaluate_status(report)
    status_color = _STATUS_COLORS[status]
    lines.append("")
    lines.append(paint(rule, Colors.BOLD, status_color))
    status_line = f"STATUS: {status.value}"
    if not report.complete:
        status_line += " (INCOMPLETE - run was cancelled)"
    lines.append(paint(status_line, Colors.BOLD, status_color))
    lines.append(paint(message, status_color))
    lines.append(paint(rule, Colors.BOLD, status_color))
    return "\n".join(lines)


def _render_result_line(result: ClassifiedResult, paint: _Painter) -> str:
    icon = _STATUS_ICONS[result.severity]
    label = result.probe.description
    if result.probe.optional:
        label += " (optional)"
    line = f"  {icon} {label} [{result.probe.id}]"
    if result.outcome.detail:
        line += f": {result.outcome.detail}"
    return paint(line, _SEVERITY_COLORS[result.severity])


# ----- JSON rendering ------------------------------------------------------


def format_report_payload(report: ValidationReport) -> dict[str, Any]:
    """Return the JSON-serializable report document without IO side effects."""
    summary = report.summary
    sections: list[dict[str, Any]] = []
    for section, results in report.sections():
        sections.append(
            {"name": section, "probes": [_format_result(result) for result in results]}
        )
    return {
        "generatedAt": report.generated_at.isoformat(),
        "complete": report.complete,
        "overallPass": report.overall_pass,
        "summary": {
            "total": summary.total,
            "pass": summary.passed,
            "warning": summary.warnings,
            "critical": summary.critical,
        },
        "sections": sections,
    }


def _format_result(result: ClassifiedResult) -> dict[str, Any]:
    probe = result.probe
    return {
        "id": probe.id,
        "description": probe.description,
        "severity": result.severity.value,
        "status": result.outcome.status.value,
        "detail": result.outcome.detail,
        "rawOutput": result.outcome.raw_output,
        "remediation": get_remediation_hint(result),
        "declaredRemediation": probe.remediation,
        "severityIfFailed": probe.severity_if_failed.value,
        "optional": probe.optional,
        "timeoutSeconds": probe.timeout,
    }


def render_json(report: ValidationReport) -> str:
    return json.dumps(format_report_payload(report), indent=2, ensure_ascii=False)


class ReportParseError(ValueError):
    """Raised when a JSON document is not a validation report."""


def parse_json_report(document: str | Mapping[str, Any]) -> ValidationReport:
    """Rebuild a ``ValidationReport`` from ``render_json`` output.

    Probe checks are not serialized; rebuilt probes carry a detached check.
    """
    try:
        payload = json.loads(document) if isinstance(document, str) else document
        results: list[ClassifiedResult] = []
        for section in payload["sections"]:
            for entry in section["probes"]:
                probe = Probe(
                    id=entry["id"],
                    section=section["name"],
                    description=entry["description"],
                    severity_if_failed=FailureSeverity(entry["severityIfFailed"]),
                    remediation=entry.get("declaredRemediation"),
                    optional=bool(entry.get("optional", False)),
                    timeout=float(entry["timeoutSeconds"]),
                )
                outcome = ProbeOutcome(
                    status=ProbeStatus(entry["status"]),
                    detail=entry.get("detail"),
                    raw_output=entry.get("rawOutput"),
                )
                results.append(
                    ClassifiedResult(
                        probe=probe, outcome=outcome, severity=ResultSeverity(entry["severity"])
                    )
                )
        return ValidationReport(
            results=tuple(results),
            generated_at=parse_iso_timestamp(payload["generatedAt"]),
            overall_pass=bool(payload["overallPass"]),
            complete=bool(payload.get("complete", True)),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ReportParseError(f"Not a validation report: {exc}") from exc


# ----- Report sinks --------------------------------------------------------


class ReportSinkError(Exception):
    """Indicates a failure writing a report artifact."""


@dataclass(frozen=True)
class ReportSinkResult:
    description: str
    path: Path | None = None


class ReportArtifactSink(ABC):
    """Write-only abstraction for report artifacts (file, stdout)."""

    @abstractmethod
    def write(self, payload: str) -> ReportSinkResult:
        """Write the serialized report payload and return metadata."""


class FileReportArtifactSink(ReportArtifactSink):
    """Sink that writes payloads to disk using atomic replaces."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def write(self, payload: str) -> ReportSinkResult:
        directory = self._path.parent
        tmp_path: Path | None = None

        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                dir=directory,
                delete=False,
                encoding="utf-8",
            ) as handle:
                tmp_path = Path(handle.name)
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path)
            return ReportSinkResult(description=str(self._path), path=self._path)
        except OSError as exc:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink(missing_ok=True)
            raise ReportSinkError(f"Failed to write report to {self._path}") from exc


class StdoutReportArtifactSink(ReportArtifactSink):
    """Sink that emits payloads to stdout."""

    def write(self, payload: str) -> ReportSinkResult:
        try:
            sys.stdout.write(payload)
            sys.stdout.write("\n")
            sys.stdout.flush()
        except OSError as exc:
            raise ReportSinkError("Failed to emit report to stdout") from exc
        return ReportSinkResult(description="stdout")


__all__ = [
    "Colors",
    "FileReportArtifactSink",
    "ReportArtifactSink",
    "ReportParseError",
    "ReportSinkError",
    "ReportSinkResult",
    "ReportStatus",
    "StdoutReportArtifactSink",
    "build_report",
    "evaluate_status",
    "exit_code_for",
    "format_report_payload",
    "parse_json_report",
    "render_json",
    "render_text",
]
