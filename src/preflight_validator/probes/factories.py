"""Declarative probe builders.

Probes are built from plain data (a command line plus a parser name) so that
registries can be declared statically, in Python or in YAML, without writing a
check function per tool.
"""

from __future__ import annotations

import platform
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from preflight_validator.probes.command import CommandError, CommandResult, CommandRunner
from preflight_validator.probes.models import (
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    FailureSeverity,
    Probe,
    ProbeOutcome,
)
from preflight_validator.probes.parsing import (
    Ok,
    ParseResult,
    Unparsable,
    parse_contains,
    parse_json_field,
    parse_version,
    truncate_raw,
    version_at_least,
)


class OutputParser(str, Enum):
    EXIT_CODE = "exit_code"
    VERSION = "version"
    JSON_FIELD = "json_field"
    CONTAINS = "contains"


class MissingMatch(str, Enum):
    """How a ``contains`` probe treats output that lacks the pattern."""

    INDETERMINATE = "indeterminate"
    FAIL = "fail"


@dataclass(frozen=True)
class ParserSpec:
    kind: OutputParser = OutputParser.EXIT_CODE
    min_version: str | None = None
    field: str | None = None
    expected: str | None = None
    pattern: str | None = None
    detail_group: int | str | None = None
    on_missing: MissingMatch = MissingMatch.INDETERMINATE

    def parse(self, output: str) -> ParseResult:
        if self.kind is OutputParser.VERSION:
            return parse_version(output)
        if self.kind is OutputParser.JSON_FIELD:
            return parse_json_field(output, self.field or "")
        if self.kind is OutputParser.CONTAINS:
            return parse_contains(output, self.pattern or "", self.detail_group)
        first_line = output.splitlines()[0] if output else ""
        return Ok(first_line)

    def evaluate(self, output: str) -> ProbeOutcome:
        raw = truncate_raw(output) or None
        parsed = self.parse(output)
        if isinstance(parsed, Unparsable):
            if self.kind is OutputParser.CONTAINS and self.on_missing is MissingMatch.FAIL:
                return ProbeOutcome.failed(parsed.reason, raw)
            return ProbeOutcome.indeterminate(f"Could not interpret output: {parsed.reason}", raw)

        detail = parsed.detail or None
        if self.min_version is not None:
            version = parse_version(detail or "")
            if isinstance(version, Unparsable):
                return ProbeOutcome.indeterminate(f"No version in '{detail}'", raw)
            if not version_at_least(version.detail, self.min_version):
                return ProbeOutcome.failed(
                    f"{version.detail} is older than required {self.min_version}", raw
                )
        if self.expected is not None and (detail or "").lower() != self.expected.lower():
            return ProbeOutcome.failed(f"expected '{self.expected}', found '{detail}'", raw)
        return ProbeOutcome.passed(detail, raw)


def outcome_from_command(result: CommandResult, parser: ParserSpec) -> ProbeOutcome:
    """Map a finished command onto a probe outcome."""
    raw = truncate_raw(result.output) or None
    if result.error is CommandError.TOOL_MISSING or result.error is CommandError.OS_ERROR:
        return ProbeOutcome.failed(result.describe_failure())
    if result.error is CommandError.TIMEOUT or result.error is CommandError.CANCELLED:
        return ProbeOutcome.indeterminate(result.describe_failure(), raw)
    if result.returncode != 0:
        return ProbeOutcome.failed(result.describe_failure(), raw)
    return parser.evaluate(result.output)


def command_probe(
    id: str,
    section: str,
    description: str,
    argv: Sequence[str],
    *,
    parser: ParserSpec | None = None,
    severity: FailureSeverity = FailureSeverity.CRITICAL,
    remediation: str | None = None,
    optional: bool = False,
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> Probe:
    """Build a probe that runs ``argv`` and interprets its output with ``parser``."""
    command = tuple(argv)
    spec = parser or ParserSpec()

    def check(runner: CommandRunner) -> ProbeOutcome:
        return outcome_from_command(runner.run(command, timeout=timeout), spec)

    check.__name__ = f"check_{id.replace('-', '_')}"
    return Probe(
        id=id,
        section=section,
        description=description,
        check=check,
        severity_if_failed=severity,
        remediation=remediation,
        optional=optional,
        timeout=timeout,
    )


@dataclass(frozen=True)
class PlatformInfo:
    system: str
    release: str
    version: str


def current_platform() -> PlatformInfo:
    return PlatformInfo(platform.system(), platform.release(), platform.version())


def _build_number(version: str) -> int | None:
    # Windows reports "10.0.22631"; the build is the third component
    parts = version.split(".")
    if len(parts) < 3 or not parts[2].strip().isdigit():
        return None
    return int(parts[2].strip())


def host_os_probe(
    id: str,
    section: str,
    description: str,
    *,
    system: str,
    min_release: str | None = None,
    min_build: int | None = None,
    severity: FailureSeverity = FailureSeverity.CRITICAL,
    remediation: str | None = None,
    optional: bool = False,
    timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
    platform_info: Callable[[], PlatformInfo] = current_platform,
) -> Probe:
    """Build a probe that inspects the host operating system without spawning a process."""

    def check(_runner: CommandRunner) -> ProbeOutcome:
        info = platform_info()
        label = f"{info.system} {info.release} ({info.version})".strip()
        if info.system.lower() != system.lower():
            return ProbeOutcome.failed(f"detected {label}, requires {system}")
        if min_release is not None:
            parsed = parse_version(info.release if "." in info.release else f"{info.release}.0")
            if isinstance(parsed, Unparsable):
                return ProbeOutcome.indeterminate(f"unrecognised release '{info.release}'", label)
            if not version_at_least(parsed.detail, min_release):
                return ProbeOutcome.failed(f"detected {label}, requires release {min_release}+")
        if min_build is not None:
            build = _build_number(info.version)
            if build is None:
                return ProbeOutcome.indeterminate(f"unrecognised version '{info.version}'", label)
            if build < min_build:
                return ProbeOutcome.failed(f"build {build} is older than {min_build}")
        return ProbeOutcome.passed(label)

    check.__name__ = f"check_{id.replace('-', '_')}"
    return Probe(
        id=id,
        section=section,
        description=description,
        check=check,
        severity_if_failed=severity,
        remediation=remediation,
        optional=optional,
        timeout=timeout,
    )


__all__ = [
    "MissingMatch",
    "OutputParser",
    "ParserSpec",
    "PlatformInfo",
    "command_probe",
    "current_platform",
    "host_os_probe",
    "outcome_from_command",
]
