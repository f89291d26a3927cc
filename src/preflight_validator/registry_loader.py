"""Build probe registries from YAML declarations.

A declaration lists sections in display order, each holding probes in
declaration order::

    sections:
      - name: Container Runtime
        probes:
          - id: docker-installed
            description: Docker CLI is installed
            argv: [docker, --version]
            parser: version
            min_version: "24.0"
            severity: critical
            remediation: winget install Docker.DockerDesktop

Every structural problem raises ``RegistryMisconfigurationError`` before a
single probe is executed.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from preflight_validator.classifier import SeverityPolicy
from preflight_validator.errors import RegistryMisconfigurationError
from preflight_validator.probes.factories import (
    MissingMatch,
    OutputParser,
    ParserSpec,
    command_probe,
    host_os_probe,
)
from preflight_validator.probes.models import (
    DEFAULT_PROBE_TIMEOUT_SECONDS,
    FailureSeverity,
    Probe,
)
from preflight_validator.registry import ProbeRegistry
from preflight_validator.utilities.logging_patterns import get_logger

logger = get_logger(__name__, component="registry")

BUNDLED_REGISTRY = "workstation.yaml"

_COMMON_KEYS = frozenset(
    {"id", "description", "kind", "severity", "optional", "timeout", "remediation"}
)
_COMMAND_KEYS = _COMMON_KEYS | {
    "argv",
    "parser",
    "min_version",
    "field",
    "expected",
    "pattern",
    "detail_group",
    "on_missing",
}
_HOST_OS_KEYS = _COMMON_KEYS | {"system", "min_release", "min_build"}
_TOP_LEVEL_KEYS = frozenset({"version", "sections", "severity_overrides"})


def load_registry(
    path: Path | None = None, *, default_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS
) -> ProbeRegistry:
    """Load ``path``, or the bundled workstation registry when ``path`` is None."""
    if path is None:
        source = f"<bundled {BUNDLED_REGISTRY}>"
        text = (
            resources.files("preflight_validator.registries")
            .joinpath(BUNDLED_REGISTRY)
            .read_text(encoding="utf-8")
        )
    else:
        source = str(path)
        try:
            text = Path(path).expanduser().read_text(encoding="utf-8")
        except OSError as exc:
            raise RegistryMisconfigurationError(
                f"Cannot read registry {source}: {exc.strerror or exc}", original_error=exc
            ) from exc
    return load_registry_text(text, source=source, default_timeout=default_timeout)


def load_registry_text(
    text: str,
    *,
    source: str = "<string>",
    default_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> ProbeRegistry:
    try:
        document = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise RegistryMisconfigurationError(
            f"{source}: invalid YAML: {exc}", original_error=exc
        ) from exc
    return build_registry(document, source=source, default_timeout=default_timeout)


def build_registry(
    document: Any,
    *,
    source: str = "<declaration>",
    default_timeout: float = DEFAULT_PROBE_TIMEOUT_SECONDS,
) -> ProbeRegistry:
    """Build a registry from an already-parsed declaration mapping."""
    if not isinstance(document, Mapping):
        raise RegistryMisconfigurationError(f"{source}: top level must be a mapping")
    _reject_unknown_keys(document, _TOP_LEVEL_KEYS, f"{source}")

    sections = document.get("sections")
    if not isinstance(sections, list) or not sections:
        raise RegistryMisconfigurationError(f"{source}: 'sections' must be a non-empty list")

    policy = _build_policy(document.get("severity_overrides"), source)
    registry = ProbeRegistry(policy)
    for index, section in enumerate(sections):
        where = f"{source}: sections[{index}]"
        if not isinstance(section, Mapping):
            raise RegistryMisconfigurationError(f"{where} must be a mapping")
        _reject_unknown_keys(section, {"name", "probes"}, where)
        name = section.get("name")
        if not isinstance(name, str) or not name.strip():
            raise RegistryMisconfigurationError(f"{where}: 'name' must be a non-empty string")
        probes = section.get("probes")
        if not isinstance(probes, list) or not probes:
            raise RegistryMisconfigurationError(f"{where}: 'probes' must be a non-empty list")
        for probe_index, entry in enumerate(probes):
            probe_where = f"{where}.probes[{probe_index}]"
            registry.register(name, _build_probe(name, entry, probe_where, default_timeout))

    registry.set_policy(policy)
    logger.info(
        "Registry loaded", source=source, probes=len(registry), sections=len(registry.sections())
    )
    return registry


def _build_policy(overrides: Any, source: str) -> SeverityPolicy:
    if overrides is None:
        return SeverityPolicy()
    if not isinstance(overrides, Mapping):
        raise RegistryMisconfigurationError(f"{source}: 'severity_overrides' must be a mapping")
    return SeverityPolicy(
        {
            str(probe_id): _enum(
                FailureSeverity, value, f"{source}: severity_overrides.{probe_id}"
            )
            for probe_id, value in overrides.items()
        }
    )


def _build_probe(section: str, entry: Any, where: str, default_timeout: float) -> Probe:
    if not isinstance(entry, Mapping):
        raise RegistryMisconfigurationError(f"{where} must be a mapping")

    probe_id = _required_str(entry, "id", where)
    where = f"{where} ({probe_id})"
    description = _required_str(entry, "description", where)
    kind = entry.get("kind", "command")
    severity = _enum(FailureSeverity, entry.get("severity", "critical"), f"{where}.severity")
    optional = entry.get("optional", False)
    if not isinstance(optional, bool):
        raise RegistryMisconfigurationError(f"{where}: 'optional' must be true or false")
    remediation = entry.get("remediation")
    if remediation is not None and not isinstance(remediation, str):
        raise RegistryMisconfigurationError(f"{where}: 'remediation' must be a string")
    timeout = _positive_float(entry.get("timeout", default_timeout), f"{where}.timeout")

    if kind == "command":
        _reject_unknown_keys(entry, _COMMAND_KEYS, where)
        argv = entry.get("argv")
        if (
            not isinstance(argv, list)
            or not argv
            or not all(isinstance(part, (str, int, float)) for part in argv)
        ):
            raise RegistryMisconfigurationError(f"{where}: 'argv' must be a non-empty list")
        return command_probe(
            probe_id,
            section,
            description,
            [str(part) for part in argv],
            parser=_build_parser(entry, where),
            severity=severity,
            remediation=remediation,
            optional=optional,
            timeout=timeout,
        )

    if kind == "host_os":
        _reject_unknown_keys(entry, _HOST_OS_KEYS, where)
        system = _required_str(entry, "system", where)
        min_release = entry.get("min_release")
        min_build = entry.get("min_build")
        if min_build is not None and (not isinstance(min_build, int) or min_build < 0):
            raise RegistryMisconfigurationError(f"{where}: 'min_build' must be an integer")
        return host_os_probe(
            probe_id,
            section,
            description,
            system=system,
            min_release=str(min_release) if min_release is not None else None,
            min_build=min_build,
            severity=severity,
            remediation=remediation,
            optional=optional,
            timeout=timeout,
        )

    raise RegistryMisconfigurationError(f"{where}: unknown probe kind '{kind}'")


def _build_parser(entry: Mapping[str, Any], where: str) -> ParserSpec:
    kind = _enum(OutputParser, entry.get("parser", "exit_code"), f"{where}.parser")
    min_version = entry.get("min_version")
    if min_version is not None:
        min_version = str(min_version)
        if not re.fullmatch(r"\d+(\.\d+)*", min_version):
            raise RegistryMisconfigurationError(
                f"{where}: 'min_version' must be dotted digits, got '{min_version}'"
            )

    field = entry.get("field")
    if kind is OutputParser.JSON_FIELD and not isinstance(field, str):
        raise RegistryMisconfigurationError(f"{where}: json_field parser requires 'field'")

    pattern = entry.get("pattern")
    if kind is OutputParser.CONTAINS:
        if not isinstance(pattern, str) or not pattern:
            raise RegistryMisconfigurationError(f"{where}: contains parser requires 'pattern'")
        try:
            re.compile(pattern)
        except re.error as exc:
            raise RegistryMisconfigurationError(
                f"{where}: invalid pattern '{pattern}': {exc}", original_error=exc
            ) from exc

    expected = entry.get("expected")
    on_missing = _enum(
        MissingMatch, entry.get("on_missing", "indeterminate"), f"{where}.on_missing"
    )
    return ParserSpec(
        kind=kind,
        min_version=min_version,
        field=field,
        expected=str(expected) if expected is not None else None,
        pattern=pattern,
        detail_group=entry.get("detail_group"),
        on_missing=on_missing,
    )


def _required_str(entry: Mapping[str, Any], key: str, where: str) -> str:
    value = entry.get(key)
    if not isinstance(value, str) or not value.strip():
        raise RegistryMisconfigurationError(f"{where}: '{key}' must be a non-empty string")
    return value.strip()


def _positive_float(value: Any, where: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise RegistryMisconfigurationError(f"{where} must be a positive number")
    return float(value)


def _enum(enum_type: Any, value: Any, where: str) -> Any:
    try:
        return enum_type(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise RegistryMisconfigurationError(
            f"{where}: '{value}' is not one of {allowed}"
        ) from None


def _reject_unknown_keys(
    entry: Mapping[str, Any], allowed: frozenset[str] | set[str], where: str
) -> None:
    unknown = sorted(str(key) for key in entry if key not in allowed)
    if unknown:
        raise RegistryMisconfigurationError(f"{where}: unknown keys {', '.join(unknown)}")


__all__ = ["BUNDLED_REGISTRY", "build_registry", "load_registry", "load_registry_text"]
