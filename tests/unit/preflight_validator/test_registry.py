from __future__ import annotations

import pytest

from preflight_validator.classifier import SeverityPolicy
from preflight_validator.errors import ConfigurationError, RegistryMisconfigurationError
from preflight_validator.probes.models import FailureSeverity
from preflight_validator.registry import ProbeRegistry, assemble_registry


def test_register_keeps_declaration_order(make_probe) -> None:
    registry = ProbeRegistry()
    registry.register("Core", make_probe("b"))
    registry.register("Core", make_probe("a"))
    registry.register("Optional", make_probe("c", section="Optional"))

    assert [probe.id for probe in registry] == ["b", "a", "c"]
    assert registry.sections() == ["Core", "Optional"]
    assert len(registry) == 3
    assert "a" in registry
    assert registry.get("c") is not None
    assert registry.get("missing") is None


def test_register_assigns_the_given_section(make_probe) -> None:
    registry = ProbeRegistry()

    probe = registry.register("Container Runtime", make_probe("docker", section="Other"))

    assert probe.section == "Container Runtime"


def test_duplicate_id_is_rejected(make_probe) -> None:
    registry = ProbeRegistry()
    registry.register("Core", make_probe("runtime"))

    with pytest.raises(RegistryMisconfigurationError, match="Duplicate probe id: runtime") as exc:
        registry.register("Other", make_probe("runtime"))

    assert exc.value.context["probe_id"] == "runtime"
    assert len(registry) == 1


def test_critical_probe_requires_remediation(make_probe) -> None:
    registry = ProbeRegistry()

    with pytest.raises(RegistryMisconfigurationError, match="no remediation"):
        registry.register("Core", make_probe("runtime", remediation="  "))


def test_warning_probe_requires_remediation(make_probe) -> None:
    registry = ProbeRegistry()

    with pytest.raises(RegistryMisconfigurationError, match="no remediation") as exc:
        registry.register(
            "Core", make_probe("lint", severity=FailureSeverity.WARNING, remediation=None)
        )

    assert exc.value.context["probe_id"] == "lint"
    assert len(registry) == 0


def test_optional_probe_may_omit_remediation(make_probe) -> None:
    registry = ProbeRegistry()
    registry.register("Core", make_probe("extra", optional=True, remediation=None))

    assert len(registry) == 1


def test_constructor_policy_with_unknown_probe_is_rejected_before_execution(
    make_probe,
) -> None:
    registry = ProbeRegistry(SeverityPolicy({"ghost": FailureSeverity.WARNING}))
    registry.register("Core", make_probe("runtime"))

    with pytest.raises(RegistryMisconfigurationError, match="unknown probes: ghost"):
        registry.all_probes()
    with pytest.raises(RegistryMisconfigurationError):
        list(registry)


def test_constructor_policy_naming_registered_probes_is_accepted(make_probe) -> None:
    registry = ProbeRegistry(SeverityPolicy({"runtime": FailureSeverity.WARNING}))
    registry.register("Core", make_probe("runtime"))

    assert [probe.id for probe in registry.all_probes()] == ["runtime"]


def test_policy_with_unknown_probe_is_rejected(make_probe) -> None:
    registry = ProbeRegistry()
    registry.register("Core", make_probe("runtime"))

    with pytest.raises(RegistryMisconfigurationError, match="unknown probes: ghost"):
        registry.set_policy(SeverityPolicy({"ghost": FailureSeverity.WARNING}))


@pytest.mark.parametrize("section", ["", "   "])
def test_empty_section_is_rejected(make_probe, section: str) -> None:
    with pytest.raises(RegistryMisconfigurationError):
        ProbeRegistry().register(section, make_probe())


def test_non_positive_timeout_is_rejected(make_probe) -> None:
    with pytest.raises(RegistryMisconfigurationError, match="timeout"):
        ProbeRegistry().register("Core", make_probe(timeout=0))


def test_assemble_registry_reports_all_duplicates(make_probe) -> None:
    probes = [make_probe("a"), make_probe("b"), make_probe("a"), make_probe("b")]

    with pytest.raises(RegistryMisconfigurationError, match="Duplicate probe ids: a, b"):
        assemble_registry(probes)


def test_restrict_matches_section_case_insensitively(make_probe) -> None:
    registry = assemble_registry(
        [
            make_probe("docker", section="Container Runtime"),
            make_probe("node", section="Language Runtime"),
        ],
        SeverityPolicy({"node": FailureSeverity.WARNING}),
    )

    restricted = registry.restrict("container runtime")

    assert [probe.id for probe in restricted] == ["docker"]
    assert dict(restricted.policy.overrides) == {}
    assert len(registry) == 2


def test_restrict_unknown_section_is_a_configuration_error(make_probe) -> None:
    registry = assemble_registry([make_probe("docker", section="Container Runtime")])

    with pytest.raises(ConfigurationError, match="Unknown section 'Cloud'") as exc:
        registry.restrict("Cloud")

    assert exc.value.context["config_key"] == "section"
