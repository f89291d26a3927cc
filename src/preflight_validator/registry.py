from __future__ import annotations

from collections.abc import Iterator, Sequence
from dataclasses import replace

from preflight_validator.classifier import DEFAULT_POLICY, SeverityPolicy
from preflight_validator.errors import ConfigurationError, RegistryMisconfigurationError
from preflight_validator.probes.models import Probe


class ProbeRegistry:
    """Ordered, section-grouped collection of probes.

    Registration fails fast: a duplicate id or a non-optional probe without a
    remediation hint raises ``RegistryMisconfigurationError`` before any probe
    can execute. Severity overrides naming unregistered probes are rejected by
    ``set_policy`` once probes exist, and by ``all_probes`` at the latest.
    """

    def __init__(self, policy: SeverityPolicy = DEFAULT_POLICY) -> None:
        self._probes: list[Probe] = []
        self._ids: set[str] = set()
        self._policy = DEFAULT_POLICY
        self.set_policy(policy)

    @property
    def policy(self) -> SeverityPolicy:
        return self._policy

    def register(self, section: str, probe: Probe) -> Probe:
        if not section or not section.strip():
            raise RegistryMisconfigurationError(
                "Probe section must not be empty", probe_id=probe.id
            )
        if not probe.id or not probe.id.strip():
            raise RegistryMisconfigurationError("Probe id must not be empty")
        if probe.id in self._ids:
            raise RegistryMisconfigurationError(
                f"Duplicate probe id: {probe.id}", probe_id=probe.id
            )
        if probe.timeout <= 0:
            raise RegistryMisconfigurationError(
                f"Probe {probe.id} has a non-positive timeout", probe_id=probe.id
            )
        if probe.section != section:
            probe = replace(probe, section=section)
        self._require_remediation(probe)

        self._probes.append(probe)
        self._ids.add(probe.id)
        return probe

    def set_policy(self, policy: SeverityPolicy) -> None:
        if self._probes:
            self._reject_unknown_overrides(policy)
        self._policy = policy

    def all_probes(self) -> tuple[Probe, ...]:
        self._reject_unknown_overrides(self._policy)
        return tuple(self._probes)

    def sections(self) -> list[str]:
        ordered: list[str] = []
        for probe in self._probes:
            if probe.section not in ordered:
                ordered.append(probe.section)
        return ordered

    def get(self, probe_id: str) -> Probe | None:
        for probe in self._probes:
            if probe.id == probe_id:
                return probe
        return None

    def restrict(self, section: str) -> ProbeRegistry:
        """Return a registry holding only ``section``, matched case-insensitively."""
        wanted = section.strip().casefold()
        matches = [probe for probe in self._probes if probe.section.casefold() == wanted]
        if not matches:
            known = ", ".join(self.sections()) or "<none>"
            raise ConfigurationError(
                f"Unknown section '{section}' (known sections: {known})", config_key="section"
            )
        match_ids = {probe.id for probe in matches}
        restricted = ProbeRegistry(
            SeverityPolicy({k: v for k, v in self._policy.overrides.items() if k in match_ids})
        )
        for probe in matches:
            restricted.register(probe.section, probe)
        return restricted

    def __len__(self) -> int:
        return len(self._probes)

    def __iter__(self) -> Iterator[Probe]:
        return iter(self.all_probes())

    def __contains__(self, probe_id: object) -> bool:
        return probe_id in self._ids

    def _reject_unknown_overrides(self, policy: SeverityPolicy) -> None:
        unknown = sorted(set(policy.overrides) - self._ids)
        if unknown:
            raise RegistryMisconfigurationError(
                "Severity overrides reference unknown probes: " + ", ".join(unknown)
            )

    @staticmethod
    def _require_remediation(probe: Probe) -> None:
        if probe.optional or (probe.remediation and probe.remediation.strip()):
            return
        raise RegistryMisconfigurationError(
            f"Probe {probe.id} declares no remediation hint", probe_id=probe.id
        )


def assemble_registry(
    probes: Sequence[Probe], policy: SeverityPolicy = DEFAULT_POLICY
) -> ProbeRegistry:
    """Build a registry from ``probes``, reporting every duplicate id at once."""
    seen: set[str] = set()
    duplicate_ids: list[str] = []
    for probe in probes:
        if probe.id in seen:
            duplicate_ids.append(probe.id)
        seen.add(probe.id)
    if duplicate_ids:
        unique = ", ".join(sorted(set(duplicate_ids)))
        raise RegistryMisconfigurationError(f"Duplicate probe ids: {unique}")

    registry = ProbeRegistry(policy)
    for probe in probes:
        registry.register(probe.section, probe)
    registry.set_policy(policy)
    return registry


__all__ = ["ProbeRegistry", "assemble_registry"]
