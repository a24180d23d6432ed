"""
Installable units — immutable descriptions of installable software.

A unit is identified by ``(id, version)``. It provides capabilities and
requires capabilities from other units. Every unit implicitly provides
its own identity in the ``unit.id`` namespace, which is how plain
"unit X in range R" dependencies are expressed.

Units also carry the data the phase pipeline needs to act on them:
artifact keys to collect and per-phase touchpoint instructions.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from provisioning.core.models.version import (
    Version,
    VersionField,
    VersionRange,
    VersionRangeField,
)

# Namespace of the implicit identity capability.
NAMESPACE_UNIT_ID = "unit.id"


class ProvidedCapability(BaseModel):
    """A capability a unit offers to others."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str
    version: VersionField = Version()

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}/{self.version}"


class RequiredCapability(BaseModel):
    """A dependency edge: some unit must provide a matching capability.

    ``optional`` requirements never make a plan fail. Optional and
    ``greedy`` requirements are satisfied when possible; optional
    non-greedy requirements are ignored by the planner.
    """

    model_config = ConfigDict(frozen=True)

    namespace: str = NAMESPACE_UNIT_ID
    name: str
    range: VersionRangeField = VersionRange()
    optional: bool = False
    greedy: bool = True

    def is_satisfied_by(self, capability: ProvidedCapability) -> bool:
        return (
            capability.namespace == self.namespace
            and capability.name == self.name
            and self.range.includes(capability.version)
        )

    def __str__(self) -> str:
        flag = " (optional)" if self.optional else ""
        return f"{self.namespace}/{self.name} {self.range}{flag}"


class TouchpointInstruction(BaseModel):
    """One action a unit asks a phase to run, e.g. ``native.mkdir``."""

    model_config = ConfigDict(frozen=True)

    kind: str
    params: dict[str, str] = Field(default_factory=dict)


class InstallableUnit(BaseModel):
    """An immutable, versioned installable unit.

    Equality and hashing use ``(id, version)`` only: two descriptions of
    the same unit from different sources are the same unit.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    version: VersionField = Version(1)
    singleton: bool = False

    provides: tuple[ProvidedCapability, ...] = ()
    requires: tuple[RequiredCapability, ...] = ()

    artifacts: tuple[str, ...] = ()
    touchpoint: dict[str, tuple[TouchpointInstruction, ...]] = Field(default_factory=dict)
    properties: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        """Stable string identity, ``id/version``."""
        return f"{self.id}/{self.version}"

    @property
    def identity(self) -> tuple[str, Version]:
        return (self.id, self.version)

    @property
    def capabilities(self) -> tuple[ProvidedCapability, ...]:
        """Declared capabilities plus the implicit identity capability."""
        own = ProvidedCapability(
            namespace=NAMESPACE_UNIT_ID, name=self.id, version=self.version
        )
        return (own, *self.provides)

    def satisfies(self, requirement: RequiredCapability) -> bool:
        if (
            requirement.namespace == NAMESPACE_UNIT_ID
            and requirement.name == self.id
            and requirement.range.includes(self.version)
        ):
            return True
        return any(requirement.is_satisfied_by(c) for c in self.provides)

    def instructions(self, phase: str) -> tuple[TouchpointInstruction, ...]:
        return self.touchpoint.get(phase, ())

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, InstallableUnit):
            return NotImplemented
        return self.identity == other.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


def unit_requirement(
    unit_id: str,
    version_range: VersionRange | str | None = None,
    optional: bool = False,
    greedy: bool = True,
) -> RequiredCapability:
    """Build a requirement on a unit identity."""
    return RequiredCapability(
        namespace=NAMESPACE_UNIT_ID,
        name=unit_id,
        range=VersionRange.coerce(version_range),
        optional=optional,
        greedy=greedy,
    )
