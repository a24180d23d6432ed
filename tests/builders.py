"""
Builders for test units and profiles.
"""

from __future__ import annotations

from provisioning.core.models import (
    InclusionRule,
    InstallableUnit,
    Profile,
    RequiredCapability,
    TouchpointInstruction,
    unit_requirement,
)


def req(
    unit_id: str,
    version_range: str | None = None,
    *,
    optional: bool = False,
    greedy: bool = True,
) -> RequiredCapability:
    return unit_requirement(unit_id, version_range, optional=optional, greedy=greedy)


def unit(
    unit_id: str,
    version: str = "1.0.0",
    *,
    requires: list[RequiredCapability] | None = None,
    singleton: bool = False,
    artifacts: list[str] | None = None,
    touchpoint: dict[str, list[tuple[str, dict[str, str]]]] | None = None,
) -> InstallableUnit:
    """A unit; ``touchpoint`` maps phase → [(kind, params), ...]."""
    return InstallableUnit(
        id=unit_id,
        version=version,
        singleton=singleton,
        requires=tuple(requires or ()),
        artifacts=tuple(artifacts or ()),
        touchpoint={
            phase: tuple(TouchpointInstruction(kind=k, params=p) for k, p in instrs)
            for phase, instrs in (touchpoint or {}).items()
        },
    )


def mocked(unit_id: str, version: str = "1.0.0", **kwargs) -> InstallableUnit:
    """A unit running the ``mock`` action in its install and configure phases."""
    return unit(
        unit_id,
        version,
        touchpoint={"install": [("mock", {})], "configure": [("mock", {})]},
        **kwargs,
    )


def profile_with(
    profile_id: str = "test",
    roots: list[InstallableUnit] | None = None,
    deps: list[InstallableUnit] | None = None,
    optional: list[InstallableUnit] | None = None,
) -> Profile:
    profile = Profile(profile_id=profile_id)
    for u in roots or []:
        profile.add_unit(u, InclusionRule.STRICT)
    for u in optional or []:
        profile.add_unit(u, InclusionRule.OPTIONAL)
    for u in deps or []:
        profile.add_unit(u, InclusionRule.NONE)
    profile.set_changed(False)
    return profile


def keys(units) -> list[str]:
    return sorted(u.key for u in units)
