"""
ProfileChangeRequest — a declarative description of wanted changes.

Callers build a request against a profile snapshot; the planner
consumes it. Once resolution starts the request is frozen.
"""

from __future__ import annotations

from provisioning.core.models.profile import InclusionRule, Profile
from provisioning.core.models.unit import InstallableUnit, RequiredCapability


class InvalidChangeRequestError(ValueError):
    """Raised when a change request is structurally invalid."""


class ProfileChangeRequest:
    """Units to add and remove, inclusion overrides, extra constraints."""

    def __init__(self, profile: Profile):
        if profile is None:
            raise ValueError("A change request needs a profile")
        self._profile = profile
        self._additions: list[InstallableUnit] = []
        self._removals: list[InstallableUnit] = []
        self._inclusions: dict[InstallableUnit, InclusionRule] = {}
        self._extra_requirements: list[RequiredCapability] = []
        self._property_changes: dict[str, str | None] = {}
        self._frozen = False

    # ── Accessors ────────────────────────────────────────────────

    @property
    def profile(self) -> Profile:
        return self._profile

    @property
    def additions(self) -> tuple[InstallableUnit, ...]:
        return tuple(self._additions)

    @property
    def removals(self) -> tuple[InstallableUnit, ...]:
        return tuple(self._removals)

    @property
    def inclusion_overrides(self) -> dict[InstallableUnit, InclusionRule]:
        return dict(self._inclusions)

    @property
    def extra_requirements(self) -> tuple[RequiredCapability, ...]:
        return tuple(self._extra_requirements)

    @property
    def property_changes(self) -> dict[str, str | None]:
        return dict(self._property_changes)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def is_empty(self) -> bool:
        return not (
            self._additions
            or self._removals
            or self._inclusions
            or self._extra_requirements
            or self._property_changes
        )

    # ── Mutators ─────────────────────────────────────────────────

    def add(self, unit: InstallableUnit) -> None:
        self._check_mutable()
        if unit not in self._additions:
            self._additions.append(unit)

    def add_all(self, units: list[InstallableUnit] | tuple[InstallableUnit, ...]) -> None:
        for unit in units:
            self.add(unit)

    def remove(self, unit: InstallableUnit) -> None:
        self._check_mutable()
        if unit not in self._removals:
            self._removals.append(unit)

    def remove_all(self, units: list[InstallableUnit] | tuple[InstallableUnit, ...]) -> None:
        for unit in units:
            self.remove(unit)

    def set_inclusion(self, unit: InstallableUnit, rule: InclusionRule) -> None:
        self._check_mutable()
        self._inclusions[unit] = rule

    def add_extra_requirements(self, requirements: list[RequiredCapability]) -> None:
        self._check_mutable()
        self._extra_requirements.extend(requirements)

    def set_profile_property(self, key: str, value: str) -> None:
        self._check_mutable()
        self._property_changes[key] = value

    def remove_profile_property(self, key: str) -> None:
        self._check_mutable()
        self._property_changes[key] = None

    # ── Lifecycle ────────────────────────────────────────────────

    def validate(self) -> None:
        """Reject structurally invalid requests.

        Raises:
            InvalidChangeRequestError: A unit is both added and removed.
        """
        clashes = [u for u in self._additions if u in self._removals]
        if clashes:
            names = ", ".join(str(u) for u in clashes)
            raise InvalidChangeRequestError(f"Units both added and removed: {names}")

    def freeze(self) -> None:
        self._frozen = True

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("Change request is frozen once resolution has started")

    def __repr__(self) -> str:
        return (
            f"<ProfileChangeRequest profile={self._profile.profile_id!r} "
            f"add={len(self._additions)} remove={len(self._removals)}>"
        )
