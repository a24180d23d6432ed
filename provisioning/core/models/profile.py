"""
Profile — the record of what is installed for one target.

A profile maps installed units to profile-scoped properties (the most
important being the inclusion rule) and carries free-form string
properties. ``timestamp`` is assigned by the profile store on every
commit; ``changed`` is a transient flag set by mutations and cleared by
the engine after each operation. It is never serialized.

Only the engine mutates a profile, and only inside a locked
transaction. Everybody else works on snapshots.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, PrivateAttr

from provisioning.core.models.unit import InstallableUnit

# Profile property naming the directory installed files live in.
PROP_INSTALL_FOLDER = "install.folder"


class InclusionRule(StrEnum):
    """Why a unit is in the profile."""

    STRICT = "strict"       # requested root, must stay
    OPTIONAL = "optional"   # requested root, kept when possible
    NONE = "none"           # pulled in by a dependency


class ProfileEntry(BaseModel):
    """An installed unit and its profile-scoped properties."""

    unit: InstallableUnit
    inclusion: InclusionRule = InclusionRule.NONE
    properties: dict[str, str] = Field(default_factory=dict)


class Profile(BaseModel):
    """Installed units and properties of one installation target."""

    profile_id: str
    timestamp: int = 0
    properties: dict[str, str] = Field(default_factory=dict)
    entries: dict[str, ProfileEntry] = Field(default_factory=dict)

    _changed: bool = PrivateAttr(default=False)

    # ── Change tracking ──────────────────────────────────────────

    @property
    def changed(self) -> bool:
        return self._changed

    def set_changed(self, changed: bool) -> None:
        self._changed = changed

    # ── Units ────────────────────────────────────────────────────

    def units(self) -> list[InstallableUnit]:
        """Installed units in insertion order."""
        return [e.unit for e in self.entries.values()]

    def contains(self, unit: InstallableUnit) -> bool:
        return unit.key in self.entries

    def entry(self, unit: InstallableUnit) -> ProfileEntry | None:
        return self.entries.get(unit.key)

    def query(self, unit_id: str) -> list[InstallableUnit]:
        """Installed versions of ``unit_id``, highest first."""
        found = [e.unit for e in self.entries.values() if e.unit.id == unit_id]
        return sorted(found, key=lambda u: u.version, reverse=True)

    def add_unit(
        self,
        unit: InstallableUnit,
        inclusion: InclusionRule = InclusionRule.NONE,
        properties: dict[str, str] | None = None,
    ) -> None:
        """Add a unit. Raises ValueError if it is already installed."""
        if unit.key in self.entries:
            raise ValueError(f"Unit {unit} is already installed in {self.profile_id}")
        self.entries[unit.key] = ProfileEntry(
            unit=unit,
            inclusion=inclusion,
            properties=dict(properties or {}),
        )
        self._changed = True

    def remove_unit(self, unit: InstallableUnit) -> ProfileEntry:
        """Remove a unit and return its entry. Raises KeyError if absent."""
        entry = self.entries.pop(unit.key, None)
        if entry is None:
            raise KeyError(f"Unit {unit} is not installed in {self.profile_id}")
        self._changed = True
        return entry

    def restore_entry(self, entry: ProfileEntry) -> None:
        """Put back an entry previously returned by remove_unit."""
        self.entries[entry.unit.key] = entry
        self._changed = True

    def inclusion_of(self, unit: InstallableUnit) -> InclusionRule | None:
        entry = self.entries.get(unit.key)
        return entry.inclusion if entry else None

    def set_inclusion(self, unit: InstallableUnit, inclusion: InclusionRule) -> None:
        entry = self.entries.get(unit.key)
        if entry is None:
            raise KeyError(f"Unit {unit} is not installed in {self.profile_id}")
        entry.inclusion = inclusion
        self._changed = True

    def set_unit_property(self, unit: InstallableUnit, key: str, value: str | None) -> None:
        """Set (or with ``None`` remove) a unit-scoped property."""
        entry = self.entries.get(unit.key)
        if entry is None:
            raise KeyError(f"Unit {unit} is not installed in {self.profile_id}")
        if value is None:
            entry.properties.pop(key, None)
        else:
            entry.properties[key] = value
        self._changed = True

    def roots(self) -> list[InstallableUnit]:
        """Units installed as strict or optional roots."""
        return [
            e.unit
            for e in self.entries.values()
            if e.inclusion in (InclusionRule.STRICT, InclusionRule.OPTIONAL)
        ]

    # ── Profile properties ───────────────────────────────────────

    def get_property(self, key: str, default: str | None = None) -> str | None:
        return self.properties.get(key, default)

    def set_property(self, key: str, value: str) -> None:
        self.properties[key] = value
        self._changed = True

    def remove_property(self, key: str) -> str | None:
        value = self.properties.pop(key, None)
        if value is not None:
            self._changed = True
        return value

    # ── Invariants ───────────────────────────────────────────────

    def singleton_violations(self) -> list[str]:
        """Ids installed in more than one version where one is a singleton."""
        by_id: dict[str, list[InstallableUnit]] = {}
        for unit in self.units():
            by_id.setdefault(unit.id, []).append(unit)
        return sorted(
            uid
            for uid, units in by_id.items()
            if len(units) > 1 and any(u.singleton for u in units)
        )

    def snapshot(self) -> Profile:
        """Deep, independent copy with the changed flag cleared."""
        copy = self.model_copy(deep=True)
        copy.set_changed(False)
        return copy
