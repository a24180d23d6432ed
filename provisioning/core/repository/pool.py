"""
Candidate unit pools — read-only sources of installable units.

The planner only talks to pools through ``query``. Where units come
from (metadata files, remote repositories) is not its concern.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

from provisioning.core.models.unit import InstallableUnit, RequiredCapability
from provisioning.core.models.version import VersionRange

UnitFilter = Callable[[InstallableUnit], bool]


class UnitPool(ABC):
    """Read-only source of candidate units."""

    @abstractmethod
    def query(self, predicate: UnitFilter | None = None) -> list[InstallableUnit]:
        """Units matching ``predicate`` (all units when None)."""

    def all_units(self) -> list[InstallableUnit]:
        return self.query(None)

    def providers_of(self, requirement: RequiredCapability) -> list[InstallableUnit]:
        """Units satisfying a requirement, highest version first."""
        found = self.query(lambda u: u.satisfies(requirement))
        return sorted(found, key=lambda u: (u.version, u.id), reverse=True)

    def by_id(self, unit_id: str, version_range: VersionRange | None = None) -> list[InstallableUnit]:
        """Versions of ``unit_id`` (optionally within a range), highest first."""
        def _match(u: InstallableUnit) -> bool:
            return u.id == unit_id and (version_range is None or version_range.includes(u.version))

        return sorted(self.query(_match), key=lambda u: u.version, reverse=True)


class MemoryUnitPool(UnitPool):
    """Pool over an in-memory collection. Duplicates collapse by identity."""

    def __init__(self, units: Iterable[InstallableUnit] = ()):
        self._units: dict[tuple, InstallableUnit] = {}
        for unit in units:
            self._units.setdefault(unit.identity, unit)

    def query(self, predicate: UnitFilter | None = None) -> list[InstallableUnit]:
        if predicate is None:
            return list(self._units.values())
        return [u for u in self._units.values() if predicate(u)]

    def __len__(self) -> int:
        return len(self._units)


class CompositeUnitPool(UnitPool):
    """Union of several pools; the first pool wins on duplicate identities."""

    def __init__(self, pools: Iterable[UnitPool]):
        self._pools = list(pools)

    def query(self, predicate: UnitFilter | None = None) -> list[InstallableUnit]:
        seen: dict[tuple, InstallableUnit] = {}
        for pool in self._pools:
            for unit in pool.query(predicate):
                seen.setdefault(unit.identity, unit)
        return list(seen.values())
