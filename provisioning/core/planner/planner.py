"""
Planner — resolver operations bound to one unit pool.
"""

from __future__ import annotations

from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.plan import ProvisioningPlan
from provisioning.core.models.profile import Profile
from provisioning.core.models.request import ProfileChangeRequest
from provisioning.core.models.unit import InstallableUnit
from provisioning.core.planner.resolver import plan_revert, resolve
from provisioning.core.planner.updates import compute_update_request, updates_for
from provisioning.core.repository.pool import UnitPool


class Planner:
    """Stateless planner over a candidate pool."""

    def __init__(self, pool: UnitPool):
        if pool is None:
            raise ValueError("Planner needs a unit pool")
        self._pool = pool

    @property
    def pool(self) -> UnitPool:
        return self._pool

    def resolve(
        self,
        profile: Profile,
        request: ProfileChangeRequest,
        context: ProvisioningContext | None = None,
    ) -> ProvisioningPlan:
        return resolve(profile, request, self._pool, context)

    def updates_for(self, unit: InstallableUnit) -> list[InstallableUnit]:
        return updates_for(unit, self._pool)

    def compute_update_request(
        self,
        profile: Profile,
        context: ProvisioningContext | None = None,
    ) -> ProfileChangeRequest | None:
        return compute_update_request(profile, self._pool, context)

    def plan_revert(self, profile: Profile, target: Profile) -> ProvisioningPlan:
        return plan_revert(profile, target)
