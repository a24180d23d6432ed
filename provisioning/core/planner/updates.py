"""
Update finder — newer versions of installed roots.

``compute_update_request`` works in two passes. The first resolves a
trial request that offers every available update as an optional root
while pinning each current root to "this version or newer"; whatever the
solver manages to fit is the best reachable update. The second pass
turns the winners into a plain request the caller can resolve and
perform.
"""

from __future__ import annotations

import logging

from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.profile import InclusionRule, Profile
from provisioning.core.models.request import ProfileChangeRequest
from provisioning.core.models.unit import InstallableUnit, unit_requirement
from provisioning.core.models.version import VersionRange
from provisioning.core.planner.resolver import resolve
from provisioning.core.repository.pool import UnitPool

logger = logging.getLogger(__name__)


def updates_for(unit: InstallableUnit, pool: UnitPool) -> list[InstallableUnit]:
    """Versions of ``unit`` in the pool newer than it, highest first."""
    return [u for u in pool.by_id(unit.id) if u.version > unit.version]


def compute_update_request(
    profile: Profile,
    pool: UnitPool,
    context: ProvisioningContext | None = None,
) -> ProfileChangeRequest | None:
    """Build a request updating the profile's roots as far as possible.

    Returns None when no root has a reachable update.
    """
    strict = [u for u in profile.roots() if profile.inclusion_of(u) == InclusionRule.STRICT]
    optional = [u for u in profile.roots() if profile.inclusion_of(u) == InclusionRule.OPTIONAL]

    trial = ProfileChangeRequest(profile)
    floors = []
    offered = 0
    for current in [*strict, *optional]:
        for update in updates_for(current, pool):
            trial.add(update)
            trial.set_inclusion(update, InclusionRule.OPTIONAL)
            offered += 1
        trial.set_inclusion(current, InclusionRule.OPTIONAL)
        floors.append(unit_requirement(current.id, VersionRange.at_least(current.version)))
    trial.add_extra_requirements(floors)

    if offered == 0:
        logger.debug("No updates available for %s", profile.profile_id)
        return None

    plan = resolve(profile, trial, pool, context)
    if not plan.is_ok:
        logger.info("Update trial for %s is not satisfiable", profile.profile_id)
        return None

    added = plan.additions
    request = ProfileChangeRequest(profile)
    for former in [*strict, *optional]:
        newer = [u for u in added if u.id == former.id and u.version > former.version]
        if not newer:
            continue
        best = max(newer, key=lambda u: u.version)
        request.remove(former)
        request.add(best)
        if former in optional:
            request.set_inclusion(best, InclusionRule.OPTIONAL)

    if request.is_empty():
        return None
    logger.info(
        "Update request for %s: %d units to update",
        profile.profile_id,
        len(request.additions),
    )
    return request
