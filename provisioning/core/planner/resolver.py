"""
Resolver — turns a change request into a provisioning plan.

Steps:
    1. Validate and freeze the request.
    2. Collect roots (strict and optional) from the profile and request.
    3. Build the candidate universe from the pool, the profile and the
       context's extra units.
    4. Solve the strict roots, then extend with optional ones.
    5. On failure, explain; on success, diff old and new selections into
       operands.

Resolution is pure: the profile, request and pool are only read.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.operand import INCLUSION_PROPERTY, Operand, PropertyOperand
from provisioning.core.models.plan import ProvisioningPlan
from provisioning.core.models.profile import InclusionRule, Profile
from provisioning.core.models.request import ProfileChangeRequest
from provisioning.core.models.unit import InstallableUnit
from provisioning.core.planner.explain import explain_conflicts
from provisioning.core.planner.solver import Solver, Universe
from provisioning.core.repository.pool import UnitPool

logger = logging.getLogger(__name__)

_KIND_ORDER = {"uninstall": 0, "update": 1, "install": 2, "property": 3}


def resolve(
    profile: Profile,
    request: ProfileChangeRequest,
    pool: UnitPool,
    context: ProvisioningContext | None = None,
) -> ProvisioningPlan:
    """Compute the operands that apply ``request`` to ``profile``.

    Raises:
        ValueError: If an argument is None.
        InvalidChangeRequestError: If the request is structurally invalid.
    """
    if profile is None or request is None or pool is None:
        raise ValueError("resolve needs a profile, a request and a pool")
    context = context or ProvisioningContext()

    request.validate()
    request.freeze()

    removals = set(request.removals)
    additions = [u for u in request.additions if not profile.contains(u)]
    requested = set(request.additions)
    overrides = request.inclusion_overrides
    installed = [u for u in profile.units() if u not in removals]

    # ── Roots ────────────────────────────────────────────────────

    strict_installed: list[InstallableUnit] = []
    optional_installed: list[InstallableUnit] = []
    for unit in installed:
        default = InclusionRule.STRICT if unit in requested else profile.inclusion_of(unit)
        rule = overrides.get(unit, default)
        if rule == InclusionRule.STRICT:
            strict_installed.append(unit)
        elif rule == InclusionRule.OPTIONAL:
            optional_installed.append(unit)

    strict_requested: list[InstallableUnit] = []
    optional_requested: list[InstallableUnit] = []
    for unit in additions:
        if overrides.get(unit) == InclusionRule.OPTIONAL:
            optional_requested.append(unit)
        else:
            strict_requested.append(unit)

    mandatory_reqs = [r for r in request.extra_requirements if not r.optional]
    optional_reqs = [r for r in request.extra_requirements if r.optional and r.greedy]

    # ── Search ───────────────────────────────────────────────────

    universe = Universe.build(
        pool,
        seeds=[*installed, *additions],
        extra_units=context.extra_units,
        requirements=request.extra_requirements,
        excluded=removals,
    )
    solver = Solver(universe, requested=additions)

    strict_roots = [*strict_installed, *strict_requested]
    selection = solver.solve(strict_roots, mandatory_reqs)
    if selection is None:
        status = explain_conflicts(
            solver,
            strict_installed,
            strict_requested,
            mandatory_reqs,
            solver.failures,
            has_removals=bool(removals),
        )
        logger.info("Request on %s is not satisfiable: %s", profile.profile_id, status.severity)
        return ProvisioningPlan.infeasible(profile.profile_id, status)

    optional_roots = [
        *sorted(optional_requested, key=lambda u: (u.id, u.version), reverse=True),
        *sorted(optional_installed, key=lambda u: (u.id, u.version), reverse=True),
    ]
    selection = solver.extend(selection, optional_roots, optional_reqs)

    # ── Operands ─────────────────────────────────────────────────

    inclusions: dict[InstallableUnit, InclusionRule] = {}
    for unit in selection.values():
        if unit in requested:
            rule = overrides.get(unit, InclusionRule.STRICT)
        elif profile.contains(unit):
            rule = overrides.get(unit, profile.inclusion_of(unit) or InclusionRule.NONE)
        else:
            rule = InclusionRule.NONE
        inclusions[unit] = rule

    operands = compute_operands(profile, inclusions, request.property_changes)
    logger.info(
        "Resolved request on %s: %d operands",
        profile.profile_id,
        len(operands),
    )
    return ProvisioningPlan(profile_id=profile.profile_id, operands=operands)


def compute_operands(
    profile: Profile,
    target: dict[InstallableUnit, InclusionRule],
    property_changes: dict[str, str | None] | None = None,
) -> list[Operand | PropertyOperand]:
    """Diff the profile against a target selection.

    ``target`` maps every unit that should be installed afterwards to its
    inclusion rule. Units in both with the same rule yield nothing.
    """
    current = profile.units()
    current_set = set(current)
    target_set = set(target)

    leaving_by_id: dict[str, list[InstallableUnit]] = defaultdict(list)
    for unit in current_set - target_set:
        leaving_by_id[unit.id].append(unit)
    arriving_by_id: dict[str, list[InstallableUnit]] = defaultdict(list)
    for unit in target_set - current_set:
        arriving_by_id[unit.id].append(unit)

    unit_ops: list[Operand] = []
    for unit_id in sorted({*leaving_by_id, *arriving_by_id}):
        leaving = sorted(leaving_by_id.get(unit_id, ()), key=lambda u: u.version)
        arriving = sorted(arriving_by_id.get(unit_id, ()), key=lambda u: u.version)
        for before, after in zip(leaving, arriving):
            unit_ops.append(_operand(before, after, target[after]))
        for before in leaving[len(arriving):]:
            unit_ops.append(Operand.uninstall(before))
        for after in arriving[len(leaving):]:
            unit_ops.append(_operand(None, after, target[after]))

    for unit in current:
        if unit in target and target[unit] != profile.inclusion_of(unit):
            unit_ops.append(_operand(unit, unit, target[unit]))

    unit_ops.sort(key=lambda op: (op.unit_id, _KIND_ORDER[op.kind], str(op)))

    prop_ops: list[PropertyOperand] = []
    for key, value in sorted((property_changes or {}).items()):
        before = profile.get_property(key)
        if before != value:
            prop_ops.append(PropertyOperand(key=key, before=before, after=value))

    return [*unit_ops, *prop_ops]


def _operand(
    before: InstallableUnit | None,
    after: InstallableUnit,
    rule: InclusionRule,
) -> Operand:
    return Operand(before=before, after=after, properties={INCLUSION_PROPERTY: rule.value})


def plan_revert(profile: Profile, target: Profile) -> ProvisioningPlan:
    """Operands that bring ``profile`` back to the state recorded in ``target``.

    ``target`` is usually a historical snapshot from the profile store.
    No resolution happens: the historical selection was consistent when
    it was committed.
    """
    if profile is None or target is None:
        raise ValueError("plan_revert needs a profile and a target")
    if profile.profile_id != target.profile_id:
        raise ValueError(
            f"Cannot revert {profile.profile_id} to a state of {target.profile_id}"
        )

    inclusions = {e.unit: e.inclusion for e in target.entries.values()}
    keys = set(profile.properties) | set(target.properties)
    changes = {key: target.properties.get(key) for key in keys}
    operands = compute_operands(profile, inclusions, changes)
    logger.info(
        "Revert plan for %s to %d: %d operands",
        profile.profile_id,
        target.timestamp,
        len(operands),
    )
    return ProvisioningPlan(profile_id=profile.profile_id, operands=operands)

