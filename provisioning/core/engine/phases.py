"""
Phases and phase sets — the ordered pipeline that applies operands.

A phase turns each operand into zero or more ActionDescriptors through
its rule. A phase set runs phases in a fixed order, phase-major: every
operand's collect actions run before any unconfigure action, and so on.

    collect(10) → unconfigure(20) → uninstall(30) → property(40)
                → install(50) → configure(60)

Failure semantics:
    - an ERROR lets the remaining actions of the same phase run, but no
      later phase starts;
    - a cancellation observed between two actions adds a CANCEL status
      and stops the current phase;
    - every action that did not fail is recorded in the session before
      the next one runs, so rollback sees exactly the applied effects.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from provisioning.actions.base import ActionContext
from provisioning.actions.registry import ActionRegistry
from provisioning.core.engine.cancellation import Cancellation
from provisioning.core.models.action import ActionDescriptor
from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.operand import INCLUSION_PROPERTY, Operand, PropertyOperand
from provisioning.core.models.profile import Profile
from provisioning.core.models.status import MultiStatus, Severity, Status
from provisioning.core.models.unit import InstallableUnit

if TYPE_CHECKING:
    from provisioning.core.engine.session import EngineSession

logger = logging.getLogger(__name__)


class PhaseKind(StrEnum):
    COLLECT = "collect"
    UNCONFIGURE = "unconfigure"
    UNINSTALL = "uninstall"
    PROPERTY = "property"
    INSTALL = "install"
    CONFIGURE = "configure"


PHASE_ORDER: dict[PhaseKind, int] = {
    PhaseKind.COLLECT: 10,
    PhaseKind.UNCONFIGURE: 20,
    PhaseKind.UNINSTALL: 30,
    PhaseKind.PROPERTY: 40,
    PhaseKind.INSTALL: 50,
    PhaseKind.CONFIGURE: 60,
}

AnyOperand = Operand | PropertyOperand
PhaseRule = Callable[[AnyOperand], list[ActionDescriptor]]


# ── Descriptor helpers ──────────────────────────────────────────


def _subject(operand: AnyOperand) -> str:
    if isinstance(operand, PropertyOperand):
        return f"property:{operand.key}"
    unit = operand.after or operand.before
    return unit.key


def _descriptor(
    phase: PhaseKind,
    operand: AnyOperand,
    kind: str,
    index: int,
    params: dict[str, Any] | None = None,
) -> ActionDescriptor:
    return ActionDescriptor(
        id=f"{phase.value}:{_subject(operand)}:{kind}#{index}",
        kind=kind,
        phase=phase.value,
        params=params or {},
        operand=operand,
    )


def _changes_unit(operand: AnyOperand) -> bool:
    """Unit operands that install, uninstall or update (not same-unit)."""
    return isinstance(operand, Operand) and operand.before != operand.after


def _touchpoint(
    phase: PhaseKind,
    operand: AnyOperand,
    unit: InstallableUnit | None,
    start: int = 0,
) -> list[ActionDescriptor]:
    if unit is None:
        return []
    return [
        _descriptor(phase, operand, instr.kind, start + i, dict(instr.params))
        for i, instr in enumerate(unit.instructions(phase.value))
    ]


def _unit_properties(operand: Operand) -> dict[str, str]:
    return {k: v for k, v in operand.properties.items() if k != INCLUSION_PROPERTY}


# ── Default rules ───────────────────────────────────────────────


def collect_rule(operand: AnyOperand) -> list[ActionDescriptor]:
    if not _changes_unit(operand) or operand.after is None:
        return []
    return [
        _descriptor(PhaseKind.COLLECT, operand, "collect", i, {"artifact": artifact})
        for i, artifact in enumerate(operand.after.artifacts)
    ]


def unconfigure_rule(operand: AnyOperand) -> list[ActionDescriptor]:
    if not _changes_unit(operand):
        return []
    return _touchpoint(PhaseKind.UNCONFIGURE, operand, operand.before)


def uninstall_rule(operand: AnyOperand) -> list[ActionDescriptor]:
    if not _changes_unit(operand) or operand.before is None:
        return []
    actions = _touchpoint(PhaseKind.UNINSTALL, operand, operand.before)
    actions.append(_descriptor(PhaseKind.UNINSTALL, operand, "profile.remove_unit", len(actions)))
    return actions


def property_rule(operand: AnyOperand) -> list[ActionDescriptor]:
    if isinstance(operand, PropertyOperand):
        return [_descriptor(PhaseKind.PROPERTY, operand, "profile.set_property", 0)]
    if operand.before is not None and operand.before == operand.after:
        params: dict[str, Any] = {"properties": _unit_properties(operand)}
        if INCLUSION_PROPERTY in operand.properties:
            params["inclusion"] = operand.properties[INCLUSION_PROPERTY]
        return [_descriptor(PhaseKind.PROPERTY, operand, "profile.set_unit_property", 0, params)]
    return []


def install_rule(operand: AnyOperand) -> list[ActionDescriptor]:
    if not _changes_unit(operand) or operand.after is None:
        return []
    params: dict[str, Any] = {"properties": _unit_properties(operand)}
    if INCLUSION_PROPERTY in operand.properties:
        params["inclusion"] = operand.properties[INCLUSION_PROPERTY]
    actions = [_descriptor(PhaseKind.INSTALL, operand, "profile.add_unit", 0, params)]
    actions.extend(_touchpoint(PhaseKind.INSTALL, operand, operand.after, start=1))
    return actions


def configure_rule(operand: AnyOperand) -> list[ActionDescriptor]:
    if not _changes_unit(operand):
        return []
    return _touchpoint(PhaseKind.CONFIGURE, operand, operand.after)


DEFAULT_RULES: dict[PhaseKind, PhaseRule] = {
    PhaseKind.COLLECT: collect_rule,
    PhaseKind.UNCONFIGURE: unconfigure_rule,
    PhaseKind.UNINSTALL: uninstall_rule,
    PhaseKind.PROPERTY: property_rule,
    PhaseKind.INSTALL: install_rule,
    PhaseKind.CONFIGURE: configure_rule,
}


# ── Phase ───────────────────────────────────────────────────────


@dataclass
class Phase:
    """One step of the pipeline. ``order`` defaults to the kind's slot."""

    kind: PhaseKind
    rule: PhaseRule | None = None
    order: int | None = None

    def __post_init__(self) -> None:
        self.kind = PhaseKind(self.kind)
        if self.rule is None:
            self.rule = DEFAULT_RULES[self.kind]
        if self.order is None:
            self.order = PHASE_ORDER[self.kind]

    def actions_for(self, operand: AnyOperand) -> list[ActionDescriptor]:
        return list(self.rule(operand))


# ── Phase set ───────────────────────────────────────────────────


@dataclass
class PhaseSet:
    """An ordered collection of phases applied to a list of operands."""

    phase_set_id: str
    phases: list[Phase] = field(default_factory=list)

    def __post_init__(self) -> None:
        kinds = [p.kind for p in self.phases]
        duplicates = sorted({k for k in kinds if kinds.count(k) > 1})
        if duplicates:
            raise ValueError(f"Phase set {self.phase_set_id} repeats phases: {duplicates}")
        self.phases = sorted(self.phases, key=lambda p: p.order)

    # ── Planning ─────────────────────────────────────────────────

    def plan(self, operands: Sequence[AnyOperand]) -> list[tuple[Phase, list[ActionDescriptor]]]:
        """Descriptors per phase, in execution order."""
        return [
            (phase, [d for op in operands for d in phase.actions_for(op)])
            for phase in self.phases
        ]

    @staticmethod
    def check_operands(profile: Profile, operands: Iterable[AnyOperand]) -> Status:
        """Before units must be installed; new after units must not be."""
        problems = []
        for operand in operands:
            if not isinstance(operand, Operand):
                continue
            if operand.before is not None and not profile.contains(operand.before):
                problems.append(f"{operand.before} is not installed")
            if (
                operand.after is not None
                and operand.after != operand.before
                and profile.contains(operand.after)
            ):
                problems.append(f"{operand.after} is already installed")
        if problems:
            return Status.error(
                f"Operands do not match profile {profile.profile_id}: " + "; ".join(problems),
                source="operands",
            )
        return Status.ok(source="operands")

    # ── Validation ───────────────────────────────────────────────

    def validate(
        self,
        registry: ActionRegistry,
        profile: Profile,
        operands: Sequence[AnyOperand],
        context: ProvisioningContext | None = None,
    ) -> MultiStatus:
        """Check operands and every scheduled action without side effects."""
        context = context or ProvisioningContext()
        result = MultiStatus(source=self.phase_set_id, message="Validation")

        check = self.check_operands(profile, operands)
        if not check.is_success:
            result.add(check)
            return result

        for phase, descriptors in self.plan(operands):
            for descriptor in descriptors:
                ctx = ActionContext(
                    descriptor=descriptor,
                    profile=profile,
                    phase=phase.kind.value,
                    context=context,
                )
                status = registry.validate(ctx)
                if not status.is_ok:
                    result.add(status)

        if not result.children:
            result.add(Status.ok(f"{len(operands)} operands valid", source=self.phase_set_id))
        return result

    # ── Execution ────────────────────────────────────────────────

    def perform(
        self,
        session: EngineSession,
        registry: ActionRegistry,
        profile: Profile,
        operands: Sequence[AnyOperand],
        context: ProvisioningContext | None = None,
        cancellation: Cancellation | None = None,
    ) -> MultiStatus:
        """Run every phase over ``operands``, recording applied actions."""
        context = context or ProvisioningContext()
        result = MultiStatus(source=self.phase_set_id, message="Phases")

        check = self.check_operands(profile, operands)
        if not check.is_success:
            result.add(check)
            return result

        for phase, descriptors in self.plan(operands):
            phase_status = MultiStatus(source=phase.kind.value, message=f"Phase {phase.kind}")
            for descriptor in descriptors:
                if cancellation is not None and cancellation.is_cancelled:
                    phase_status.add(Status.cancel(
                        f"Cancelled before {descriptor.id}",
                        source=descriptor.id,
                    ))
                    break

                ctx = ActionContext(
                    descriptor=descriptor,
                    profile=profile,
                    phase=phase.kind.value,
                    scratch_dir=session.scratch_dir,
                    context=context,
                    cancellation=cancellation,
                )
                action, status = registry.execute(ctx)
                phase_status.add(status)
                if action is not None and status.severity < Severity.ERROR:
                    session.record(action, ctx)

            if phase_status.children:
                result.add(phase_status)
            if not phase_status.is_success:
                logger.info(
                    "Phase %s ended with %s, skipping later phases",
                    phase.kind,
                    phase_status.severity.name,
                )
                break

        if not result.children:
            result.add(Status.ok("Nothing to do", source=self.phase_set_id))
        return result


def default_phase_set() -> PhaseSet:
    """The standard six-phase pipeline."""
    return PhaseSet("default", [Phase(kind) for kind in PhaseKind])
