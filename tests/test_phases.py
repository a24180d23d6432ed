"""
Tests for phases and phase sets — rules, ordering, validation, execution.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from builders import mocked, profile_with, unit
from provisioning.actions import ActionRegistry, MockAction
from provisioning.core.engine.cancellation import Cancellation
from provisioning.core.engine.phases import (
    Phase,
    PhaseKind,
    PhaseSet,
    default_phase_set,
)
from provisioning.core.engine.session import EngineSession
from provisioning.core.models import (
    INCLUSION_PROPERTY,
    Operand,
    Profile,
    PropertyOperand,
    Severity,
)


def _ids(phase_set: PhaseSet, operands) -> list[str]:
    return [d.id for _, descriptors in phase_set.plan(operands) for d in descriptors]


# ── Phase sets ───────────────────────────────────────────────────────


class TestPhaseSet:
    def test_default_order(self):
        kinds = [p.kind for p in default_phase_set().phases]
        assert kinds == [
            PhaseKind.COLLECT,
            PhaseKind.UNCONFIGURE,
            PhaseKind.UNINSTALL,
            PhaseKind.PROPERTY,
            PhaseKind.INSTALL,
            PhaseKind.CONFIGURE,
        ]

    def test_phases_sorted_by_order(self):
        phase_set = PhaseSet("x", [Phase(PhaseKind.CONFIGURE), Phase(PhaseKind.COLLECT)])
        assert [p.kind for p in phase_set.phases] == [PhaseKind.COLLECT, PhaseKind.CONFIGURE]

    def test_custom_order(self):
        phase_set = PhaseSet("x", [
            Phase(PhaseKind.INSTALL),
            Phase(PhaseKind.CONFIGURE, order=5),
        ])
        assert phase_set.phases[0].kind == PhaseKind.CONFIGURE

    def test_duplicate_phases_rejected(self):
        with pytest.raises(ValueError, match="repeats"):
            PhaseSet("x", [Phase(PhaseKind.INSTALL), Phase(PhaseKind.INSTALL)])

    def test_string_kind_accepted(self):
        assert Phase("install").kind == PhaseKind.INSTALL


# ── Rules ────────────────────────────────────────────────────────────


class TestDefaultRules:
    def test_install(self):
        a = unit(
            "a",
            artifacts=["a.jar"],
            touchpoint={
                "install": [("native.mkdir", {"path": "a"})],
                "configure": [("mock", {})],
            },
        )
        assert _ids(default_phase_set(), [Operand.install(a)]) == [
            "collect:a/1.0.0:collect#0",
            "install:a/1.0.0:profile.add_unit#0",
            "install:a/1.0.0:native.mkdir#1",
            "configure:a/1.0.0:mock#0",
        ]

    def test_uninstall(self):
        a = unit("a", touchpoint={
            "unconfigure": [("mock", {})],
            "uninstall": [("native.remove", {"path": "a"})],
        })
        assert _ids(default_phase_set(), [Operand.uninstall(a)]) == [
            "unconfigure:a/1.0.0:mock#0",
            "uninstall:a/1.0.0:native.remove#0",
            "uninstall:a/1.0.0:profile.remove_unit#1",
        ]

    def test_update_runs_both_sides(self):
        a1, a2 = mocked("a", "1.0"), mocked("a", "2.0", artifacts=["a2.jar"])
        plan = default_phase_set().plan([Operand.update(a1, a2)])
        by_kind = {phase.kind: [d.kind for d in ds] for phase, ds in plan}
        assert by_kind[PhaseKind.COLLECT] == ["collect"]
        assert by_kind[PhaseKind.UNCONFIGURE] == []
        assert by_kind[PhaseKind.UNINSTALL] == ["profile.remove_unit"]
        assert by_kind[PhaseKind.INSTALL] == ["profile.add_unit", "mock"]
        assert by_kind[PhaseKind.CONFIGURE] == ["mock"]

    def test_install_passes_inclusion_and_properties(self):
        op = Operand.install(unit("a"), **{INCLUSION_PROPERTY: "strict", "colour": "blue"})
        (add,) = [
            d for phase, ds in default_phase_set().plan([op])
            if phase.kind == PhaseKind.INSTALL
            for d in ds
        ]
        assert add.params == {"properties": {"colour": "blue"}, "inclusion": "strict"}

    def test_same_unit_operand_only_touches_properties(self):
        a = mocked("a")
        op = Operand(before=a, after=a, properties={INCLUSION_PROPERTY: "optional"})
        assert _ids(default_phase_set(), [op]) == ["property:a/1.0.0:profile.set_unit_property#0"]

    def test_property_operand(self):
        op = PropertyOperand(key="colour", after="blue")
        assert _ids(default_phase_set(), [op]) == ["property:property:colour:profile.set_property#0"]

    def test_phase_major_order(self):
        ops = [Operand.install(mocked("a")), Operand.install(mocked("b"))]
        assert _ids(default_phase_set(), ops) == [
            "install:a/1.0.0:profile.add_unit#0",
            "install:a/1.0.0:mock#1",
            "install:b/1.0.0:profile.add_unit#0",
            "install:b/1.0.0:mock#1",
            "configure:a/1.0.0:mock#0",
            "configure:b/1.0.0:mock#0",
        ]

    def test_custom_rule(self):
        phase_set = PhaseSet("x", [Phase(PhaseKind.INSTALL, rule=lambda op: [])])
        assert _ids(phase_set, [Operand.install(mocked("a"))]) == []


# ── Operand checks and validation ────────────────────────────────────


class TestValidate:
    def test_valid(self, registry: ActionRegistry):
        status = default_phase_set().validate(
            registry, Profile(profile_id="p"), [Operand.install(mocked("a"))],
        )
        assert status.is_success

    def test_unknown_action_kind(self, registry: ActionRegistry):
        a = unit("a", touchpoint={"install": [("no.such.action", {})]})
        status = default_phase_set().validate(registry, Profile(profile_id="p"), [Operand.install(a)])
        assert status.severity == Severity.ERROR
        assert "no.such.action" in status.children[0].message

    def test_invalid_action(self, registry: ActionRegistry, mock_action: MockAction):
        mock_action.set_invalid("nope")
        status = default_phase_set().validate(
            registry, Profile(profile_id="p"), [Operand.install(mocked("a"))],
        )
        assert not status.is_success
        assert mock_action.call_count == 0

    def test_installing_present_unit(self, registry: ActionRegistry):
        profile = profile_with(roots=[unit("a")])
        status = default_phase_set().validate(registry, profile, [Operand.install(unit("a"))])
        assert "already installed" in status.children[0].message

    def test_uninstalling_absent_unit(self, registry: ActionRegistry):
        status = default_phase_set().validate(
            registry, Profile(profile_id="p"), [Operand.uninstall(unit("a"))],
        )
        assert "not installed" in status.children[0].message

    def test_validation_has_no_side_effects(self, registry: ActionRegistry):
        profile = Profile(profile_id="p")
        default_phase_set().validate(registry, profile, [Operand.install(mocked("a"))])
        assert not profile.contains(unit("a"))
        assert not profile.changed


# ── Execution ────────────────────────────────────────────────────────


class TestPerform:
    def _session(self, profile: Profile, tmp_path: Path) -> EngineSession:
        return EngineSession(profile, scratch_root=tmp_path / "scratch")

    def test_applies_and_records(self, registry, tmp_path):
        profile = Profile(profile_id="p")
        session = self._session(profile, tmp_path)
        status = default_phase_set().perform(
            session, registry, profile, [Operand.install(mocked("a"))],
        )
        assert status.is_success
        assert profile.contains(unit("a"))
        assert [ctx.descriptor.id for _, ctx in session.entries] == [
            "install:a/1.0.0:profile.add_unit#0",
            "install:a/1.0.0:mock#1",
            "configure:a/1.0.0:mock#0",
        ]

    def test_error_finishes_phase_then_stops(self, registry, mock_action, tmp_path):
        mock_action.set_failure("install:a/1.0.0:mock#1")
        profile = Profile(profile_id="p")
        session = self._session(profile, tmp_path)
        status = default_phase_set().perform(
            session, registry, profile,
            [Operand.install(mocked("a")), Operand.install(mocked("b"))],
        )
        assert status.severity == Severity.ERROR
        assert mock_action.executed_ids() == [
            "install:a/1.0.0:mock#1",
            "install:b/1.0.0:mock#1",
        ]
        recorded = [ctx.descriptor.id for _, ctx in session.entries]
        assert "install:a/1.0.0:mock#1" not in recorded
        assert "install:b/1.0.0:mock#1" in recorded

    def test_cancellation_between_actions(self, registry, mock_action, tmp_path):
        cancellation = Cancellation()
        mock_action.on_execute(lambda ctx: cancellation.cancel())
        profile = Profile(profile_id="p")
        session = self._session(profile, tmp_path)
        status = default_phase_set().perform(
            session, registry, profile,
            [Operand.install(mocked("a")), Operand.install(mocked("b"))],
            cancellation=cancellation,
        )
        assert status.severity == Severity.CANCEL
        assert mock_action.executed_ids() == ["install:a/1.0.0:mock#1"]
        assert not profile.contains(unit("b"))

    def test_no_operands(self, registry, tmp_path):
        profile = Profile(profile_id="p")
        status = default_phase_set().perform(self._session(profile, tmp_path), registry, profile, [])
        assert status.is_ok
        assert status.children[0].message == "Nothing to do"

    def test_mismatched_operands_run_nothing(self, registry, mock_action, tmp_path):
        profile = Profile(profile_id="p")
        status = default_phase_set().perform(
            self._session(profile, tmp_path), registry, profile,
            [Operand.uninstall(mocked("a"))],
        )
        assert status.severity == Severity.ERROR
        assert mock_action.call_count == 0
