"""
Profile actions — changes to the transaction's working profile.

These are the only actions the default phases always schedule: the
install phase adds units, the uninstall phase removes them, the property
phase applies inclusion rules and profile properties. Each one records
the previous state so undo restores it exactly.
"""

from __future__ import annotations

from provisioning.actions.base import ActionContext, ProvisioningAction
from provisioning.core.models.operand import Operand, PropertyOperand
from provisioning.core.models.profile import InclusionRule, ProfileEntry
from provisioning.core.models.status import Status
from provisioning.core.models.unit import InstallableUnit


def _unit_operand(ctx: ActionContext) -> tuple[Operand | None, str]:
    operand = ctx.operand
    if not isinstance(operand, Operand):
        return None, f"{ctx.descriptor.kind} needs a unit operand"
    return operand, ""


class AddUnitAction(ProvisioningAction):
    """Add the operand's after unit to the profile."""

    @property
    def kind(self) -> str:
        return "profile.add_unit"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        operand, error = _unit_operand(ctx)
        if operand is None:
            return False, error
        if operand.after is None:
            return False, "No unit to add"
        return True, ""

    def execute(self, ctx: ActionContext) -> Status:
        unit = ctx.operand.after
        inclusion = InclusionRule(ctx.params.get("inclusion", InclusionRule.NONE))
        if ctx.profile.contains(unit):
            return Status.error(f"{unit} is already installed")
        ctx.profile.add_unit(unit, inclusion, ctx.params.get("properties"))
        ctx.undo_data["unit"] = unit
        return Status.ok(f"Added {unit} ({inclusion})")

    def undo(self, ctx: ActionContext) -> Status:
        unit: InstallableUnit | None = ctx.undo_data.get("unit")
        if unit is None or not ctx.profile.contains(unit):
            return Status.ok("Nothing to undo")
        ctx.profile.remove_unit(unit)
        return Status.ok(f"Removed {unit}")


class RemoveUnitAction(ProvisioningAction):
    """Remove the operand's before unit from the profile."""

    @property
    def kind(self) -> str:
        return "profile.remove_unit"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        operand, error = _unit_operand(ctx)
        if operand is None:
            return False, error
        if operand.before is None:
            return False, "No unit to remove"
        return True, ""

    def execute(self, ctx: ActionContext) -> Status:
        unit = ctx.operand.before
        if not ctx.profile.contains(unit):
            return Status.error(f"{unit} is not installed")
        ctx.undo_data["entry"] = ctx.profile.remove_unit(unit)
        return Status.ok(f"Removed {unit}")

    def undo(self, ctx: ActionContext) -> Status:
        entry: ProfileEntry | None = ctx.undo_data.get("entry")
        if entry is None:
            return Status.ok("Nothing to undo")
        ctx.profile.restore_entry(entry)
        return Status.ok(f"Restored {entry.unit}")


class SetUnitPropertyAction(ProvisioningAction):
    """Change an installed unit's inclusion rule and unit-scoped properties.

    Params:
        inclusion: New inclusion rule (optional).
        properties: Mapping of key to value; ``None`` removes the key.
    """

    @property
    def kind(self) -> str:
        return "profile.set_unit_property"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        operand, error = _unit_operand(ctx)
        if operand is None:
            return False, error
        inclusion = ctx.params.get("inclusion")
        if inclusion is not None and inclusion not in set(InclusionRule):
            return False, f"Unknown inclusion rule {inclusion!r}"
        return True, ""

    def execute(self, ctx: ActionContext) -> Status:
        unit = ctx.operand.after or ctx.operand.before
        entry = ctx.profile.entry(unit)
        if entry is None:
            return Status.error(f"{unit} is not installed")

        ctx.undo_data["unit"] = unit
        ctx.undo_data["inclusion"] = entry.inclusion
        ctx.undo_data["properties"] = dict(entry.properties)

        inclusion = ctx.params.get("inclusion")
        if inclusion is not None:
            ctx.profile.set_inclusion(unit, InclusionRule(inclusion))
        for key, value in (ctx.params.get("properties") or {}).items():
            ctx.profile.set_unit_property(unit, key, value)
        return Status.ok(f"Updated properties of {unit}")

    def undo(self, ctx: ActionContext) -> Status:
        unit = ctx.undo_data.get("unit")
        if unit is None:
            return Status.ok("Nothing to undo")
        entry = ctx.profile.entry(unit)
        if entry is None:
            return Status.warning(f"{unit} is no longer installed, properties not restored")
        ctx.profile.set_inclusion(unit, ctx.undo_data["inclusion"])
        entry.properties = dict(ctx.undo_data["properties"])
        return Status.ok(f"Restored properties of {unit}")


class SetProfilePropertyAction(ProvisioningAction):
    """Set or remove one profile property from a PropertyOperand."""

    @property
    def kind(self) -> str:
        return "profile.set_property"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        if not isinstance(ctx.operand, PropertyOperand):
            return False, "profile.set_property needs a property operand"
        return True, ""

    def execute(self, ctx: ActionContext) -> Status:
        operand: PropertyOperand = ctx.operand
        ctx.undo_data["previous"] = ctx.profile.get_property(operand.key)
        if operand.after is None:
            ctx.profile.remove_property(operand.key)
            return Status.ok(f"Removed property {operand.key}")
        ctx.profile.set_property(operand.key, operand.after)
        return Status.ok(f"Set property {operand.key}")

    def undo(self, ctx: ActionContext) -> Status:
        if "previous" not in ctx.undo_data:
            return Status.ok("Nothing to undo")
        operand: PropertyOperand = ctx.operand
        previous = ctx.undo_data["previous"]
        if previous is None:
            ctx.profile.remove_property(operand.key)
        else:
            ctx.profile.set_property(operand.key, previous)
        return Status.ok(f"Restored property {operand.key}")
