"""
Action registry — central dispatch for all action kinds.

The registry maps action kinds to implementations. Phases produce
ActionDescriptors; the registry resolves, validates and runs them.
Nothing here raises: every failure comes back as an ERROR status.
"""

from __future__ import annotations

import logging

from provisioning.actions.base import ActionContext, ProvisioningAction, call_guarded
from provisioning.core.models.status import Status

logger = logging.getLogger(__name__)


class ActionRegistry:
    """Explicit registry of action implementations keyed by kind."""

    def __init__(self) -> None:
        self._actions: dict[str, ProvisioningAction] = {}

    @classmethod
    def with_defaults(cls) -> ActionRegistry:
        """Registry holding every built-in action."""
        from provisioning.actions.collect import CollectAction
        from provisioning.actions.native import (
            CopyArtifactAction,
            MkdirAction,
            RemovePathAction,
            WriteFileAction,
        )
        from provisioning.actions.profile import (
            AddUnitAction,
            RemoveUnitAction,
            SetProfilePropertyAction,
            SetUnitPropertyAction,
        )

        registry = cls()
        for action in (
            AddUnitAction(),
            RemoveUnitAction(),
            SetUnitPropertyAction(),
            SetProfilePropertyAction(),
            CollectAction(),
            MkdirAction(),
            WriteFileAction(),
            RemovePathAction(),
            CopyArtifactAction(),
        ):
            registry.register(action)
        return registry

    # ── Registration ─────────────────────────────────────────────

    def register(self, action: ProvisioningAction) -> None:
        kind = action.kind
        if kind in self._actions:
            logger.warning("Overwriting existing action: %s", kind)
        self._actions[kind] = action
        logger.debug("Registered action: %s", kind)

    def unregister(self, kind: str) -> None:
        self._actions.pop(kind, None)

    def get(self, kind: str) -> ProvisioningAction | None:
        return self._actions.get(kind)

    def kinds(self) -> list[str]:
        return sorted(self._actions)

    def __contains__(self, kind: str) -> bool:
        return kind in self._actions

    # ── Dispatch ─────────────────────────────────────────────────

    def validate(self, ctx: ActionContext) -> Status:
        """Check that the descriptor's kind is known and the action accepts it."""
        descriptor = ctx.descriptor
        action = self._actions.get(descriptor.kind)
        if action is None:
            return Status.error(
                f"No action registered for '{descriptor.kind}'",
                source=descriptor.id,
            )
        try:
            is_valid, error_msg = action.validate(ctx)
        except Exception as e:
            return Status.error(f"Validation error: {e}", exc=e, source=descriptor.id)
        if not is_valid:
            return Status.error(f"Validation failed: {error_msg}", source=descriptor.id)
        return Status.ok(source=descriptor.id)

    def execute(self, ctx: ActionContext) -> tuple[ProvisioningAction | None, Status]:
        """Validate and run one action.

        Returns:
            The resolved action (None when the kind is unknown) and its status.
        """
        descriptor = ctx.descriptor
        check = self.validate(ctx)
        if not check.is_success:
            return self._actions.get(descriptor.kind), check

        action = self._actions[descriptor.kind]
        status = call_guarded(action, "execute", ctx)
        logger.debug("%s %s → %s", descriptor.id, descriptor.kind, status.severity.name)
        return action, status

    def undo(self, ctx: ActionContext) -> Status:
        action = self._actions.get(ctx.descriptor.kind)
        if action is None:
            return Status.error(
                f"No action registered for '{ctx.descriptor.kind}'",
                source=ctx.descriptor.id,
            )
        return call_guarded(action, "undo", ctx)

    def prepare(self, ctx: ActionContext) -> Status:
        action = self._actions.get(ctx.descriptor.kind)
        if action is None:
            return Status.ok(source=ctx.descriptor.id)
        return call_guarded(action, "prepare", ctx)
