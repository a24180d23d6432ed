"""
Action base — the contract between the phase pipeline and side effects.

Every effect of a transaction, from adding a unit to the profile to
writing a file, is an action. The engine only talks to actions through
the ActionRegistry, never directly.

Actions report outcomes as Status values. An action that fails must
leave no effect behind: the session only records (and later undoes)
actions that succeeded.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from provisioning.core.engine.cancellation import Cancellation
from provisioning.core.models.action import ActionDescriptor
from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.operand import Operand, PropertyOperand
from provisioning.core.models.profile import PROP_INSTALL_FOLDER, Profile
from provisioning.core.models.status import Status

logger = logging.getLogger(__name__)


class ActionContext(BaseModel):
    """Everything an action needs to execute and later undo itself.

    ``profile`` is the transaction's working copy (the same object for
    every action of a transaction). ``undo_data`` belongs to this one
    execution: ``execute`` stores what ``undo`` needs to restore.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    descriptor: ActionDescriptor
    profile: Profile
    phase: str = ""
    scratch_dir: Path | None = None
    context: ProvisioningContext = Field(default_factory=ProvisioningContext)
    cancellation: Cancellation | None = None
    undo_data: dict[str, Any] = Field(default_factory=dict)

    @property
    def operand(self) -> Operand | PropertyOperand | None:
        return self.descriptor.operand

    @property
    def params(self) -> dict[str, Any]:
        return self.descriptor.params

    def install_folder(self) -> Path | None:
        """Root for relative paths: context override, then profile property."""
        if self.context.install_folder is not None:
            return self.context.install_folder
        folder = self.profile.get_property(PROP_INSTALL_FOLDER)
        return Path(folder) if folder else None

    def resolve_path(self, relative: str) -> Path:
        """Resolve a path parameter inside the install folder.

        Raises:
            ValueError: No install folder is configured, or the path
                escapes it.
        """
        root = self.install_folder()
        if root is None:
            raise ValueError(
                f"Profile {self.profile.profile_id} has no {PROP_INSTALL_FOLDER} property"
            )
        target = (root / relative).resolve()
        if not target.is_relative_to(root.resolve()):
            raise ValueError(f"Path {relative!r} escapes the install folder {root}")
        return target


class ProvisioningAction(ABC):
    """Abstract base class for all actions.

    To create a new action:
        1. Subclass ProvisioningAction
        2. Implement kind, execute and undo (validate/prepare optional)
        3. Register it in the ActionRegistry
    """

    @property
    @abstractmethod
    def kind(self) -> str:
        """The registry key (e.g., 'profile.add_unit', 'native.mkdir')."""

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        """Check that the action can run, without side effects.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """
        return True, ""

    @abstractmethod
    def execute(self, ctx: ActionContext) -> Status:
        """Perform the effect. Store what undo needs in ``ctx.undo_data``."""

    @abstractmethod
    def undo(self, ctx: ActionContext) -> Status:
        """Reverse a successful ``execute`` with the same context."""

    def prepare(self, ctx: ActionContext) -> Status:
        """Last check before commit. Default: nothing to check."""
        return Status.ok()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind!r}>"


def call_guarded(
    action: ProvisioningAction,
    method: str,
    ctx: ActionContext,
) -> Status:
    """Call ``execute``, ``undo`` or ``prepare`` and turn exceptions into ERROR.

    Actions should not raise, but a buggy one must not take the engine
    down with it.
    """
    source = ctx.descriptor.id
    try:
        status = getattr(action, method)(ctx)
    except Exception as e:
        logger.error("Action %s raised during %s: %s", action.kind, method, e)
        return Status.error(f"{action.kind} {method} failed: {e}", exc=e, source=source)
    if status is None:
        return Status.error(f"{action.kind} {method} returned no status", source=source)
    if not status.source:
        status.source = source
    return status
