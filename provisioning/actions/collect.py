"""
Collect action — stage a unit's artifacts before anything is changed.

The collect phase runs first, so a missing artifact fails the
transaction before any profile or filesystem change happens. Staged
copies live in the session's scratch directory and disappear with it.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from provisioning.actions.base import ActionContext, ProvisioningAction
from provisioning.core.models.status import Status

logger = logging.getLogger(__name__)

STAGING_DIR = "artifacts"


def staged_path(scratch_dir: Path, artifact: str) -> Path:
    """Where the collect phase puts ``artifact`` inside a scratch directory.

    The artifact key keeps its relative path under ``artifacts/``.

    Raises:
        ValueError: The key escapes the staging directory.
    """
    base = (scratch_dir / STAGING_DIR).resolve()
    target = (base / artifact).resolve()
    if target == base or not target.is_relative_to(base):
        raise ValueError(f"Artifact {artifact!r} escapes the staging directory")
    return target


def artifact_source(ctx: ActionContext, artifact: str) -> Path | None:
    """The staged copy of an artifact, else the file the context points to."""
    if ctx.scratch_dir is not None:
        try:
            staged = staged_path(ctx.scratch_dir, artifact)
        except ValueError:
            return None
        if staged.is_file():
            return staged
    source = ctx.context.artifacts.get(artifact)
    if source is not None and Path(source).is_file():
        return Path(source)
    return None


class CollectAction(ProvisioningAction):
    """Copy one artifact from ``context.artifacts`` into the scratch area.

    Params:
        artifact: Artifact key as listed in the unit's ``artifacts``.
    """

    @property
    def kind(self) -> str:
        return "collect"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        if not ctx.params.get("artifact"):
            return False, "Missing 'artifact' parameter"
        return True, ""

    def execute(self, ctx: ActionContext) -> Status:
        artifact = ctx.params["artifact"]
        source = ctx.context.artifacts.get(artifact)
        if source is None or not Path(source).is_file():
            return Status.error(f"Artifact {artifact!r} is not available")

        if ctx.scratch_dir is None:
            return Status.error("No scratch directory to stage artifacts in")
        try:
            target = staged_path(ctx.scratch_dir, artifact)
        except ValueError as e:
            return Status.error(str(e))
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.copy2(source, target)
        except OSError as e:
            target.unlink(missing_ok=True)
            return Status.error(f"Cannot stage artifact {artifact!r}: {e}", exc=e)

        ctx.undo_data["staged"] = target
        logger.debug("Staged %s → %s", source, target)
        return Status.ok(f"Collected {artifact}")

    def undo(self, ctx: ActionContext) -> Status:
        staged: Path | None = ctx.undo_data.get("staged")
        if staged is not None:
            staged.unlink(missing_ok=True)
        return Status.ok()
