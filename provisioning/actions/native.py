"""
Native actions — filesystem changes inside the profile's install folder.

Paths are relative to the ``install.folder`` profile property (or the
provisioning context's ``install_folder`` override) and may not escape
it. Every action remembers what it replaced so undo puts the tree back:

    native.mkdir          remove the directories it created
    native.write_file     restore the previous content, or delete
    native.remove         move the removed path back from the scratch area
    native.copy_artifact  restore the previous content, or delete

Writes go through a temp file and a rename, so a failed write leaves
the old file untouched.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import uuid
from pathlib import Path

from provisioning.actions.base import ActionContext, ProvisioningAction
from provisioning.actions.collect import artifact_source
from provisioning.core.models.status import Status

logger = logging.getLogger(__name__)


def _atomic_write(path: Path, data: bytes) -> None:
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".prov_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise


def _make_parents(path: Path) -> list[Path]:
    """Create missing parents of ``path``; return them outermost first."""
    missing = []
    parent = path.parent
    while not parent.exists():
        missing.append(parent)
        parent = parent.parent
    missing.reverse()
    for directory in missing:
        directory.mkdir()
    return missing


def _remove_created(directories: list[Path]) -> list[str]:
    """Remove directories created by an action, innermost first."""
    leftovers = []
    for directory in reversed(directories):
        try:
            directory.rmdir()
        except FileNotFoundError:
            continue
        except OSError:
            leftovers.append(str(directory))
    return leftovers


def _require(ctx: ActionContext, *names: str) -> tuple[bool, str]:
    for name in names:
        if not ctx.params.get(name):
            return False, f"Missing '{name}' parameter"
    if ctx.install_folder() is None:
        return False, f"Profile {ctx.profile.profile_id} has no install folder"
    return True, ""


class _FileReplacingAction(ProvisioningAction):
    """Shared undo for actions that create or overwrite one file."""

    def _replace(self, ctx: ActionContext, target: Path, data: bytes) -> None:
        previous = target.read_bytes() if target.is_file() else None
        created = _make_parents(target)
        try:
            _atomic_write(target, data)
        except Exception:
            _remove_created(created)
            raise
        ctx.undo_data.update(target=target, previous=previous, created=created)

    def undo(self, ctx: ActionContext) -> Status:
        target: Path | None = ctx.undo_data.get("target")
        if target is None:
            return Status.ok("Nothing to undo")
        previous: bytes | None = ctx.undo_data.get("previous")
        if previous is None:
            target.unlink(missing_ok=True)
        else:
            _atomic_write(target, previous)
        leftovers = _remove_created(ctx.undo_data.get("created", []))
        if leftovers:
            return Status.warning(f"Directories not empty, kept: {', '.join(leftovers)}")
        return Status.ok(f"Restored {target}")


class MkdirAction(ProvisioningAction):
    """Create a directory (and missing parents).

    Params:
        path: Directory relative to the install folder.
    """

    @property
    def kind(self) -> str:
        return "native.mkdir"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        return _require(ctx, "path")

    def execute(self, ctx: ActionContext) -> Status:
        target = ctx.resolve_path(ctx.params["path"])
        if target.is_dir():
            ctx.undo_data["created"] = []
            return Status.ok(f"{target} already exists")
        if target.exists():
            return Status.error(f"{target} exists and is not a directory")
        created = _make_parents(target)
        target.mkdir()
        created.append(target)
        ctx.undo_data["created"] = created
        return Status.ok(f"Created {target}")

    def undo(self, ctx: ActionContext) -> Status:
        leftovers = _remove_created(ctx.undo_data.get("created", []))
        if leftovers:
            return Status.warning(f"Directories not empty, kept: {', '.join(leftovers)}")
        return Status.ok()


class WriteFileAction(_FileReplacingAction):
    """Write text to a file.

    Params:
        path: File relative to the install folder.
        content: Text to write (UTF-8).
    """

    @property
    def kind(self) -> str:
        return "native.write_file"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        ok, error = _require(ctx, "path")
        if ok and not isinstance(ctx.params.get("content", ""), str):
            return False, "'content' must be a string"
        return ok, error

    def execute(self, ctx: ActionContext) -> Status:
        target = ctx.resolve_path(ctx.params["path"])
        if target.is_dir():
            return Status.error(f"{target} is a directory")
        content = ctx.params.get("content", "")
        try:
            self._replace(ctx, target, content.encode("utf-8"))
        except OSError as e:
            return Status.error(f"Cannot write {target}: {e}", exc=e)
        return Status.ok(f"Wrote {target}")


class CopyArtifactAction(_FileReplacingAction):
    """Copy a collected artifact into the install folder.

    Params:
        artifact: Artifact key.
        target: Destination relative to the install folder.
    """

    @property
    def kind(self) -> str:
        return "native.copy_artifact"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        return _require(ctx, "artifact", "target")

    def execute(self, ctx: ActionContext) -> Status:
        artifact = ctx.params["artifact"]
        source = artifact_source(ctx, artifact)
        if source is None:
            return Status.error(f"Artifact {artifact!r} has not been collected")
        target = ctx.resolve_path(ctx.params["target"])
        if target.is_dir():
            return Status.error(f"{target} is a directory")
        try:
            self._replace(ctx, target, source.read_bytes())
        except OSError as e:
            return Status.error(f"Cannot copy {artifact!r} to {target}: {e}", exc=e)
        return Status.ok(f"Copied {artifact} to {target}")


class RemovePathAction(ProvisioningAction):
    """Remove a file or directory tree; undo moves it back.

    Params:
        path: File or directory relative to the install folder.
    """

    @property
    def kind(self) -> str:
        return "native.remove"

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        return _require(ctx, "path")

    def execute(self, ctx: ActionContext) -> Status:
        target = ctx.resolve_path(ctx.params["path"])
        if not target.exists():
            return Status.info(f"{target} does not exist, nothing to remove")
        if ctx.scratch_dir is None:
            return Status.error("No scratch directory to keep the removed path in")

        backup = ctx.scratch_dir / "removed" / uuid.uuid4().hex
        backup.parent.mkdir(parents=True, exist_ok=True)
        try:
            shutil.move(str(target), str(backup))
        except OSError as e:
            return Status.error(f"Cannot remove {target}: {e}", exc=e)

        ctx.undo_data.update(target=target, backup=backup)
        logger.debug("Moved %s to %s", target, backup)
        return Status.ok(f"Removed {target}")

    def undo(self, ctx: ActionContext) -> Status:
        backup: Path | None = ctx.undo_data.get("backup")
        target: Path | None = ctx.undo_data.get("target")
        if backup is None or target is None:
            return Status.ok("Nothing to undo")
        if target.exists():
            return Status.error(f"Cannot restore {target}: path exists again")
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(backup), str(target))
        return Status.ok(f"Restored {target}")
