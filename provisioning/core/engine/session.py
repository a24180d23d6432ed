"""
EngineSession — the undo log of one transaction.

Every action that succeeds during phase execution is recorded with the
context it ran in. Commit forgets the log; rollback walks it backwards
and undoes each entry. A session is used for exactly one transaction.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from datetime import UTC, datetime
from pathlib import Path

from provisioning.actions.base import ActionContext, ProvisioningAction, call_guarded
from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.profile import Profile
from provisioning.core.models.status import MultiStatus, Severity, Status

logger = logging.getLogger(__name__)


def generate_transaction_id() -> str:
    """Generate a unique transaction ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"tx-{now}-{short}"


class EngineSession:
    """Records applied actions so a failed transaction can be undone.

    Args:
        profile: The transaction's working profile.
        scratch_root: Directory under which the session keeps scratch
            data (staged artifacts, removed files). None disables it.
        context: The provisioning context of the transaction.
    """

    def __init__(
        self,
        profile: Profile,
        scratch_root: Path | None = None,
        context: ProvisioningContext | None = None,
        transaction_id: str | None = None,
    ):
        if profile is None:
            raise ValueError("A session needs a profile")
        self._profile = profile
        self._context = context or ProvisioningContext()
        self._transaction_id = transaction_id or generate_transaction_id()
        self._scratch_dir = scratch_root / self._transaction_id if scratch_root else None
        self._log: list[tuple[ProvisioningAction, ActionContext]] = []
        self._state = "active"

    # ── Accessors ────────────────────────────────────────────────

    @property
    def transaction_id(self) -> str:
        return self._transaction_id

    @property
    def profile(self) -> Profile:
        return self._profile

    @property
    def context(self) -> ProvisioningContext:
        return self._context

    @property
    def scratch_dir(self) -> Path | None:
        return self._scratch_dir

    @property
    def state(self) -> str:
        """``active``, ``committed`` or ``rolled_back``."""
        return self._state

    @property
    def entries(self) -> list[tuple[ProvisioningAction, ActionContext]]:
        """Recorded actions, oldest first (a copy)."""
        return list(self._log)

    # ── Lifecycle ────────────────────────────────────────────────

    def record(self, action: ProvisioningAction, ctx: ActionContext) -> None:
        self._check_active("record")
        self._log.append((action, ctx))

    def prepare(self) -> MultiStatus:
        """Run every recorded action's prepare hook and check the profile.

        Returns a multi status holding only the problems found (OK and
        empty when there are none).
        """
        self._check_active("prepare")
        result = MultiStatus(source="prepare", message="Prepare")
        for action, ctx in self._log:
            status = call_guarded(action, "prepare", ctx)
            if not status.is_ok:
                result.add(status)

        violations = self._profile.singleton_violations()
        if violations:
            result.add(Status.error(
                f"Singleton units installed in several versions: {', '.join(violations)}",
                source="prepare",
            ))
        return result

    def commit(self) -> Status:
        self._check_active("commit")
        count = len(self._log)
        self._log.clear()
        self._state = "committed"
        self._cleanup()
        logger.debug("Session %s committed (%d actions)", self._transaction_id, count)
        return Status.ok(f"Committed {count} actions", source="session")

    def rollback(self, severity: Severity = Severity.ERROR) -> MultiStatus:
        """Undo recorded actions, newest first.

        Best effort: an undo failure is logged and collected, and the
        remaining entries are still undone.
        """
        self._check_active("rollback")
        count = len(self._log)
        logger.info(
            "Rolling back %s after %s (%d actions)",
            self._transaction_id,
            severity.name,
            count,
        )
        result = MultiStatus(source="rollback", message=f"Rolled back {count} actions")
        for action, ctx in reversed(self._log):
            status = call_guarded(action, "undo", ctx)
            if not status.is_success:
                logger.error("Undo of %s failed: %s", ctx.descriptor.id, status.message)
                result.add(status)
        self._log.clear()
        self._state = "rolled_back"
        self._cleanup()
        return result

    # ── Internal ─────────────────────────────────────────────────

    def _check_active(self, operation: str) -> None:
        if self._state != "active":
            raise RuntimeError(
                f"Cannot {operation}: session {self._transaction_id} is {self._state}"
            )

    def _cleanup(self) -> None:
        if self._scratch_dir is not None:
            shutil.rmtree(self._scratch_dir, ignore_errors=True)

    def __repr__(self) -> str:
        return (
            f"<EngineSession {self._transaction_id} profile={self._profile.profile_id!r} "
            f"state={self._state} entries={len(self._log)}>"
        )
