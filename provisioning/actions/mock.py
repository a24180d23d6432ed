"""
Mock action — universal test double for the phase pipeline.

Succeeds by default and logs every call. Can be configured to fail for
specific units or descriptors, to fail its undo or prepare, to sleep
(for concurrency tests), or to run a hook on each execute (for
cancellation tests).
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

from provisioning.actions.base import ActionContext, ProvisioningAction
from provisioning.core.models.operand import Operand
from provisioning.core.models.status import Severity, Status


class MockAction(ProvisioningAction):
    """Configurable action for tests.

    Args:
        kind: Registry key this mock answers to.
        delay: Seconds to sleep inside every execute.
    """

    def __init__(self, kind: str = "mock", delay: float = 0.0):
        self._kind = kind
        self._delay = delay
        self._lock = threading.Lock()
        self._call_log: list[ActionContext] = []
        self._undo_log: list[ActionContext] = []
        self._failing_units: dict[str, Severity] = {}
        self._failing_ids: dict[str, Severity] = {}
        self._failing_undo: set[str] = set()
        self._prepare_failure: str | None = None
        self._invalid: str | None = None
        self._raise_on_execute: Exception | None = None
        self._hook: Callable[[ActionContext], None] | None = None

    @property
    def kind(self) -> str:
        return self._kind

    # ── Inspection ───────────────────────────────────────────────

    @property
    def call_log(self) -> list[ActionContext]:
        """Every context execute received, in order."""
        return self._call_log

    @property
    def undo_log(self) -> list[ActionContext]:
        """Every context undo received, in order."""
        return self._undo_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def executed_ids(self) -> list[str]:
        return [ctx.descriptor.id for ctx in self._call_log]

    def undone_ids(self) -> list[str]:
        return [ctx.descriptor.id for ctx in self._undo_log]

    # ── Configuration ────────────────────────────────────────────

    def fail_for_unit(self, unit_id: str, severity: Severity = Severity.ERROR) -> None:
        """Return ``severity`` whenever the operand concerns ``unit_id``."""
        self._failing_units[unit_id] = severity

    def set_failure(self, descriptor_id: str, severity: Severity = Severity.ERROR) -> None:
        """Return ``severity`` for one descriptor id."""
        self._failing_ids[descriptor_id] = severity

    def fail_undo(self, descriptor_id: str) -> None:
        self._failing_undo.add(descriptor_id)

    def fail_prepare(self, message: str = "Mock prepare failure") -> None:
        self._prepare_failure = message

    def set_invalid(self, message: str = "Mock validation failure") -> None:
        self._invalid = message

    def raise_on_execute(self, exc: Exception) -> None:
        self._raise_on_execute = exc

    def on_execute(self, hook: Callable[[ActionContext], None] | None) -> None:
        self._hook = hook

    def reset(self) -> None:
        """Clear logs and configured failures."""
        with self._lock:
            self._call_log.clear()
            self._undo_log.clear()
        self._failing_units.clear()
        self._failing_ids.clear()
        self._failing_undo.clear()
        self._prepare_failure = None
        self._invalid = None
        self._raise_on_execute = None
        self._hook = None

    # ── Action contract ──────────────────────────────────────────

    def validate(self, ctx: ActionContext) -> tuple[bool, str]:
        if self._invalid is not None:
            return False, self._invalid
        return True, ""

    def execute(self, ctx: ActionContext) -> Status:
        with self._lock:
            self._call_log.append(ctx)
        if self._hook is not None:
            self._hook(ctx)
        if self._delay:
            time.sleep(self._delay)
        if self._raise_on_execute is not None:
            raise self._raise_on_execute

        severity = self._failing_ids.get(ctx.descriptor.id)
        operand = ctx.operand
        if severity is None and isinstance(operand, Operand):
            severity = self._failing_units.get(operand.unit_id)
        if severity is not None:
            return Status(severity=severity, message=f"[mock] {ctx.descriptor.id} failed")
        return Status.ok(f"[mock] {ctx.descriptor.id} executed")

    def undo(self, ctx: ActionContext) -> Status:
        with self._lock:
            self._undo_log.append(ctx)
        if ctx.descriptor.id in self._failing_undo:
            return Status.error(f"[mock] undo of {ctx.descriptor.id} failed")
        return Status.ok(f"[mock] {ctx.descriptor.id} undone")

    def prepare(self, ctx: ActionContext) -> Status:
        if self._prepare_failure is not None:
            return Status.error(self._prepare_failure)
        return Status.ok()
