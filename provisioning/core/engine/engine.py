"""
Engine — runs a phase set over operands as one all-or-nothing transaction.

Flow:
    validate args → lock profile → checkout committed record → begin
        → execute phases → prepare
        → commit (persist, forget undo log)   on success
        → rollback (undo in reverse order)    on failure or cancellation
    → unlock

Transactions on the same profile are mutually exclusive through the
profile store's lock. The caller's profile object is never mutated: the
engine works on a fresh checkout of the committed record.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from provisioning.actions.registry import ActionRegistry
from provisioning.core.engine.cancellation import Cancellation
from provisioning.core.engine.events import (
    EventKind,
    NotificationSink,
    TransactionEvent,
    deliver,
)
from provisioning.core.engine.phases import PhaseSet
from provisioning.core.engine.session import EngineSession
from provisioning.core.models.context import ProvisioningContext
from provisioning.core.models.operand import Operand, PropertyOperand
from provisioning.core.models.profile import Profile
from provisioning.core.models.status import MultiStatus, Severity, Status
from provisioning.core.persistence.profile_store import ProfileStore

logger = logging.getLogger(__name__)

AnyOperand = Operand | PropertyOperand


class Engine:
    """Transactional coordinator of phase execution.

    Args:
        store: Where profiles are locked, checked out and persisted.
        registry: Action implementations. Defaults to the built-ins.
        sink: Receives begin/commit/rollback events.
    """

    def __init__(
        self,
        store: ProfileStore,
        registry: ActionRegistry | None = None,
        sink: NotificationSink | None = None,
    ):
        if store is None:
            raise ValueError("Engine needs a profile store")
        self._store = store
        self._registry = registry or ActionRegistry.with_defaults()
        self._sink = sink

    @property
    def store(self) -> ProfileStore:
        return self._store

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    # ── Validation ───────────────────────────────────────────────

    def validate(
        self,
        profile: Profile,
        phase_set: PhaseSet,
        operands: Sequence[AnyOperand],
        context: ProvisioningContext | None = None,
        cancellation: Cancellation | None = None,
    ) -> Status:
        """Check that ``perform`` could run, without locking or side effects."""
        self._check_args(profile, phase_set, operands)
        if cancellation is not None and cancellation.is_cancelled:
            return Status.cancel("Validation cancelled", source="engine")
        return phase_set.validate(self._registry, profile, list(operands), context)

    # ── Transaction ──────────────────────────────────────────────

    def perform(
        self,
        profile: Profile,
        phase_set: PhaseSet,
        operands: Sequence[AnyOperand],
        context: ProvisioningContext | None = None,
        cancellation: Cancellation | None = None,
    ) -> Status:
        """Apply ``operands`` to ``profile`` through ``phase_set``.

        Returns the transaction result: success severities mean the
        profile was committed, ERROR or CANCEL mean it was rolled back.

        Raises:
            ValueError: If profile, phase set or operands is None.
        """
        self._check_args(profile, phase_set, operands)
        context = context or ProvisioningContext()
        operands = list(operands)
        profile_id = profile.profile_id

        self._store.lock(profile_id)
        working: Profile | None = None
        try:
            working = self._store.checkout(profile_id)
            session = EngineSession(
                working,
                scratch_root=self._store.scratch_directory(profile_id),
                context=context,
            )
            tx = session.transaction_id
            logger.info(
                "Begin %s on %s: %d operands (%s)",
                tx, profile_id, len(operands), phase_set.phase_set_id,
            )
            self._notify(EventKind.BEGIN, session, phase_set, operands)

            result = MultiStatus(source="engine", message=f"Transaction {tx}")
            try:
                phases = phase_set.perform(
                    session, self._registry, working, operands, context, cancellation,
                )
                # Action statuses are the transaction's children.
                for phase_status in phases.children:
                    result.merge(phase_status)
                if result.is_success:
                    prepared = session.prepare()
                    if prepared.children:
                        result.merge(prepared)
            except Exception:
                logger.exception("Unexpected failure in %s, rolling back", tx)
                session.rollback(Severity.ERROR)
                self._notify(
                    EventKind.ROLLBACK, session, phase_set, operands,
                    Status.error(f"Transaction {tx} aborted by an unexpected error"),
                )
                raise

            if result.is_success:
                self._commit(session, working, phase_set, operands, result)
            else:
                self._rollback(session, phase_set, operands, result)

            return result.children[0] if len(result.children) == 1 else result
        finally:
            if working is not None:
                working.set_changed(False)
            self._store.unlock(profile_id)
            profile.set_changed(False)

    # ── Internal ─────────────────────────────────────────────────

    def _commit(
        self,
        session: EngineSession,
        working: Profile,
        phase_set: PhaseSet,
        operands: list[AnyOperand],
        result: MultiStatus,
    ) -> None:
        tx = session.transaction_id
        if working.changed:
            try:
                self._store.persist(working)
            except Exception as e:
                logger.error("Persisting %s after %s failed: %s", working.profile_id, tx, e)
        session.commit()
        logger.info("Commit %s on %s: %s", tx, working.profile_id, result.severity.name)
        self._notify(EventKind.COMMIT, session, phase_set, operands, result)

    def _rollback(
        self,
        session: EngineSession,
        phase_set: PhaseSet,
        operands: list[AnyOperand],
        result: MultiStatus,
    ) -> None:
        tx = session.transaction_id
        undo = session.rollback(result.severity)
        for failure in undo.children:
            logger.error("Rollback of %s incomplete: %s", tx, failure)
        logger.info(
            "Rollback %s on %s: %s",
            tx, session.profile.profile_id, result.severity.name,
        )
        self._notify(EventKind.ROLLBACK, session, phase_set, operands, result)

    def _notify(
        self,
        kind: EventKind,
        session: EngineSession,
        phase_set: PhaseSet,
        operands: list[AnyOperand],
        result: Status | None = None,
    ) -> None:
        deliver(self._sink, TransactionEvent(
            kind=kind,
            transaction_id=session.transaction_id,
            profile_id=session.profile.profile_id,
            phase_set=phase_set.phase_set_id,
            operands=tuple(operands),
            result=result,
        ))

    @staticmethod
    def _check_args(
        profile: Profile | None,
        phase_set: PhaseSet | None,
        operands: Sequence[AnyOperand] | None,
    ) -> None:
        if profile is None:
            raise ValueError("perform needs a profile")
        if phase_set is None:
            raise ValueError("perform needs a phase set")
        if operands is None:
            raise ValueError("perform needs operands")
