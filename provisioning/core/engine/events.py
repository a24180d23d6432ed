"""
Transaction events and notification sinks.

The engine tells one sink about every transaction: ``begin`` once the
profile is locked, then either ``commit`` or ``rollback``. Sinks are
observers only. Whatever a sink does, including raising, never changes
the outcome of the transaction.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from provisioning.core.models.operand import Operand, PropertyOperand
from provisioning.core.models.status import Status
from provisioning.core.persistence.audit import LedgerEntry, TransactionLedger
from provisioning.core.services.event_bus import EventBus

logger = logging.getLogger(__name__)


class EventKind(StrEnum):
    BEGIN = "begin"
    COMMIT = "commit"
    ROLLBACK = "rollback"


@dataclass(frozen=True)
class TransactionEvent:
    """One lifecycle step of an engine transaction."""

    kind: EventKind
    transaction_id: str
    profile_id: str
    phase_set: str
    operands: tuple[Operand | PropertyOperand, ...] = ()
    result: Status | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "kind": self.kind.value,
            "transaction_id": self.transaction_id,
            "profile_id": self.profile_id,
            "phase_set": self.phase_set,
            "operands": [str(op) for op in self.operands],
            "timestamp": self.timestamp,
        }
        if self.result is not None:
            data["severity"] = self.result.severity.name
            data["message"] = self.result.message
        return data


@runtime_checkable
class NotificationSink(Protocol):
    def notify(self, event: TransactionEvent) -> None: ...


def deliver(sink: NotificationSink | None, event: TransactionEvent) -> None:
    """Hand an event to a sink; failures are logged and dropped."""
    if sink is None:
        return
    try:
        sink.notify(event)
    except Exception as e:
        logger.warning(
            "Notification sink %s failed on %s/%s: %s",
            type(sink).__name__,
            event.kind,
            event.transaction_id,
            e,
        )


# ── Sinks ───────────────────────────────────────────────────────


class EventBusSink:
    """Publishes ``engine:<kind>`` events on an EventBus."""

    def __init__(self, bus: EventBus):
        self._bus = bus

    def notify(self, event: TransactionEvent) -> None:
        self._bus.publish(
            f"engine:{event.kind.value}",
            key=event.transaction_id,
            data=event.to_dict(),
        )


class LedgerSink:
    """Writes committed and rolled-back transactions to the ledger."""

    def __init__(self, ledger: TransactionLedger):
        self._ledger = ledger

    def notify(self, event: TransactionEvent) -> None:
        if event.kind == EventKind.BEGIN:
            return
        result = event.result
        errors: list[str] = []
        if result is not None:
            leaves = result.errors() if result.is_multi() else [result]
            errors = [str(s) for s in leaves if not s.is_success]
        self._ledger.write(LedgerEntry(
            transaction_id=event.transaction_id,
            profile_id=event.profile_id,
            phase_set=event.phase_set,
            outcome="committed" if event.kind == EventKind.COMMIT else "rolled_back",
            severity=result.severity.name if result is not None else "",
            operands=[str(op) for op in event.operands],
            errors=errors,
        ))


class FanoutSink:
    """Forwards every event to several sinks, isolating their failures."""

    def __init__(self, sinks: Iterable[NotificationSink] = ()):
        self._sinks = list(sinks)

    def add(self, sink: NotificationSink) -> None:
        self._sinks.append(sink)

    def notify(self, event: TransactionEvent) -> None:
        for sink in self._sinks:
            deliver(sink, event)


class RecordingSink:
    """Keeps every event in memory. Thread-safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[TransactionEvent] = []

    @property
    def events(self) -> list[TransactionEvent]:
        with self._lock:
            return list(self._events)

    def kinds(self) -> list[str]:
        return [e.kind.value for e in self.events]

    def notify(self, event: TransactionEvent) -> None:
        with self._lock:
            self._events.append(event)


def sink_for(sinks: Sequence[NotificationSink]) -> NotificationSink | None:
    """A single sink for zero, one or many sinks."""
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(sinks)
