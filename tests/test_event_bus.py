"""
Tests for the event bus and the engine's notification sinks.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from builders import mocked
from provisioning.core.engine.engine import Engine
from provisioning.core.engine.events import (
    EventBusSink,
    EventKind,
    FanoutSink,
    LedgerSink,
    RecordingSink,
    TransactionEvent,
    deliver,
    sink_for,
)
from provisioning.core.engine.phases import default_phase_set
from provisioning.core.models import Operand, Profile, Status
from provisioning.core.persistence import TransactionLedger
from provisioning.core.services.event_bus import EventBus


def _event(kind: EventKind = EventKind.COMMIT, result: Status | None = None) -> TransactionEvent:
    return TransactionEvent(
        kind=kind,
        transaction_id="tx-1",
        profile_id="p",
        phase_set="default",
        operands=(Operand.install(mocked("a")),),
        result=result,
    )


class _Broken:
    def notify(self, event):
        raise RuntimeError("broken sink")


# ── EventBus ─────────────────────────────────────────────────────────


class TestEventBus:
    def test_publish_assigns_sequence(self):
        bus = EventBus()
        first = bus.publish("engine:begin", key="tx-1")
        second = bus.publish("engine:commit", key="tx-1", data={"n": 1})
        assert (first["seq"], second["seq"]) == (1, 2)
        assert second["v"] == 1
        assert second["data"] == {"n": 1}
        assert bus.seq == 2

    def test_replay_since_and_by_type(self):
        bus = EventBus()
        bus.publish("engine:begin")
        bus.publish("engine:commit")
        bus.publish("engine:begin")
        assert [e["seq"] for e in bus.events(since=1)] == [2, 3]
        assert [e["seq"] for e in bus.events(event_type="engine:begin")] == [1, 3]

    def test_buffer_is_bounded(self):
        bus = EventBus(buffer_size=3)
        for _ in range(5):
            bus.publish("x:y")
        assert [e["seq"] for e in bus.events()] == [3, 4, 5]

    def test_listeners(self):
        bus = EventBus()
        seen: list[str] = []
        listener = lambda e: seen.append(e["type"])  # noqa: E731
        bus.add_listener(listener)
        bus.publish("a:b")
        bus.remove_listener(listener)
        bus.publish("c:d")
        assert seen == ["a:b"]

    def test_failing_listener_does_not_reach_publisher(self):
        bus = EventBus()
        bus.add_listener(lambda e: 1 / 0)
        assert bus.publish("a:b")["seq"] == 1

    def test_subscribe_replays_then_stops_when_idle(self):
        bus = EventBus()
        bus.publish("a:b")
        bus.publish("c:d")
        received = list(bus.subscribe(since=1, idle_timeout=0.05))
        assert [e["type"] for e in received] == ["c:d"]
        assert bus.subscriber_count == 0


# ── Sinks ────────────────────────────────────────────────────────────


class TestSinks:
    def test_event_to_dict(self):
        data = _event(result=Status.error("boom")).to_dict()
        assert data["kind"] == "commit"
        assert data["operands"] == ["- --> a 1.0.0"]
        assert data["severity"] == "ERROR"
        assert data["message"] == "boom"

    def test_event_bus_sink(self):
        bus = EventBus()
        EventBusSink(bus).notify(_event(EventKind.BEGIN))
        (event,) = bus.events()
        assert event["type"] == "engine:begin"
        assert event["key"] == "tx-1"
        assert event["data"]["profile_id"] == "p"

    def test_ledger_sink_skips_begin(self, tmp_path: Path):
        ledger = TransactionLedger(data_root=tmp_path)
        sink = LedgerSink(ledger)
        sink.notify(_event(EventKind.BEGIN))
        sink.notify(_event(EventKind.ROLLBACK, Status.error("boom", source="install:a")))
        (entry,) = ledger.read_all()
        assert entry.outcome == "rolled_back"
        assert entry.severity == "ERROR"
        assert entry.operands == ["- --> a 1.0.0"]
        assert entry.errors == ["[install:a] ERROR: boom"]

    def test_deliver_swallows_sink_errors(self):
        deliver(_Broken(), _event())
        deliver(None, _event())

    def test_fanout_isolates_sinks(self):
        recording = RecordingSink()
        FanoutSink([_Broken(), recording]).notify(_event())
        assert recording.kinds() == ["commit"]

    def test_sink_for(self):
        one = RecordingSink()
        assert sink_for([]) is None
        assert sink_for([one]) is one
        assert isinstance(sink_for([one, RecordingSink()]), FanoutSink)


class TestEngineNotifications:
    @pytest.fixture
    def wired(self, store, registry, tmp_path: Path):
        bus = EventBus()
        ledger = TransactionLedger(data_root=tmp_path)
        engine = Engine(store, registry=registry, sink=FanoutSink([EventBusSink(bus), LedgerSink(ledger)]))
        profile = store.add(Profile(profile_id="p"))
        return engine, profile, bus, ledger

    def test_commit_reaches_bus_and_ledger(self, wired):
        engine, profile, bus, ledger = wired
        engine.perform(profile, default_phase_set(), [Operand.install(mocked("a"))])
        assert [e["type"] for e in bus.events()] == ["engine:begin", "engine:commit"]
        (entry,) = ledger.read_all()
        assert entry.outcome == "committed"
        assert entry.profile_id == "p"

    def test_rollback_records_errors(self, wired, mock_action):
        engine, profile, bus, ledger = wired
        mock_action.fail_for_unit("a")
        engine.perform(profile, default_phase_set(), [Operand.install(mocked("a"))])
        assert bus.events()[-1]["type"] == "engine:rollback"
        (entry,) = ledger.for_profile("p")
        assert entry.outcome == "rolled_back"
        assert any("install:a/1.0.0:mock#1" in err for err in entry.errors)
