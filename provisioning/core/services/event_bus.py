"""
EventBus — thread-safe, in-process pub/sub with bounded replay.

The engine publishes transaction lifecycle events here (through
``EventBusSink``); tooling subscribes to follow provisioning activity
as it happens, or replays what it missed.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_buffer``, ``_subscribers`` and
  ``_listeners`` (all writes go through the lock).
- Each subscriber gets its own ``queue.Queue``; the publisher pushes
  into all queues under the lock.
- Listener callbacks run outside the lock, in the publishing thread.
  A failing listener is logged and never reaches the publisher.

Message standard
────────────────
Every event is a dict with these fields::

    {
        "v": 1,                     # schema version (immutable)
        "ts": 1739648400.123,       # timestamp (immutable)
        "seq": 47,                  # monotonic sequence (immutable)
        "type": "engine:commit",    # <domain>:<action> (stable)
        "key": "tx-20260101-...",   # resource identifier (stable)
        "data": { ... },            # event-specific payload (varies)
    }
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Callable, Generator
from typing import Any

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

Listener = Callable[[dict], None]


class EventBus:
    """Thread-safe, in-process pub/sub with bounded replay buffer.

    Parameters
    ----------
    buffer_size : int
        Maximum number of events kept for replay. Older events are
        silently discarded.
    subscriber_queue_size : int
        Maximum backlog per subscriber. A subscriber whose queue is
        full is dropped.
    """

    def __init__(
        self,
        *,
        buffer_size: int = 500,
        subscriber_queue_size: int = 200,
    ) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._buffer: deque[dict] = deque(maxlen=buffer_size)
        self._subscribers: list[queue.Queue[dict]] = []
        self._subscriber_queue_size = subscriber_queue_size
        self._listeners: list[Listener] = []

    # ── Properties ──────────────────────────────────────────────

    @property
    def seq(self) -> int:
        """Current sequence number (monotonically increasing)."""
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    # ── Publishing ──────────────────────────────────────────────

    def publish(
        self,
        event_type: str,
        *,
        key: str = "",
        data: dict[str, Any] | None = None,
        **kw: Any,
    ) -> dict:
        """Broadcast an event to subscribers and listeners.

        Parameters
        ----------
        event_type : str
            Event type in ``<domain>:<action>`` format.
        key : str
            Resource identifier. Empty for system events.
        data : dict | None
            Event-specific payload.
        **kw :
            Additional top-level fields (``error``, ``duration_s``, ``meta``).

        Returns
        -------
        dict
            The full event dict with ``seq`` assigned.
        """
        with self._lock:
            self._seq += 1
            event: dict[str, Any] = {
                "v": _SCHEMA_VERSION,
                "ts": time.time(),
                "seq": self._seq,
                "type": event_type,
                "key": key,
                "data": data or {},
                **kw,
            }
            self._buffer.append(event)

            dead: list[queue.Queue[dict]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(event)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive subscriber (queue full)")

            listeners = list(self._listeners)

        # Callbacks and logging outside the lock
        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.warning("Event listener failed on %s: %s", event_type, e)

        extra = f" error={kw['error'][:80]}" if "error" in kw else ""
        logger.debug("event %s key=%s%s", event_type, key or "-", extra)
        return event

    # ── Listeners ───────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # ── Replay and subscription ─────────────────────────────────

    def events(self, since: int = 0, event_type: str | None = None) -> list[dict]:
        """Buffered events with ``seq > since``, oldest first."""
        with self._lock:
            return [
                e for e in self._buffer
                if e["seq"] > since and (event_type is None or e["type"] == event_type)
            ]

    def subscribe(
        self,
        *,
        since: int = 0,
        idle_timeout: float = 30.0,
    ) -> Generator[dict, None, None]:
        """Yield buffered events after ``since``, then live ones.

        The generator ends once no event arrives for ``idle_timeout``
        seconds, or when the caller closes it.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)
        with self._lock:
            backlog = [e for e in self._buffer if e["seq"] > since]
            self._subscribers.append(q)

        logger.debug("Subscriber connected (since=%d, backlog=%d)", since, len(backlog))
        try:
            yield from backlog
            while True:
                try:
                    yield q.get(timeout=idle_timeout)
                except queue.Empty:
                    return
        finally:
            with self._lock:
                if q in self._subscribers:
                    self._subscribers.remove(q)
            logger.debug("Subscriber disconnected")
