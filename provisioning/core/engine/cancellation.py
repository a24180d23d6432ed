"""
Cancellation — a flag another thread can raise to stop a transaction.

The phase pipeline checks the flag between actions; an action that is
already running is never interrupted.
"""

from __future__ import annotations

import threading


class Cancellation:
    """Thread-safe, one-way cancellation flag."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"<Cancellation cancelled={self.is_cancelled}>"
