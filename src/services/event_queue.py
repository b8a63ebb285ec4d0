"""FIFO buffer of pending panel events, drained once per tool dispatch."""

from __future__ import annotations

import threading

from src.schemas.events import SageEvent


class EventQueue:
    """Append-only list of events that is swapped out wholesale on drain.

    ``drain_all`` replaces the backing list under the lock, so an event is
    returned by exactly one drain and anything enqueued afterwards lands in the
    next one.
    """

    def __init__(self) -> None:
        self._events: list[SageEvent] = []
        self._lock = threading.Lock()

    def enqueue(self, event: SageEvent) -> None:
        with self._lock:
            self._events.append(event)

    def drain_all(self) -> list[SageEvent]:
        with self._lock:
            events, self._events = self._events, []
        return events

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def drain_combined(*queues: EventQueue) -> list[SageEvent]:
    """Drain several queues into one list, keeping queue order (first queue first)."""
    events: list[SageEvent] = []
    for queue in queues:
        events.extend(queue.drain_all())
    return events
