"""EventBus — synchronous pub/sub for session notifications.

Every system in the simulation core publishes change notifications here
(phase changes, meter changes, reactions, interruption events, session end).
Two kinds of consumers are supported:

  - Listeners: callables registered with ``add_listener``.  They run
    synchronously inside ``publish`` in registration order, after the
    publishing system has already mutated state.  The HUD and audio
    collaborators rely on that ordering.
  - Queue subscribers: ``subscribe`` returns a bounded Queue that receives
    every message.  Useful for a renderer that drains once per frame.

A failing listener is logged and skipped; the core keeps running.
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Callable

from loguru import logger

Listener = Callable[[str, dict], None]


class EventBus:
    """Simple pub/sub for pushing session events to subscribers."""

    QUEUE_MAXSIZE = 1000

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[queue.Queue] = []
        self._listeners: dict[str | None, list[Listener]] = {}
        self._counts: dict[str, int] = {}

    # -- Queue subscribers ------------------------------------------------------

    def subscribe(self) -> queue.Queue:
        """Subscribe to events. Returns a Queue that receives all events."""
        q: queue.Queue = queue.Queue(maxsize=self.QUEUE_MAXSIZE)
        with self._lock:
            self._subscribers.append(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            try:
                self._subscribers.remove(q)
            except ValueError:
                pass

    # -- Synchronous listeners --------------------------------------------------

    def add_listener(self, event_type: str | None, listener: Listener) -> None:
        """Register *listener* for *event_type* (``None`` = every event).

        Listeners are called as ``listener(event_type, data)``.
        """
        with self._lock:
            self._listeners.setdefault(event_type, []).append(listener)

    def remove_listener(self, event_type: str | None, listener: Listener) -> None:
        with self._lock:
            try:
                self._listeners.get(event_type, []).remove(listener)
            except ValueError:
                pass

    # -- Publishing -------------------------------------------------------------

    def publish(self, event_type: str, data: dict[str, Any] | None = None) -> None:
        msg: dict[str, Any] = {"type": event_type}
        if data is not None:
            msg["data"] = data

        with self._lock:
            self._counts[event_type] = self._counts.get(event_type, 0) + 1
            listeners = list(self._listeners.get(event_type, ()))
            listeners.extend(self._listeners.get(None, ()))
            for q in self._subscribers:
                try:
                    q.put_nowait(msg)
                except queue.Full:
                    # Drop oldest message to make room so the newest state
                    # change is never lost behind stale ones.
                    try:
                        q.get_nowait()
                    except queue.Empty:
                        pass
                    try:
                        q.put_nowait(msg)
                    except queue.Full:
                        pass

        payload = data if data is not None else {}
        for listener in listeners:
            try:
                listener(event_type, payload)
            except Exception:
                logger.exception("listener failed for {}", event_type)

    def stats(self) -> dict[str, int]:
        """Cumulative publish counts by event type."""
        with self._lock:
            return dict(self._counts)
