"""
Non-blocking event delivery.

Producers (the acquisition loop, inference workers) publish into a bounded
queue and return immediately; one delivery thread invokes subscribers in
publish order. A slow subscriber can only make events drop, never stall a
producer.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional, Tuple

FRAME_RECEIVED = "frame_received"
STATUS_CHANGED = "status_changed"
ERROR_OCCURRED = "error_occurred"
RESULT_READY = "result_ready"

Callback = Callable[[Any], None]

_STOP = object()


class EventDispatcher:
    """Bounded FIFO of (topic, payload) drained by a single daemon thread."""

    def __init__(self, name: str = "events", max_pending: int = 64):
        self._name = name
        self._queue: "queue.Queue[Tuple[Any, Any]]" = queue.Queue(maxsize=max_pending)
        self._subscribers: DefaultDict[str, List[Callback]] = defaultdict(list)
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False
        self.dropped = 0

    def subscribe(self, topic: str, callback: Callback) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers[topic].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[topic]:
                    self._subscribers[topic].remove(callback)

        return unsubscribe

    def publish(self, topic: str, payload: Any = None) -> bool:
        """
        Queue an event for delivery without blocking.

        Returns False if the event was dropped (queue full or closed).
        """
        if self._closed:
            return False
        self._ensure_started()
        try:
            self._queue.put_nowait((topic, payload))
            return True
        except queue.Full:
            self.dropped += 1
            if self.dropped == 1 or self.dropped % 100 == 0:
                logging.warning(
                    f"[{self._name}] event queue full, dropped {self.dropped} event(s) so far"
                )
            return False

    def close(self, timeout: float = 1.0) -> None:
        """Deliver what is queued, then stop the delivery thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            thread = self._thread
        if thread is None:
            return
        try:
            self._queue.put(_STOP, timeout=timeout)
        except queue.Full:
            logging.warning(f"[{self._name}] could not enqueue stop marker")
            return
        thread.join(timeout)

    def _ensure_started(self) -> None:
        if self._thread is not None:
            return
        with self._lock:
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run, name=f"{self._name}-dispatch", daemon=True
                )
                self._thread.start()

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            topic, payload = item
            with self._lock:
                callbacks = list(self._subscribers.get(topic, ()))
            for callback in callbacks:
                try:
                    callback(payload)
                except Exception as e:
                    logging.warning(f"[{self._name}] callback error on {topic}: {e}")
