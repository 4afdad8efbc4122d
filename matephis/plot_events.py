"""Host event sources the engine can attach to.

A host (page, notebook widget, GUI shell) owns the real scroll and resize
events. It forwards them to an :class:`EventSource`; engines subscribe with
``engine.attach(source)`` and unsubscribe with ``engine.detach(source)``, so no
engine keeps global listeners alive after it is discarded.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional
import warnings

__all__ = [
    "SCROLL_GUARD_MS",
    "EventSource",
    "ScrollEventSource",
    "ResizeEventSource",
    "ScrollGuard",
]

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

SCROLL_GUARD_MS = 150.0

Listener = Callable[..., Any]


class EventSource:
    """Thread-safe listener registry; listener failures are reported, not raised."""

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def _emit(self, *args: Any) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(*args)
            except Exception as exc:
                warnings.warn(f"{type(self).__name__} listener failed: {exc}")


class ScrollEventSource(EventSource):
    """Forward page-scroll notifications with a monotonic timestamp in seconds."""

    def notify_scroll(self, timestamp: Optional[float] = None) -> None:
        self._emit(time.monotonic() if timestamp is None else float(timestamp))


class ResizeEventSource(EventSource):
    """Forward container width changes in pixels."""

    def notify_resize(self, width: float) -> None:
        self._emit(float(width))


class ScrollGuard:
    """Remember the last scroll and block pointer-down and wheel input shortly after it.

    Parameters
    ----------
    window_ms : float
        Blocking window after a scroll.
    clock : callable, optional
        Monotonic time source in seconds (``time.monotonic`` by default).
    """

    def __init__(self, window_ms: float = SCROLL_GUARD_MS, clock: Optional[Callable[[], float]] = None) -> None:
        self.window_ms = float(window_ms)
        self._clock = clock or time.monotonic
        self._last_scroll: Optional[float] = None

    def __call__(self, timestamp: float) -> None:
        self._last_scroll = float(timestamp)

    def blocked(self, now: Optional[float] = None) -> bool:
        """Return True while ``now`` is inside the window after the last scroll."""
        if self._last_scroll is None:
            return False
        current = self._clock() if now is None else float(now)
        return (current - self._last_scroll) * 1000.0 < self.window_ms
