"""Progress sinks and the listener registry owned by the orchestrator."""

from __future__ import annotations

import logging
import queue
import time
from abc import ABC, abstractmethod
from threading import Lock
from typing import Callable, Iterator, List, Optional

from core import ProgressEvent, ProgressEventType


logger = logging.getLogger(__name__)


class ProgressListener(ABC):
    """Receives every progress event of a run. Delivery is synchronous, so keep it cheap."""

    @abstractmethod
    def on_progress(self, event: ProgressEvent) -> None: ...

    def close(self) -> None:
        """Called once the run reaches a terminal state."""


class ProgressListenerRegistry:
    """Thread-safe set of listeners; sinks may attach or detach from any thread."""

    def __init__(self) -> None:
        self._listeners: List[ProgressListener] = []
        self._lock = Lock()

    def add(self, listener: ProgressListener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove(self, listener: ProgressListener) -> bool:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
                return True
            return False

    def snapshot(self) -> List[ProgressListener]:
        with self._lock:
            return list(self._listeners)

    def publish(self, event: ProgressEvent) -> None:
        """Deliver to every listener; a failing listener is logged and skipped."""
        for listener in self.snapshot():
            try:
                listener.on_progress(event)
            except Exception as exc:
                logger.warning(f"[collect] progress listener {listener!r} failed: {exc}")

    def close_all(self) -> None:
        """Close and deregister every listener."""
        with self._lock:
            listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener.close()
            except Exception as exc:
                logger.warning(f"[collect] closing listener {listener!r} failed: {exc}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)


class LoggingProgressListener(ProgressListener):
    """Writes events to the log."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self._log = log or logger

    def on_progress(self, event: ProgressEvent) -> None:
        level = logging.ERROR if event.type == ProgressEventType.ERROR.value else logging.INFO
        keyword = f" [{event.keyword}]" if event.keyword else ""
        self._log.log(level, f"[collect] {event.percentage:>3}% {event.type}{keyword} {event.message}")


_CLOSED = object()


class QueueProgressListener(ProgressListener):
    """
    Buffers events for a consumer on another thread (e.g. a streaming client).

    events() yields until the run closes the listener or the maximum
    subscription lifetime elapses.
    """

    def __init__(
        self,
        max_lifetime_seconds: float = 600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_lifetime_seconds = max_lifetime_seconds
        self._clock = clock
        self._created = clock()
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._closed = False
        self._lock = Lock()

    def on_progress(self, event: ProgressEvent) -> None:
        with self._lock:
            if self._closed:
                return
        self._queue.put(event)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(_CLOSED)

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def expired(self) -> bool:
        return self._clock() - self._created >= self.max_lifetime_seconds

    def events(self, poll_interval: float = 0.5) -> Iterator[ProgressEvent]:
        while True:
            if self.expired:
                logger.info("[collect] progress subscription reached its maximum lifetime")
                return
            try:
                item = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                continue
            if item is _CLOSED:
                return
            yield item  # type: ignore[misc]
