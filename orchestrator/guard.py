"""Single-flight guard for collection runs."""

from __future__ import annotations

from datetime import datetime
from threading import Lock
from typing import Optional


class RunGuard:
    """At most one collection run at a time; concurrent triggers are rejected, not queued."""

    def __init__(self) -> None:
        self._running = False
        self._last_completed_at: Optional[datetime] = None
        self._lock = Lock()

    def try_start(self) -> bool:
        """Compare-and-set the running flag. Returns False when a run is already in flight."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            return True

    def release(self, completed_at: Optional[datetime] = None) -> None:
        """Clear the running flag; record the completion time of a successful run."""
        with self._lock:
            self._running = False
            if completed_at is not None:
                self._last_completed_at = completed_at

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def last_completed_at(self) -> Optional[datetime]:
        with self._lock:
            return self._last_completed_at
