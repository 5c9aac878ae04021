"""Transfer speed measurement and rate limiting."""

from __future__ import annotations

import threading
import time


class Speeds:
    """Counts bytes and reports them as a rate per interval (default one second)."""

    def __init__(self, interval: float = 1.0) -> None:
        self._interval = interval if interval > 0 else 1.0
        self._count = 0
        self._start: float | None = None
        self._lock = threading.Lock()

    def _init_once(self) -> None:
        if self._start is None:
            self._start = time.monotonic()

    def set_interval(self, interval: float) -> None:
        """Set the refresh interval in seconds; non-positive values are ignored."""
        if interval <= 0:
            return
        self._interval = interval

    def add(self, count: int) -> None:
        """Record ``count`` more bytes."""
        with self._lock:
            self._init_once()
            self._count += count

    def get_speeds(self) -> int:
        """Return the current rate; starts a new round once an interval has passed."""
        with self._lock:
            self._init_once()
            since = time.monotonic() - self._start
            if since <= 0:
                return 0
            speeds = int(self._count * self._interval / since)
            if since >= self._interval:
                self._count = 0
                self._start = time.monotonic()
            return speeds


class RateLimit:
    """Blocks callers once ``max_rate`` bytes were added within the current interval."""

    def __init__(self, max_rate: int) -> None:
        self.max_rate = max_rate
        self._count = 0
        self._interval = 1.0
        self._cond = threading.Condition()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def set_interval(self, interval: float) -> None:
        """Set the reset interval in seconds; non-positive values mean one second."""
        if interval <= 0:
            interval = 1.0
        with self._cond:
            self._interval = interval

    def _ensure_started(self) -> None:
        with self._cond:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self._tick, daemon=True)
            self._thread.start()

    def _tick(self) -> None:
        while not self._stopped.wait(self._interval):
            with self._cond:
                self._count = 0
                self._cond.notify_all()

    def add(self, count: int) -> None:
        """Account for ``count`` bytes, waiting while the limit is reached."""
        self._ensure_started()
        with self._cond:
            while self._count >= self.max_rate:
                self._cond.wait()
            self._count += count

    def stop(self) -> None:
        """Stop the background reset timer."""
        self._stopped.set()