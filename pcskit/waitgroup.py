"""A wait group that can also cap the number of concurrent tasks."""

from __future__ import annotations

import threading


class WaitGroup:
    """Tracks outstanding tasks; ``parallel`` > 0 limits how many run at once."""

    def __init__(self, parallel: int = 0) -> None:
        self._limit = parallel if parallel > 0 else 0
        self._pending = 0
        self._active = 0
        self._closed = False
        self._cond = threading.Condition()

    def add_delta(self) -> None:
        """Register one task, waiting for a free slot if a limit is set."""
        with self._cond:
            if self._limit:
                if self._closed:
                    raise RuntimeError("wait group already closed")
                while self._active >= self._limit:
                    self._cond.wait()
                    if self._closed:
                        raise RuntimeError("wait group already closed")
                self._active += 1
            self._pending += 1

    def done(self) -> None:
        """Mark one task finished and free its slot."""
        with self._cond:
            if self._pending <= 0:
                raise ValueError("negative wait group counter")
            self._pending -= 1
            if self._limit:
                self._active -= 1
            self._cond.notify_all()

    def wait(self) -> None:
        """Block until every registered task is done; a limited group is then closed."""
        with self._cond:
            while self._pending > 0:
                self._cond.wait()
            if self._limit:
                self._closed = True

    def parallel(self) -> int:
        """Return how many tasks currently hold a slot (0 when unlimited)."""
        with self._cond:
            return self._active