"""Clocks driving the develop loop and the log tailer.

Long-running loops never call :func:`time.sleep` directly. They wait on a
:class:`Clock`, so tests can swap in a :class:`ManualClock` and advance
logical time explicitly.
"""

import heapq
import itertools
import threading
import time
from typing import Callable, Optional


class Clock:
    """Wall clock implementation."""

    def sleep(self, seconds: float) -> None:
        """Block for the given number of seconds."""
        if seconds > 0:
            time.sleep(seconds)

    def wait(self, event: Optional[threading.Event], seconds: float) -> bool:
        """Wait for one tick or until the event fires.

        Args:
            event: Stop signal (None waits for the full tick)
            seconds: Tick length

        Returns:
            True if the event has fired
        """
        if event is None:
            self.sleep(seconds)
            return False
        return event.wait(seconds)


class ManualClock(Clock):
    """Logical clock for tests.

    Waiting advances the logical time by the requested amount instead of
    blocking. Callbacks registered with :meth:`call_at` run as soon as the
    logical time reaches them, in registration order for equal deadlines.

    Examples:
        >>> clock = ManualClock()
        >>> done = threading.Event()
        >>> clock.call_at(3, done.set)
        >>> clock.wait(done, 1), clock.wait(done, 1), clock.wait(done, 1)
        (False, False, True)
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._lock = threading.Lock()
        self._pending: list[tuple[float, int, Callable[[], None]]] = []
        self._counter = itertools.count()
        self.sleeps: list[float] = []

    def call_at(self, when: float, callback: Callable[[], None]) -> None:
        """Run ``callback`` once the logical time reaches ``when``."""
        with self._lock:
            heapq.heappush(self._pending, (when, next(self._counter), callback))

    def advance(self, seconds: float) -> None:
        """Move logical time forward and fire due callbacks."""
        with self._lock:
            self._now += seconds
            due = []
            while self._pending and self._pending[0][0] <= self._now:
                due.append(heapq.heappop(self._pending)[2])
        for callback in due:
            callback()

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)

    def wait(self, event: Optional[threading.Event], seconds: float) -> bool:
        self.sleep(seconds)
        return event is not None and event.is_set()
