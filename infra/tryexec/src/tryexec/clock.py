"""
Clock sources and deadlines.

Every timing decision made by the execution sandbox goes through a
:class:`Clock`.  Production code uses :class:`SystemClock`, which reads the
monotonic clock and really sleeps.  Tests use :class:`VirtualClock`, whose
time only moves when something waits on it (or when a test advances it
explicitly), so timeout boundaries can be exercised without real waiting.

A :class:`Deadline` is a budget started against a clock.  The sandbox uses
two of them per run, one for infrastructure work (compilation and process
startup) and one for the user's code, and never shares a timer between them.
"""

from __future__ import annotations

import abc
import concurrent.futures
import threading
import time
from typing import Callable


class Clock(abc.ABC):
    """Source of monotonic time measured in seconds."""

    @abc.abstractmethod
    def now(self) -> float:
        raise NotImplementedError

    @abc.abstractmethod
    def sleep(self, seconds: float) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def wait(self, future: concurrent.futures.Future, seconds: float) -> bool:
        """Wait up to ``seconds`` for ``future`` and report whether it is done."""
        raise NotImplementedError


class SystemClock(Clock):
    """Wall clock backed by :func:`time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)

    def wait(self, future: concurrent.futures.Future, seconds: float) -> bool:
        done, _ = concurrent.futures.wait([future], timeout=max(seconds, 0))
        return future in done


class VirtualClock(Clock):
    """Controllable clock for deterministic tests.

    ``sleep`` advances virtual time instead of blocking.  ``wait`` gives the
    future a short real-time window (``settle``) to finish; if it has not, the
    full requested interval is charged to virtual time.
    """

    def __init__(self, start: float = 0.0, settle: float = 0.01) -> None:
        self._now = start
        self._settle = settle
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        with self._lock:
            self._now += seconds

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self.advance(seconds)

    def wait(self, future: concurrent.futures.Future, seconds: float) -> bool:
        done, _ = concurrent.futures.wait([future], timeout=self._settle)
        if future in done:
            return True
        self.sleep(seconds)
        return future.done()


class Deadline:
    """A time budget measured from the moment it is started."""

    def __init__(self, clock: Clock, budget: float) -> None:
        self.clock = clock
        self.budget = budget
        self.started_at = clock.now()

    @property
    def expires_at(self) -> float:
        return self.started_at + self.budget

    def elapsed(self) -> float:
        return self.clock.now() - self.started_at

    def remaining(self) -> float:
        return max(self.expires_at - self.clock.now(), 0.0)

    @property
    def expired(self) -> bool:
        return self.clock.now() >= self.expires_at

    def wait_for(self, future: concurrent.futures.Future, interval: float) -> bool:
        """Wait for ``future`` within the budget.

        Returns ``False`` when the budget ran out first.  A future that only
        completed after the budget was spent still counts as late.
        """
        while not self.expired:
            if self.clock.wait(future, min(interval, self.remaining())):
                return not self.expired
        return False

    def poll(self, condition: Callable[[], bool], interval: float) -> bool:
        """Check ``condition`` every ``interval`` seconds until it holds.

        Returns ``False`` when the budget ran out before the condition held.
        """
        while True:
            if condition():
                return True
            if self.expired:
                return False
            self.clock.sleep(min(interval, self.remaining()))
