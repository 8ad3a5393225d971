"""
Timer scheduling for simulators and the layout frame loop.

Anything exposing ``call_later(delay, callback, *args)`` that returns a
handle with ``cancel()`` can drive the wizard.  ``asyncio`` event loops
satisfy this contract for wall-clock runs; ``VirtualClock`` satisfies
it deterministically for tests, benchmarks and the fast CLI mode.
"""

from __future__ import annotations

import heapq
import itertools
from typing import Any, Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> TimerHandle: ...


# Due times are rounded so repeated float intervals (e.g. 0.15 s) land
# on exact multiples.
_TIME_PRECISION = 9


class VirtualTimer:
    """Handle for a callback scheduled on a ``VirtualClock``."""

    __slots__ = ("when", "_callback", "_args", "_cancelled")

    def __init__(
        self, when: float, callback: Callable[..., Any], args: tuple
    ) -> None:
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled

    def _run(self) -> None:
        self._callback(*self._args)


class VirtualClock:
    """Deterministic single-threaded scheduler with a manual clock.

    Time only moves when ``advance`` (or ``run_until_idle``) is called.
    Callbacks due at the same instant run in scheduling order, and a
    callback may schedule further callbacks, which run during the same
    ``advance`` call if they fall inside the window.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._queue: list[tuple[float, int, VirtualTimer]] = []
        self._seq = itertools.count()

    # ------------------------------------------------------------------
    # Scheduler contract
    # ------------------------------------------------------------------

    def call_later(
        self, delay: float, callback: Callable[..., Any], *args: Any
    ) -> VirtualTimer:
        if delay < 0:
            raise ValueError(f"delay must be non-negative, got {delay}")
        when = round(self._now + delay, _TIME_PRECISION)
        timer = VirtualTimer(when, callback, args)
        heapq.heappush(self._queue, (when, next(self._seq), timer))
        return timer

    def time(self) -> float:
        """Current virtual time in seconds."""
        return self._now

    # ------------------------------------------------------------------
    # Driving
    # ------------------------------------------------------------------

    def advance(self, seconds: float) -> int:
        """Move the clock forward, firing every callback that falls due.

        Returns:
            Number of callbacks executed.
        """
        if seconds < 0:
            raise ValueError("cannot move a clock backwards")
        target = round(self._now + seconds, _TIME_PRECISION)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, timer = heapq.heappop(self._queue)
            if timer.cancelled():
                continue
            self._now = when
            timer._run()
            fired += 1
        self._now = target
        return fired

    def advance_ms(self, milliseconds: float) -> int:
        """``advance`` expressed in milliseconds."""
        return self.advance(milliseconds / 1000.0)

    def run_until_idle(self, limit: float = 3600.0) -> int:
        """Fire callbacks until nothing is pending or ``limit`` seconds pass."""
        deadline = round(self._now + limit, _TIME_PRECISION)
        fired = 0
        while True:
            self._discard_cancelled()
            if not self._queue or self._queue[0][0] > deadline:
                break
            fired += self.advance(self._queue[0][0] - self._now)
        return fired

    @property
    def pending(self) -> int:
        """Number of live (not cancelled) scheduled callbacks."""
        return sum(1 for _, _, t in self._queue if not t.cancelled())

    def _discard_cancelled(self) -> None:
        while self._queue and self._queue[0][2].cancelled():
            heapq.heappop(self._queue)
