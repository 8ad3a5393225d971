"""
Timed progress simulation.

A ``ProgressSimulator`` advances a percentage from 0 to 100 on a fixed
cadence without blocking the caller, publishing the percentage and a
derived sub-step index to observers on every tick.  It stands in for
real asynchronous work behind a start/observe contract, so a genuine
backend can replace it without changing the wizard.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from risk_wizard.errors import AlreadyRunningError
from risk_wizard.scheduler import Scheduler, TimerHandle


TickCallback = Callable[[int, int], None]
CompleteCallback = Callable[[], None]


@dataclass(frozen=True)
class ProgressConfig:
    """Cadence of a progress run."""

    increment_per_tick: int = 5
    tick_interval_ms: float = 150.0
    total_sub_steps: int = 5

    def validate(self) -> None:
        if self.increment_per_tick <= 0:
            raise ValueError(
                f"increment_per_tick must be positive, got {self.increment_per_tick}"
            )
        if self.tick_interval_ms <= 0:
            raise ValueError(
                f"tick_interval_ms must be positive, got {self.tick_interval_ms}"
            )
        if self.total_sub_steps < 1:
            raise ValueError(
                f"total_sub_steps must be at least 1, got {self.total_sub_steps}"
            )

    @property
    def expected_ticks(self) -> int:
        """Number of ticks a run takes to reach 100."""
        return -(-100 // self.increment_per_tick)


FEATURE_PROGRESS = ProgressConfig(increment_per_tick=5, tick_interval_ms=150.0, total_sub_steps=5)
MODEL_PROGRESS = ProgressConfig(increment_per_tick=10, tick_interval_ms=300.0, total_sub_steps=1)


def sub_step_for(percentage: int, total_sub_steps: int) -> int:
    """Index of the sub-step reached at ``percentage``.

    The 0-100 range is split into ``total_sub_steps`` equal bands; the
    result is clamped to ``[0, total_sub_steps - 1]``.  The pre-start
    value ``-1`` is the simulator's business, not this function's.
    """
    index = (percentage * total_sub_steps) // 100
    return max(0, min(index, total_sub_steps - 1))


class ProgressSimulator:
    """Incrementing-progress driver bound to a scheduler.

    Args:
        scheduler: Object providing ``call_later(delay, callback)``.
        config: Default cadence used when ``start`` gets no overrides.
        name: Label used in ``repr`` and console output.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: ProgressConfig = FEATURE_PROGRESS,
        name: str = "progress",
    ) -> None:
        config.validate()
        self._scheduler = scheduler
        self._config = config
        self.name = name

        self._active: ProgressConfig = config
        self._percentage: int = 0
        self._sub_step: int = -1
        self._ticks: int = 0
        self._handle: Optional[TimerHandle] = None
        self._completed: bool = False

        self._tick_observers: list[TickCallback] = []
        self._complete_observers: list[CompleteCallback] = []

    def __repr__(self) -> str:
        return (
            f"ProgressSimulator(name={self.name!r}, "
            f"percentage={self._percentage}, running={self.is_running})"
        )

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def on_tick(self, callback: TickCallback) -> None:
        """Register ``callback(percentage, sub_step)`` for every tick."""
        self._tick_observers.append(callback)

    def on_complete(self, callback: CompleteCallback) -> None:
        """Register ``callback()`` for the single completion signal."""
        self._complete_observers.append(callback)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(
        self,
        increment_per_tick: Optional[int] = None,
        tick_interval_ms: Optional[float] = None,
        total_sub_steps: Optional[int] = None,
    ) -> None:
        """Begin a run.  Returns immediately; ticks arrive via the scheduler.

        Raises:
            AlreadyRunningError: If the previous run has not completed.
            ValueError: If any cadence parameter is not positive.
        """
        if self.is_running:
            raise AlreadyRunningError(
                f"{self.name} is already running ({self._percentage}%)"
            )

        config = ProgressConfig(
            increment_per_tick=(
                self._config.increment_per_tick
                if increment_per_tick is None
                else increment_per_tick
            ),
            tick_interval_ms=(
                self._config.tick_interval_ms
                if tick_interval_ms is None
                else tick_interval_ms
            ),
            total_sub_steps=(
                self._config.total_sub_steps
                if total_sub_steps is None
                else total_sub_steps
            ),
        )
        config.validate()

        self._active = config
        self._percentage = 0
        self._sub_step = -1
        self._ticks = 0
        self._completed = False
        self._schedule()

    def cancel(self) -> None:
        """Stop ticking without signalling completion.  Safe to repeat."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def percentage(self) -> int:
        return self._percentage

    @property
    def sub_step(self) -> int:
        return self._sub_step

    @property
    def ticks(self) -> int:
        """Ticks elapsed in the current (or last) run."""
        return self._ticks

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    @property
    def is_complete(self) -> bool:
        return self._completed

    @property
    def config(self) -> ProgressConfig:
        """Cadence of the current (or last) run."""
        return self._active

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        self._handle = self._scheduler.call_later(
            self._active.tick_interval_ms / 1000.0, self._tick
        )

    def _tick(self) -> None:
        # Delivered after cancel()
        if self._handle is None:
            return

        self._ticks += 1
        self._percentage = min(100, self._percentage + self._active.increment_per_tick)
        self._sub_step = sub_step_for(self._percentage, self._active.total_sub_steps)

        if self._percentage >= 100:
            self._handle = None
            self._completed = True
        else:
            self._schedule()

        for callback in list(self._tick_observers):
            callback(self._percentage, self._sub_step)

        if self._completed:
            for callback in list(self._complete_observers):
                callback()
