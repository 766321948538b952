"""
Clock and Timer: the shared discrete time base.

The Clock produces ticks 0, 1, 2, ... and stops after n_ticks (or never,
until cancelled). The Timer is the Clock seen as an actor: it publishes
the tick value on a Tick channel that can be multiplexed to any number of
consumers, which all receive the same payload in the same tick.
"""

from __future__ import annotations
from typing import Iterator

from aoloop.core.actor import Actor
from aoloop.signals import TICK


class Clock:
    """
    Generates a finite or unbounded sequence of ticks.

    Ticks are strictly increasing and advance by exactly one per call.
    """

    def __init__(self, n_ticks: int | None = None, start: int = 0):
        if n_ticks is not None and n_ticks < 0:
            raise ValueError(f"n_ticks must be >= 0, got {n_ticks}")
        self.n_ticks = n_ticks
        self.start = start
        self._elapsed = 0
        self._cancelled = False

    def advance(self) -> int | None:
        """Next tick, or None when the count is reached or the clock was cancelled."""
        if self._cancelled:
            return None
        if self.n_ticks is not None and self._elapsed >= self.n_ticks:
            return None
        tick = self.start + self._elapsed
        self._elapsed += 1
        return tick

    def cancel(self):
        """Stop the clock. Takes effect on the next advance()."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def ticks_elapsed(self) -> int:
        return self._elapsed

    @property
    def bounded(self) -> bool:
        return self.n_ticks is not None

    def __iter__(self) -> Iterator[int]:
        tick = self.advance()
        while tick is not None:
            yield tick
            tick = self.advance()


class Timer(Actor):
    """
    Initiator actor publishing the current tick.

    n_ticks is the run length a Model uses when run() is called without one.
    """

    def __init__(self, n_ticks: int | None = None, name: str = "timer"):
        super().__init__(name)
        self.n_ticks = n_ticks
        self.add_output(TICK)

    def update(self) -> None:
        pass

    def write(self, tag: str) -> int:
        return self.tick
