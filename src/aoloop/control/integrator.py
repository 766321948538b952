"""
Integrator: the loop's control law.

    y <- leak * y + gain * delta

With leak = 1 this is a plain integrator. Gain < 1 trades convergence
speed for robustness to sensor noise and calibration error.

The integrator is bootstrapped by default: before any increment arrives it
publishes y = 0, which is what lets the optics -> sensor -> reconstructor
-> integrator -> optics cycle start. Non-finite increments are not
trapped here; the Model's non-finite policy decides what happens.
"""

from __future__ import annotations

import numpy as np

from aoloop.core.actor import Actor, Rate
from aoloop.signals import M2_MODES, MODAL_INCREMENT


class Integrator(Actor):
    """Leaky accumulator of command increments."""

    def __init__(
        self,
        n: int,
        gain: float,
        leak: float = 1.0,
        input_tag: str = MODAL_INCREMENT,
        output_tag: str = M2_MODES,
        bootstrap: bool = True,
        name: str = "integrator",
        rate: Rate | None = None,
    ):
        if not 0.0 < gain <= 1.0:
            raise ValueError(f"gain must be in (0, 1], got {gain}")
        if not 0.0 < leak <= 1.0:
            raise ValueError(f"leak must be in (0, 1], got {leak}")
        super().__init__(name, rate=rate, bootstrap=bootstrap)

        self.gain = gain
        self.leak = leak
        self.input_tag = input_tag
        self.output_tag = output_tag
        self.add_input(input_tag, size=n)
        self.add_output(output_tag, size=n)

        self.y = np.zeros(n)

    def integrate(self, delta: np.ndarray) -> np.ndarray:
        """Apply one increment and return the new command."""
        self.y = self.leak * self.y + self.gain * np.asarray(delta, dtype=np.float64)
        return self.y

    def update(self) -> None:
        delta = self.take(self.input_tag)
        if delta is not None:
            self.integrate(delta)

    def write(self, tag: str) -> np.ndarray:
        return self.y.copy()

    def seed(self, tag: str) -> np.ndarray:
        return np.zeros_like(self.y)

    def reset(self):
        self.y.fill(0.0)
