"""
Atmosphere: modal turbulence seen through each mirror segment.

Each segment mode follows an AR(1) process advanced once per tick:

    a <- rho * a + sqrt(1 - rho^2) * sigma * xi,   rho = exp(-time_step / tau)

so the stationary rms of a mode is sigma and its correlation time tau.
Higher-order modes are weaker (sigma ~ amplitude / degree). Piston is
scaled separately since the sensor cannot see it.
"""

from __future__ import annotations
from dataclasses import dataclass

import numpy as np


@dataclass
class AtmosphereConfig:
    """Configuration for the modal atmosphere."""

    time_step: float = 5e-3  # Seconds per tick
    tau: float = 0.2  # Correlation time [s]
    amplitude: float = 1e-6  # rms of the first-degree modes [m]
    piston_fraction: float = 0.1  # Piston rms relative to amplitude
    seed: int = 1

    def __post_init__(self):
        if self.time_step <= 0 or self.tau <= 0:
            raise ValueError("time_step and tau must be positive")
        if self.amplitude < 0:
            raise ValueError(f"amplitude must be >= 0, got {self.amplitude}")


class Atmosphere:
    """AR(1) modal turbulence for all segments."""

    def __init__(self, config: AtmosphereConfig, degrees: np.ndarray, n_segments: int):
        """
        Args:
            config: Turbulence parameters
            degrees: Polynomial degree of each mode of one segment
            n_segments: Number of mirror segments
        """
        self.config = config
        self.rho = float(np.exp(-config.time_step / config.tau))

        per_mode = np.where(
            degrees > 0,
            config.amplitude / np.maximum(degrees, 1),
            config.amplitude * config.piston_fraction,
        )
        self.sigma = np.tile(per_mode, n_segments)

        self._rng = np.random.default_rng(config.seed)
        self.state = self.sigma * self._rng.standard_normal(self.sigma.size)
        self.time = 0.0

    def step(self) -> np.ndarray:
        """Advance one time step and return the new modal state."""
        xi = self._rng.standard_normal(self.sigma.size)
        self.state = self.rho * self.state + np.sqrt(1.0 - self.rho ** 2) * self.sigma * xi
        self.time += self.config.time_step
        return self.state
