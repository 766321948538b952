"""
ExperimentConfig: every option a scenario can be built from.

    {atmosphere: on/off, sensor_mode: diffractive|geometric,
     guide_star_count: N, mirror_mode_count: M, loop_gain: g, ...}
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Any, Literal

from aoloop.core.model import NONFINITE_POLICIES
from aoloop.plant.atmosphere import AtmosphereConfig
from aoloop.plant.optical_model import OpticalModelConfig


@dataclass
class ExperimentConfig:
    """Configuration for a closed- or open-loop experiment."""

    # Topology
    closed_loop: bool = True
    atmosphere: bool = True
    sensor_mode: Literal["geometric", "diffractive"] = "geometric"
    guide_star_count: int = 1
    mirror_mode_count: int = 12  # Modes per segment, piston included

    # Control
    loop_gain: float = 0.5
    sensor_period: int = 1  # Reconstructor reads every sensor_period ticks

    # Run
    n_ticks: int = 200
    time_step: float = 5e-3  # Seconds per tick
    nonfinite: str = "propagate"
    seed: int = 0

    # Sensor geometry
    n_lenslet: int = 60
    n_px_lenslet: int = 8
    lenslet_size: float = 25.5 / 60
    flux_threshold: float = 0.8
    noise_rms: float = 0.0

    # Turbulence
    turbulence_tau: float = 0.2
    turbulence_amplitude: float = 1e-6

    # Telemetry
    frame_period: int = 10  # Detector frames logged every frame_period ticks
    cache_dir: str | None = None  # Calibration cache; None disables it

    def __post_init__(self):
        if not 0.0 < self.loop_gain <= 1.0:
            raise ValueError(f"loop_gain must be in (0, 1], got {self.loop_gain}")
        if self.sensor_period < 1 or self.frame_period < 1:
            raise ValueError("sensor_period and frame_period must be >= 1")
        if self.n_ticks < 0:
            raise ValueError(f"n_ticks must be >= 0, got {self.n_ticks}")
        if self.nonfinite not in NONFINITE_POLICIES:
            raise ValueError(f"nonfinite must be one of {NONFINITE_POLICIES}")

    @classmethod
    def from_dict(cls, options: dict[str, Any]) -> ExperimentConfig:
        """Build a config from a flat options mapping; unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"unknown experiment options: {unknown}")
        return cls(**options)

    def atmosphere_config(self) -> AtmosphereConfig | None:
        if not self.atmosphere:
            return None
        return AtmosphereConfig(
            time_step=self.time_step,
            tau=self.turbulence_tau,
            amplitude=self.turbulence_amplitude,
            seed=self.seed + 1,
        )

    def optical_config(self, **overrides: Any) -> OpticalModelConfig:
        """Optical model configuration derived from this experiment."""
        options = dict(
            n_segments=7,
            n_modes=self.mirror_mode_count,
            n_lenslet=self.n_lenslet,
            n_px_lenslet=self.n_px_lenslet,
            lenslet_size=self.lenslet_size,
            sensor_mode=self.sensor_mode,
            flux_threshold=self.flux_threshold,
            guide_star_count=self.guide_star_count,
            noise_rms=self.noise_rms,
            atmosphere=self.atmosphere_config(),
            seed=self.seed,
        )
        options.update(overrides)
        return OpticalModelConfig(**options)
