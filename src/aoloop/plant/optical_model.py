"""
OpticalModel: a linear stand-in for the telescope, atmosphere and sensor.

The engine treats it as an opaque actor: given a mirror command it
advances one time step per tick and exposes read-only outputs.

Geometry (Giant Magellan style):
- 7 circular segments, one on axis and 6 on a ring
- Each segment has n_modes polynomial modes in local coordinates,
  ordered by degree: piston, tip, tilt, then x², xy, y², ...
- A Shack-Hartmann lenslet array samples the pupil. Lenslets whose lit
  fraction is below flux_threshold are discarded.

Sensor: each valid lenslet measures the x and y gradient of the residual
wavefront at its centre. Piston has no gradient, so it is invisible to the
sensor. With several guide stars, each star sees the pupil through a
slightly shifted footprint; measurements are laid out as
[x_1 .. x_k, y_1 .. y_k].

Residual wavefront (modal): residual = atmosphere + command.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Literal

import numpy as np

from aoloop.core.actor import Actor, Rate
from aoloop.plant.atmosphere import Atmosphere, AtmosphereConfig
from aoloop.signals import (
    DETECTOR_FRAME,
    M2_MODES,
    SEGMENT_PISTON,
    SENSOR_DATA,
    TICK,
    WFE_RMS,
)

SEGMENT_DIAMETER = 8.365  # [m]
SEGMENT_SPACING = 8.710  # Centre-to-centre distance of outer segments [m]
WAVELENGTH = 500e-9  # Sensing wavelength [m]
SPOT_SIGMA = 1.0  # Spot width on the detector [px]


@dataclass
class OpticalModelConfig:
    """Configuration for the optical model."""

    n_segments: int = 7
    n_modes: int = 12  # Modes per segment in the command, piston included
    n_lenslet: int = 60  # Lenslets across the pupil
    n_px_lenslet: int = 8  # Detector pixels per lenslet
    lenslet_size: float = 25.5 / 60  # [m]
    sensor_mode: Literal["geometric", "diffractive"] = "geometric"
    flux_threshold: float = 0.8  # Minimum lit fraction of a valid lenslet
    guide_star_count: int = 1
    guide_star_shift: float = 0.3  # Footprint shift of off-axis guide stars [m]
    noise_rms: float = 0.0  # Slope noise, diffractive mode only [rad]
    atmosphere: AtmosphereConfig | None = None
    seed: int = 0

    def __post_init__(self):
        if self.sensor_mode not in ("geometric", "diffractive"):
            raise ValueError(f"unknown sensor_mode {self.sensor_mode!r}")
        if self.n_segments < 1:
            raise ValueError(f"n_segments must be >= 1, got {self.n_segments}")
        if self.n_modes < 2:
            raise ValueError(f"n_modes must be >= 2 (piston + one mode), got {self.n_modes}")
        if self.guide_star_count < 1:
            raise ValueError(f"guide_star_count must be >= 1, got {self.guide_star_count}")
        if not 0.0 <= self.flux_threshold <= 1.0:
            raise ValueError(f"flux_threshold must be in [0, 1], got {self.flux_threshold}")


def segment_centers(n_segments: int) -> np.ndarray:
    """Segment centres [n_segments, 2]: one on axis, the rest on a ring."""
    centers = [(0.0, 0.0)]
    n_outer = n_segments - 1
    for i in range(n_outer):
        angle = 2 * np.pi * i / n_outer
        centers.append((SEGMENT_SPACING * np.cos(angle), SEGMENT_SPACING * np.sin(angle)))
    return np.array(centers)


def mode_exponents(n_modes: int) -> np.ndarray:
    """Monomial exponents (p, q) of x^p y^q, in order of increasing degree."""
    exponents = []
    degree = 0
    while len(exponents) < n_modes:
        for q in range(degree + 1):
            exponents.append((degree - q, q))
        degree += 1
    return np.array(exponents[:n_modes])


class OpticalModel(Actor):
    """
    Telescope + atmosphere + Shack-Hartmann sensor, one time step per tick.

    Inputs:  Tick (required), M2Modes command (optional)
    Outputs: WfeRms, SegmentPiston, SensorData, DetectorFrame (diffractive)
    """

    def __init__(
        self,
        config: OpticalModelConfig | None = None,
        name: str = "optics",
        rate: Rate | None = None,
    ):
        super().__init__(name, rate=rate)
        self.config = config if config is not None else OpticalModelConfig()
        cfg = self.config

        self.exponents = mode_exponents(cfg.n_modes)
        self.degrees = self.exponents.sum(axis=1)
        self.centers = segment_centers(cfg.n_segments)

        # Lenslet geometry
        pitch = cfg.lenslet_size
        axis = (np.arange(cfg.n_lenslet) - (cfg.n_lenslet - 1) / 2) * pitch
        self.lenslet_x, self.lenslet_y = np.meshgrid(axis, axis)
        self.flux, self.segment_of = self._illumination()
        self.valid = (self.flux > 0) & (self.flux >= cfg.flux_threshold)
        self.n_valid = int(self.valid.sum())
        if self.n_valid == 0:
            raise ValueError("no lenslet passes the flux threshold")

        self.interaction = [
            self._interaction_matrix(offset) for offset in self._guide_star_offsets()
        ]
        self.n_command = cfg.n_segments * cfg.n_modes
        self.n_measurements = 2 * self.n_valid * cfg.guide_star_count

        self.atmosphere = (
            Atmosphere(cfg.atmosphere, self.degrees, cfg.n_segments)
            if cfg.atmosphere is not None
            else None
        )
        self._rng = np.random.default_rng(cfg.seed)

        # State
        self.command = np.zeros(self.n_command)
        self.residual = np.zeros(self.n_command)
        self.sensor = np.zeros(self.n_measurements)

        self.add_input(TICK)
        self.add_input(M2_MODES, size=self.n_command, optional=True)
        self.add_output(WFE_RMS, size=1)
        self.add_output(SEGMENT_PISTON, size=cfg.n_segments)
        self.add_output(SENSOR_DATA, size=self.n_measurements)
        if cfg.sensor_mode == "diffractive":
            side = cfg.n_lenslet * cfg.n_px_lenslet
            self.add_output(DETECTOR_FRAME, size=side * side)

    # ───────────────────────────────────────────────────────────────
    # Geometry
    # ───────────────────────────────────────────────────────────────

    def _illumination(self) -> tuple[np.ndarray, np.ndarray]:
        """
        Lit fraction of each lenslet and the segment covering most of it.

        Each lenslet is sampled on an n_px_lenslet x n_px_lenslet grid.
        """
        cfg = self.config
        m = cfg.n_px_lenslet
        sub = ((np.arange(m) + 0.5) / m - 0.5) * cfg.lenslet_size

        # [n, n, m, m] sample coordinates
        x = self.lenslet_x[:, :, None, None] + sub[None, None, None, :]
        y = self.lenslet_y[:, :, None, None] + sub[None, None, :, None]
        x, y = np.broadcast_arrays(x, y)

        dx = x[..., None] - self.centers[:, 0]
        dy = y[..., None] - self.centers[:, 1]
        inside = dx ** 2 + dy ** 2 <= (SEGMENT_DIAMETER / 2) ** 2

        counts = inside.sum(axis=(2, 3))
        flux = inside.any(axis=-1).mean(axis=(2, 3))
        return flux, counts.argmax(axis=-1)

    def _guide_star_offsets(self) -> np.ndarray:
        k = self.config.guide_star_count
        if k == 1:
            return np.zeros((1, 2))
        angles = 2 * np.pi * np.arange(k) / k
        shift = self.config.guide_star_shift
        return shift * np.column_stack([np.cos(angles), np.sin(angles)])

    def _interaction_matrix(self, offset: np.ndarray) -> np.ndarray:
        """
        Slopes [2 * n_valid, n_command] per unit mode coefficient.

        Rows: x slopes of the valid lenslets, then y slopes.
        """
        cfg = self.config
        rows, cols = np.nonzero(self.valid)
        seg = self.segment_of[rows, cols]
        radius = SEGMENT_DIAMETER / 2

        u = (self.lenslet_x[rows, cols] + offset[0] - self.centers[seg, 0]) / radius
        v = (self.lenslet_y[rows, cols] + offset[1] - self.centers[seg, 1]) / radius
        p = self.exponents[:, 0]
        q = self.exponents[:, 1]

        u = u[:, None]
        v = v[:, None]
        gx = np.where(p > 0, p * u ** np.maximum(p - 1, 0) * v ** q, 0.0) / radius
        gy = np.where(q > 0, q * u ** p * v ** np.maximum(q - 1, 0), 0.0) / radius

        n_valid = rows.size
        matrix = np.zeros((2 * n_valid, cfg.n_segments * cfg.n_modes))
        mode_cols = seg[:, None] * cfg.n_modes + np.arange(cfg.n_modes)[None, :]
        lenslet_rows = np.arange(n_valid)[:, None]
        matrix[lenslet_rows, mode_cols] = gx
        matrix[n_valid + lenslet_rows, mode_cols] = gy
        return matrix

    @property
    def calibrated_modes(self) -> np.ndarray:
        """Command indices of the sensed modes (every mode but piston)."""
        n_modes = self.config.n_modes
        return np.array([
            segment * n_modes + k
            for segment in range(self.config.n_segments)
            for k in range(1, n_modes)
        ])

    @property
    def signature(self) -> str:
        """Key identifying the sensor geometry, used to cache calibrations."""
        cfg = self.config
        return (
            f"s{cfg.n_segments}_m{cfg.n_modes}_l{cfg.n_lenslet}x{cfg.n_px_lenslet}"
            f"_p{cfg.lenslet_size:.4f}_f{cfg.flux_threshold:.2f}"
            f"_g{cfg.guide_star_count}_{cfg.guide_star_shift:.3f}"
        )

    # ───────────────────────────────────────────────────────────────
    # Sensing
    # ───────────────────────────────────────────────────────────────

    def measure(self, residual: np.ndarray) -> np.ndarray:
        """Noise-free slopes of a modal residual, in [x_1..x_k, y_1..y_k] layout."""
        n = self.n_valid
        xs = [d[:n] @ residual for d in self.interaction]
        ys = [d[n:] @ residual for d in self.interaction]
        return np.concatenate(xs + ys)

    def sense(self, command: np.ndarray) -> np.ndarray:
        """Calibration hook: sensor response to a mirror shape, atmosphere excluded."""
        command = np.asarray(command, dtype=np.float64)
        if command.size != self.n_command:
            raise ValueError(f"expected {self.n_command} command values, got {command.size}")
        return self.measure(command)

    def wfe_rms(self) -> float:
        """Residual wavefront error rms, averaged over segments."""
        return float(np.sqrt(np.sum(self.residual ** 2) / self.config.n_segments))

    def segment_piston(self) -> np.ndarray:
        return self.residual.reshape(self.config.n_segments, self.config.n_modes)[:, 0].copy()

    def detector_frame(self) -> np.ndarray:
        """
        Detector image of the first guide star.

        Each valid lenslet shows a Gaussian spot, shifted by its slopes and
        weighted by its lit fraction.
        """
        cfg = self.config
        n, m = cfg.n_lenslet, cfg.n_px_lenslet
        half = self.n_valid * cfg.guide_star_count
        slope_per_px = WAVELENGTH / (2 * cfg.lenslet_size)

        shift_x = np.clip(self.sensor[: self.n_valid] / slope_per_px, -m / 2, m / 2)
        shift_y = np.clip(self.sensor[half: half + self.n_valid] / slope_per_px, -m / 2, m / 2)

        u = np.arange(m) - (m - 1) / 2
        gx = np.exp(-((u[None, :] - shift_x[:, None]) ** 2) / (2 * SPOT_SIGMA ** 2))
        gy = np.exp(-((u[None, :] - shift_y[:, None]) ** 2) / (2 * SPOT_SIGMA ** 2))
        spots = gy[:, :, None] * gx[:, None, :]
        rows, cols = np.nonzero(self.valid)
        spots *= (self.flux[rows, cols] / spots.sum(axis=(1, 2)))[:, None, None]

        frame = np.zeros((n, n, m, m))
        frame[rows, cols] = spots
        return frame.transpose(0, 2, 1, 3).reshape(n * m, n * m)

    # ───────────────────────────────────────────────────────────────
    # Actor contract
    # ───────────────────────────────────────────────────────────────

    def update(self) -> None:
        command = self.take(M2_MODES)
        if command is not None:
            self.command = np.array(command, dtype=np.float64)

        if self.atmosphere is not None:
            turbulence = self.atmosphere.step()
        else:
            turbulence = 0.0
        self.residual = turbulence + self.command

        self.sensor = self.measure(self.residual)
        if self.config.sensor_mode == "diffractive" and self.config.noise_rms > 0:
            noise = self._rng.standard_normal(self.n_measurements)
            self.sensor = self.sensor + self.config.noise_rms * noise

    def write(self, tag: str) -> np.ndarray | None:
        if tag == WFE_RMS:
            return np.array([self.wfe_rms()])
        if tag == SEGMENT_PISTON:
            return self.segment_piston()
        if tag == SENSOR_DATA:
            return self.sensor
        if tag == DETECTOR_FRAME:
            return self.detector_frame()
        return None
