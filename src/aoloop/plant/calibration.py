"""
Calibration: poke matrices and reconstruction operators.

For every guide star, each sensed mode is pushed by +stroke and -stroke on
the mirror and the sensor response is recorded. The central difference,
divided by the stroke, is one column of that guide star's poke matrix P_i.

The operators consumed by the Reconstructor are

    M_i = -pinv(P_i) / k

The sign makes the integrator's positive gain drive the residual to zero,
the 1/k averages the k guide star estimates.

Calibrations are expensive and only depend on the sensor geometry, so
load_or_calibrate() keeps them in a read-through .npz cache keyed by the
optical model's signature.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from scipy import linalg

from aoloop.control.reconstructor import split_layout
from aoloop.plant.optical_model import OpticalModel

logger = logging.getLogger(__name__)


@dataclass
class Calibration:
    """Result of a calibration, immutable for the duration of a run."""

    poke_matrices: list[np.ndarray]
    operators: list[np.ndarray]
    condition_numbers: list[float]
    signature: str
    stroke: float = 1e-6

    def save(self, path: str | Path) -> None:
        """Write the calibration to an .npz file."""
        arrays = {}
        for i, (poke, operator) in enumerate(zip(self.poke_matrices, self.operators)):
            arrays[f"poke_{i}"] = poke
            arrays[f"operator_{i}"] = operator
        np.savez(
            path,
            condition_numbers=np.array(self.condition_numbers),
            signature=np.array(self.signature),
            stroke=np.array(self.stroke),
            **arrays,
        )

    @classmethod
    def load(cls, path: str | Path) -> Calibration:
        with np.load(path) as data:
            n = len(data["condition_numbers"])
            return cls(
                poke_matrices=[data[f"poke_{i}"] for i in range(n)],
                operators=[data[f"operator_{i}"] for i in range(n)],
                condition_numbers=[float(c) for c in data["condition_numbers"]],
                signature=str(data["signature"]),
                stroke=float(data["stroke"]),
            )


def condition_number(matrix: np.ndarray) -> float:
    """Ratio of the largest to the smallest singular value."""
    singular_values = linalg.svdvals(matrix)
    if singular_values[-1] == 0:
        return float("inf")
    return float(singular_values[0] / singular_values[-1])


def calibrate(model: OpticalModel, stroke: float = 1e-6) -> Calibration:
    """
    Build poke matrices and operators for every guide star of `model`.

    Args:
        model: Optical model to poke (its atmosphere is not involved)
        stroke: Mode amplitude of each poke [m]

    Returns:
        Calibration with one poke matrix and one operator per guide star
    """
    if stroke <= 0:
        raise ValueError(f"stroke must be positive, got {stroke}")

    k = model.config.guide_star_count
    layout = split_layout([2 * model.n_valid] * k)
    modes = model.calibrated_modes

    columns = []
    for mode in modes:
        push = np.zeros(model.n_command)
        push[mode] = stroke
        columns.append((model.sense(push) - model.sense(-push)) / (2 * stroke))
    response = np.column_stack(columns)

    poke_matrices = []
    operators = []
    condition_numbers = []
    for i, idx in enumerate(layout):
        poke = response[idx]
        cond = condition_number(poke)
        logger.info(
            "guide star %d: poke matrix %s, condition number %.3g", i, poke.shape, cond
        )
        poke_matrices.append(poke)
        operators.append(-linalg.pinv(poke) / k)
        condition_numbers.append(cond)

    return Calibration(
        poke_matrices=poke_matrices,
        operators=operators,
        condition_numbers=condition_numbers,
        signature=model.signature,
        stroke=stroke,
    )


def cache_path(model: OpticalModel, cache_dir: str | Path) -> Path:
    return Path(cache_dir) / f"calibration_{model.signature}.npz"


def load_or_calibrate(
    model: OpticalModel,
    cache_dir: str | Path | None = None,
    stroke: float = 1e-6,
) -> Calibration:
    """
    Calibration for `model`, from the cache when available.

    Args:
        model: Optical model to calibrate
        cache_dir: Cache directory; None disables caching
        stroke: Poke amplitude used on a cache miss
    """
    if cache_dir is None:
        return calibrate(model, stroke=stroke)

    path = cache_path(model, cache_dir)
    if path.exists():
        calibration = Calibration.load(path)
        if calibration.signature == model.signature:
            logger.info("loaded calibration from %s", path)
            return calibration
        logger.warning("stale calibration in %s, recomputing", path)

    calibration = calibrate(model, stroke=stroke)
    path.parent.mkdir(parents=True, exist_ok=True)
    calibration.save(path)
    logger.info("saved calibration to %s", path)
    return calibration
