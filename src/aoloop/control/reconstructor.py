"""
Reconstructor: maps sensor measurements to segment mirror modes.

The measurement vector of k sensing sub-units (one per guide star) is laid
out axis by axis: the first half of every sub-unit (x slopes) comes first,
then the second half of every sub-unit (y slopes):

    [x_1, x_2, ..., x_k, y_1, y_2, ..., y_k]

Sub-unit i owns the slice concat(x_i, y_i) and one operator M_i. The modal
estimate is the sum of M_i @ slice_i. It is then laid out per segment with
a leading zero (the piston term, invisible to the sensor and excluded from
calibration) followed by that segment's coefficients.

Plain dense matrix-vector products, no iterative solve.
"""

from __future__ import annotations
from typing import Sequence

import numpy as np

from aoloop.core.actor import Actor, Rate
from aoloop.signals import MODAL_INCREMENT, SENSOR_DATA


def split_layout(sizes: Sequence[int]) -> list[np.ndarray]:
    """
    Index arrays selecting each sub-unit's measurements.

    Args:
        sizes: Measurement count of each sub-unit (each even)

    Returns:
        One index array per sub-unit: its x half followed by its y half
    """
    halves = [n // 2 for n in sizes]
    total_half = sum(halves)
    indices = []
    offset = 0
    for half in halves:
        x = np.arange(offset, offset + half)
        indices.append(np.concatenate([x, x + total_half]))
        offset += half
    return indices


class Reconstructor(Actor):
    """
    Linear reconstructor actor.

    The operators are built (or loaded) before the actor is created and
    never change during a run. Shape errors are raised here, at
    construction, and the input port is sized so that connecting it to a
    sensor with a different geometry fails in Model.connect().
    """

    def __init__(
        self,
        operators: np.ndarray | Sequence[np.ndarray],
        n_segments: int = 7,
        pad_segments: bool = True,
        input_tag: str = SENSOR_DATA,
        output_tag: str = MODAL_INCREMENT,
        name: str = "reconstructor",
        rate: Rate | None = None,
    ):
        super().__init__(name, rate=rate)

        if isinstance(operators, np.ndarray) and operators.ndim == 2:
            operators = [operators]
        self.operators = [np.asarray(op, dtype=np.float64) for op in operators]
        if not self.operators:
            raise ValueError("at least one reconstruction operator is required")
        for i, op in enumerate(self.operators):
            if op.ndim != 2:
                raise ValueError(f"operator {i} must be 2-D, got shape {op.shape}")

        n_out = self.operators[0].shape[0]
        if any(op.shape[0] != n_out for op in self.operators):
            shapes = [op.shape for op in self.operators]
            raise ValueError(f"operators disagree on output size: {shapes}")
        if pad_segments and n_out % n_segments != 0:
            raise ValueError(f"{n_out} modes cannot be split over {n_segments} segments")

        sizes = [op.shape[1] for op in self.operators]
        if len(sizes) > 1 and any(n % 2 for n in sizes):
            raise ValueError(f"sub-unit measurement counts must be even, got {sizes}")

        self.n_segments = n_segments
        self.pad_segments = pad_segments
        self.n_modes = n_out // n_segments if pad_segments else n_out
        self.n_measurements = sum(sizes)
        if len(self.operators) == 1:
            self._indices = [np.arange(self.n_measurements)]
        else:
            self._indices = split_layout(sizes)

        self.input_tag = input_tag
        self.output_tag = output_tag
        n_command = n_segments * (self.n_modes + 1) if pad_segments else n_out
        self.add_input(input_tag, size=self.n_measurements)
        self.add_output(output_tag, size=n_command)

        self.command = np.zeros(n_command)
        self._has_new = False

    @property
    def n_subunits(self) -> int:
        return len(self.operators)

    def estimate(self, measurements: np.ndarray) -> np.ndarray:
        """Modal estimate sum_i M_i @ slice_i, before segment padding."""
        s = np.asarray(measurements, dtype=np.float64).ravel()
        if s.size != self.n_measurements:
            raise ValueError(f"expected {self.n_measurements} measurements, got {s.size}")
        modes = np.zeros(self.operators[0].shape[0])
        for op, idx in zip(self.operators, self._indices):
            modes += op @ s[idx]
        return modes

    def pad(self, modes: np.ndarray) -> np.ndarray:
        """Prefix each segment's coefficients with a zero."""
        per_segment = modes.reshape(self.n_segments, self.n_modes)
        padded = np.hstack([np.zeros((self.n_segments, 1)), per_segment])
        return padded.ravel()

    def reconstruct(self, measurements: np.ndarray) -> np.ndarray:
        """Command-layout vector for one measurement vector."""
        modes = self.estimate(measurements)
        return self.pad(modes) if self.pad_segments else modes

    def update(self) -> None:
        measurements = self.take(self.input_tag)
        if measurements is None:
            return
        increment = self.reconstruct(measurements)
        # Unpublished increments add up until the next write tick
        self.command = self.command + increment if self._has_new else increment
        self._has_new = True

    def write(self, tag: str) -> np.ndarray | None:
        # Increments are published once; a held increment would be integrated twice
        if not self._has_new:
            return None
        self._has_new = False
        return self.command
