"""
Plant collaborators: the physical side of the loop.

These sit outside the engine and talk to it only through the Actor
contract (OpticalModel) or before the graph is built (calibration).

- OpticalModel: segmented telescope, atmosphere and Shack-Hartmann sensor
- Atmosphere: AR(1) modal turbulence
- calibrate / load_or_calibrate: poke matrices -> reconstruction operators
"""

from aoloop.plant.atmosphere import Atmosphere, AtmosphereConfig
from aoloop.plant.optical_model import (
    OpticalModel,
    OpticalModelConfig,
    mode_exponents,
    segment_centers,
)
from aoloop.plant.calibration import (
    Calibration,
    calibrate,
    condition_number,
    load_or_calibrate,
)

__all__ = [
    "Atmosphere",
    "AtmosphereConfig",
    "OpticalModel",
    "OpticalModelConfig",
    "mode_exponents",
    "segment_centers",
    "Calibration",
    "calibrate",
    "condition_number",
    "load_or_calibrate",
]
