"""
Experiment harness: declarative assembly of standard scenarios.

One configuration structure drives every topology:
- Closed loop: timer -> optics -> reconstructor -> integrator -> optics
- Open loop: on-axis and AO optical models side by side, logged only
"""

from aoloop.experiments.config import ExperimentConfig
from aoloop.experiments.scenarios import (
    ClosedLoop,
    ExperimentResult,
    OpenLoop,
    build_closed_loop,
    build_open_loop,
    run_experiment,
)

__all__ = [
    "ExperimentConfig",
    "ClosedLoop",
    "OpenLoop",
    "ExperimentResult",
    "build_closed_loop",
    "build_open_loop",
    "run_experiment",
]
