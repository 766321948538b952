"""
Scenario builders.

Each builder turns an ExperimentConfig into a checked Model plus handles
on the actors a caller may want to inspect afterwards. Calibration happens
here, before the graph is assembled, and its operators are handed to the
Reconstructor as immutable inputs.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

import numpy as np

from aoloop.control import Integrator, Reconstructor
from aoloop.core import Model, Rate, RunReport, Timer
from aoloop.experiments.config import ExperimentConfig
from aoloop.plant import Calibration, OpticalModel, load_or_calibrate
from aoloop.signals import (
    DETECTOR_FRAME,
    M2_MODES,
    MODAL_INCREMENT,
    SEGMENT_PISTON,
    SENSOR_DATA,
    TICK,
    WFE_RMS,
)
from aoloop.telemetry import Logger

logger = logging.getLogger(__name__)


@dataclass
class ClosedLoop:
    """Handles on a closed-loop model."""

    model: Model
    timer: Timer
    optics: OpticalModel
    reconstructor: Reconstructor
    integrator: Integrator
    logs: Logger
    frames: Logger | None
    calibration: Calibration

    @property
    def loggers(self) -> list[Logger]:
        return [log for log in (self.logs, self.frames) if log is not None]


@dataclass
class OpenLoop:
    """Handles on an open-loop model: two optical models, no control."""

    model: Model
    timer: Timer
    on_axis: OpticalModel
    adaptive_optics: OpticalModel
    logs: Logger
    ao_logs: Logger
    frames: Logger | None
    calibration: Calibration

    @property
    def loggers(self) -> list[Logger]:
        return [log for log in (self.logs, self.ao_logs, self.frames) if log is not None]


@dataclass
class ExperimentResult:
    """Outcome of run_experiment()."""

    config: ExperimentConfig
    report: RunReport
    telemetry: dict[str, np.ndarray]  # "<logger>/<tag>" -> stacked values
    calibration: Calibration

    def summary(self) -> dict:
        """Scalar statistics of the run."""
        stats = {
            "status": self.report.status.value,
            "n_ticks": self.report.ticks_completed,
            "condition_numbers": list(self.calibration.condition_numbers),
        }
        wfe = self.telemetry.get(f"logs/{WFE_RMS}")
        if wfe is not None and wfe.size:
            wfe = wfe.ravel()
            stats["initial_wfe"] = float(wfe[0])
            stats["final_wfe"] = float(wfe[-1])
            stats["mean_wfe_second_half"] = float(wfe[wfe.size // 2:].mean())
        return stats


def build_closed_loop(config: ExperimentConfig) -> ClosedLoop:
    """
    Closed AO loop.

        timer --Tick--> optics --SensorData--> reconstructor
              --M2ModesIncrement--> integrator --M2Modes--> optics

    The integrator is bootstrapped, which breaks the cycle. The
    reconstructor runs every sensor_period ticks, the rest every tick.
    """
    timer = Timer(config.n_ticks)
    optics = OpticalModel(config.optical_config(), name="optics")
    calibration = load_or_calibrate(optics, cache_dir=config.cache_dir)

    period = config.sensor_period
    reconstructor = Reconstructor(
        calibration.operators,
        n_segments=optics.config.n_segments,
        rate=Rate(period, period),
    )
    integrator = Integrator(optics.n_command, gain=config.loop_gain)
    logs = Logger("logs")

    model = Model("closed-loop", nonfinite=config.nonfinite)
    model.connect(timer, TICK, optics)
    model.connect(optics, SENSOR_DATA, reconstructor)
    model.connect(reconstructor, MODAL_INCREMENT, integrator)
    model.connect(integrator, M2_MODES, optics, logs)
    model.connect(optics, WFE_RMS, logs)
    model.connect(optics, SEGMENT_PISTON, logs)

    frames = None
    if config.sensor_mode == "diffractive":
        frames = Logger("frames", rate=Rate(input_period=config.frame_period))
        model.connect(optics, DETECTOR_FRAME, frames)

    model.check()
    return ClosedLoop(
        model=model,
        timer=timer,
        optics=optics,
        reconstructor=reconstructor,
        integrator=integrator,
        logs=logs,
        frames=frames,
        calibration=calibration,
    )


def build_open_loop(config: ExperimentConfig) -> OpenLoop:
    """
    Open-loop comparison of an on-axis diffractive model and an AO model.

    The timer is multiplexed to both optical models, which see the same
    turbulence. The AO model is calibrated so its conditioning is
    reported, but nothing is fed back.
    """
    timer = Timer(config.n_ticks)
    on_axis = OpticalModel(
        config.optical_config(sensor_mode="diffractive", flux_threshold=0.0, guide_star_count=1),
        name="on-axis",
    )
    adaptive_optics = OpticalModel(config.optical_config(), name="adaptive-optics")
    calibration = load_or_calibrate(adaptive_optics, cache_dir=config.cache_dir)

    logs = Logger("logs")
    ao_logs = Logger("ao-logs")
    frames = Logger("frames", rate=Rate(input_period=config.frame_period))

    model = Model("open-loop", nonfinite=config.nonfinite)
    model.connect(timer, TICK, on_axis, adaptive_optics)
    model.connect(on_axis, WFE_RMS, logs)
    model.connect(on_axis, SEGMENT_PISTON, logs)
    model.connect(on_axis, DETECTOR_FRAME, frames)
    model.connect(adaptive_optics, WFE_RMS, ao_logs)

    model.check()
    return OpenLoop(
        model=model,
        timer=timer,
        on_axis=on_axis,
        adaptive_optics=adaptive_optics,
        logs=logs,
        ao_logs=ao_logs,
        frames=frames,
        calibration=calibration,
    )


def run_experiment(config: ExperimentConfig) -> ExperimentResult:
    """Build the scenario described by `config`, run it and collect telemetry."""
    scenario = build_closed_loop(config) if config.closed_loop else build_open_loop(config)
    report = scenario.model.run().wait()

    telemetry = {
        f"{log.name}/{tag}": log.get(tag)
        for log in scenario.loggers
        for tag in log.tags
    }
    logger.info("%s: %s, %d ticks", scenario.model.name, report.status.value, report.ticks_completed)
    return ExperimentResult(
        config=config,
        report=report,
        telemetry=telemetry,
        calibration=scenario.calibration,
    )
