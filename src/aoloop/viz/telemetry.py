"""
Telemetry plots.

Time series come straight from a Logger: values are plotted against the
tick at which they were written, optionally converted to seconds.
"""

from __future__ import annotations
from typing import TYPE_CHECKING

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure

from aoloop.signals import SEGMENT_PISTON, WFE_RMS
from aoloop.viz.flowchart import save_figure

if TYPE_CHECKING:
    from aoloop.telemetry.logger import Logger

CMAP_FRAME = "inferno"

__all__ = [
    "plot_wfe_history",
    "plot_segment_piston",
    "plot_detector_frame",
    "save_figure",
]


def _time_axis(logger: "Logger", tag: str, time_step: float | None) -> tuple[np.ndarray, str]:
    ticks = logger.ticks(tag)
    if time_step is None:
        return ticks, "Tick"
    return ticks * time_step, "Time [s]"


def plot_wfe_history(
    logger: "Logger",
    time_step: float | None = None,
    label: str | None = None,
    title: str = "Wavefront error",
    ax: Axes | None = None,
    figsize: tuple[float, float] = (8, 4),
    log_scale: bool = True,
) -> tuple[Figure, Axes]:
    """
    Plot the WfeRms series recorded by `logger`, in nanometres.

    Args:
        logger: Logger subscribed to WfeRms
        time_step: Seconds per tick; plot against ticks if None
        label: Legend label (several loggers can share one axes)
        title: Plot title
        ax: Existing axes (creates new if None)
        log_scale: Logarithmic y axis

    Returns:
        (fig, ax) tuple
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    t, xlabel = _time_axis(logger, WFE_RMS, time_step)
    wfe_nm = logger.get(WFE_RMS).ravel() * 1e9
    ax.plot(t, wfe_nm, linewidth=1.5, label=label)

    if log_scale:
        ax.set_yscale("log")
    ax.set_xlabel(xlabel)
    ax.set_ylabel("WFE rms [nm]")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    if label is not None:
        ax.legend()
    return fig, ax


def plot_segment_piston(
    logger: "Logger",
    time_step: float | None = None,
    title: str = "Segment piston",
    ax: Axes | None = None,
    figsize: tuple[float, float] = (8, 4),
) -> tuple[Figure, Axes]:
    """Plot the piston of every segment, in nanometres."""
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    t, xlabel = _time_axis(logger, SEGMENT_PISTON, time_step)
    piston_nm = logger.get(SEGMENT_PISTON) * 1e9
    for segment in range(piston_nm.shape[1]):
        ax.plot(t, piston_nm[:, segment], linewidth=1.0, label=f"S{segment + 1}")

    ax.set_xlabel(xlabel)
    ax.set_ylabel("Piston [nm]")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)
    ax.legend(ncol=4, fontsize=8)
    return fig, ax


def plot_detector_frame(
    frame: np.ndarray,
    title: str = "Detector frame",
    cmap=CMAP_FRAME,
    ax: Axes | None = None,
    figsize: tuple[float, float] = (6, 6),
    colorbar: bool = True,
) -> tuple[Figure, Axes]:
    """
    Show a detector frame. Flat frames are reshaped to a square.
    """
    frame = np.asarray(frame)
    if frame.ndim == 1:
        side = int(round(np.sqrt(frame.size)))
        frame = frame.reshape(side, side)

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    im = ax.imshow(frame, origin="lower", cmap=cmap, aspect="equal")
    if colorbar:
        plt.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
    ax.set_title(title)
    ax.set_xticks([])
    ax.set_yticks([])
    return fig, ax
