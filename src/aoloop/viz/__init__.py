"""
Visualization utilities.

- Flowchart of a model's actor graph
- Telemetry time series (wavefront error, segment piston, commands)
- Detector frames
"""

from aoloop.viz.flowchart import plot_flowchart
from aoloop.viz.telemetry import (
    plot_detector_frame,
    plot_segment_piston,
    plot_wfe_history,
    save_figure,
)

__all__ = [
    "plot_flowchart",
    "plot_wfe_history",
    "plot_segment_piston",
    "plot_detector_frame",
    "save_figure",
]
