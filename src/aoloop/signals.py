"""
Channel type tags shared by the engine and its collaborators.

A tag names what a channel carries. Ports declare tags, and two ports can
only be connected when their tags agree.
"""

TICK = "Tick"

# Optical model outputs
WFE_RMS = "WfeRms"
SEGMENT_PISTON = "SegmentPiston"
SENSOR_DATA = "SensorData"
DETECTOR_FRAME = "DetectorFrame"

# Control path
MODAL_INCREMENT = "M2ModesIncrement"  # reconstructor -> integrator
M2_MODES = "M2Modes"  # integrator -> optical model
