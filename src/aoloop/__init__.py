"""
aoloop: multi-rate dataflow engine for adaptive-optics closed loops

A simulator expressing a telescope control loop as a graph of actors
connected by typed channels and driven by a shared discrete clock.

Core concepts:
- Actors read, update and write at their own rates (multiples of the tick)
- Channels carry immutable payloads with last-value semantics
- Feedback loops are made schedulable by bootstrapping one actor per cycle
- A reconstructor maps sensor slopes to mirror modes, an integrator
  accumulates them into the command sent back to the optics
"""

__version__ = "0.1.0"
