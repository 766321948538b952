"""
Telemetry: terminal actors recording channel payloads.

- Logger: accepts any tag, keeps (tick, data) per tag in memory,
  optionally dumps everything to an .npz file
"""

from aoloop.telemetry.logger import Logger

__all__ = ["Logger"]
