"""
Control law actors.

- Reconstructor: sensor measurements -> modal increments (linear operator)
- Integrator: modal increments -> absolute mirror command (y += g * delta)
"""

from aoloop.control.reconstructor import Reconstructor, split_layout
from aoloop.control.integrator import Integrator

__all__ = [
    "Reconstructor",
    "split_layout",
    "Integrator",
]
