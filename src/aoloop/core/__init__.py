"""
Core engine primitives.

This layer knows NOTHING about telescopes, wavefronts or mirrors.
It only knows:
- Actors with private state, typed ports and read/write rates
- Channels carrying immutable payloads (last value, optionally buffered)
- A clock producing ticks, and a Timer fanning them out
- A Model that validates the graph (inputs, writers, rates, bootstrapped
  cycles) and runs it tick by tick in topological order
"""

from aoloop.core.actor import Actor, Identity, Rate
from aoloop.core.channel import Channel, Payload, Port
from aoloop.core.clock import Clock, Timer
from aoloop.core.errors import (
    ActorError,
    ChannelError,
    DanglingInputError,
    DuplicateActorError,
    DuplicateWriterError,
    GraphError,
    InvalidRateError,
    ModelError,
    NonFiniteError,
    PayloadTypeError,
    RunError,
    TypeMismatchError,
    UnbootstrappedCycleError,
)
from aoloop.core.model import Model, RunReport, RunStatus

__all__ = [
    "Actor",
    "Identity",
    "Rate",
    "Channel",
    "Payload",
    "Port",
    "Clock",
    "Timer",
    "Model",
    "RunReport",
    "RunStatus",
    "ModelError",
    "GraphError",
    "DuplicateActorError",
    "TypeMismatchError",
    "DuplicateWriterError",
    "DanglingInputError",
    "UnbootstrappedCycleError",
    "InvalidRateError",
    "ChannelError",
    "PayloadTypeError",
    "RunError",
    "ActorError",
    "NonFiniteError",
]
