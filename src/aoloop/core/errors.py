"""
Exceptions raised by the engine.

Two families:
- GraphError: raised while assembling or checking a model. Fatal before
  the first tick, the model is never partially runnable.
- RunError: raised while ticking. Fatal to the run, there is no retry.
"""

from __future__ import annotations


class ModelError(Exception):
    """Base class for all engine errors."""


class GraphError(ModelError):
    """Invalid graph construction or failed validation."""


class DuplicateActorError(GraphError):
    """Two actors registered under the same name."""


class TypeMismatchError(GraphError):
    """Producer and consumer ports do not carry the same payload type."""


class DuplicateWriterError(GraphError):
    """An input (or channel) would be fed by more than one producer."""


class DanglingInputError(GraphError):
    """A required input has no producer."""


class UnbootstrappedCycleError(GraphError):
    """A feedback cycle contains no bootstrapped actor."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        path = " -> ".join(cycle + cycle[:1])
        super().__init__(f"cycle {path} has no bootstrapped actor")


class InvalidRateError(GraphError):
    """A rate period is not a positive integer."""


class ChannelError(ModelError):
    """Illegal channel operation (e.g. a second write in the same tick)."""


class PayloadTypeError(ChannelError):
    """Payload tag or size does not match the port it is delivered to."""


class RunError(ModelError):
    """Failure while the model is running."""

    # RunReport with status FAILED, set by the model when the run aborts
    report = None


class ActorError(RunError):
    """An actor raised during its read, update or write step."""

    def __init__(self, actor: str, tick: int, phase: str, cause: BaseException):
        self.actor = actor
        self.tick = tick
        self.phase = phase
        super().__init__(f"actor {actor!r} failed in {phase} at tick {tick}: {cause!r}")


class NonFiniteError(RunError):
    """A published payload contains NaN or infinity and the policy is 'halt'."""
