"""
Actor contract for the dataflow engine.

Actors are stateful units scheduled by a Model. Each cycle an actor that is
due:
1. reads the fresh payloads of its inputs (pending-input buffer)
2. updates its private state from that state and its latest inputs
3. writes its outputs, or None when it has nothing to publish

Rates are integer multiples of the base tick. Inputs are read on ticks
where tick % input_period == 0, outputs written where
tick % output_period == 0.

IMPORTANT: actor state is private. The engine only talks to an actor
through read / update / write / seed, and payloads are immutable.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import numpy as np

from aoloop.core.channel import Payload, Port
from aoloop.core.errors import ChannelError, PayloadTypeError


@dataclass(frozen=True)
class Rate:
    """Read and write periods of an actor, in base ticks."""

    input_period: int = 1
    output_period: int = 1

    def is_valid(self) -> bool:
        """Both periods are positive integers."""
        return all(
            isinstance(p, (int, np.integer)) and not isinstance(p, bool) and p > 0
            for p in (self.input_period, self.output_period)
        )

    def is_due_to_read(self, tick: int) -> bool:
        return tick % self.input_period == 0

    def is_due_to_write(self, tick: int) -> bool:
        return tick % self.output_period == 0


class Actor(ABC):
    """
    Base class for everything a Model schedules.

    Subclasses declare their ports in __init__ with add_input / add_output
    and implement update() and write(). A bootstrapped actor publishes
    seed() on its first due-to-write tick, before any input has been read;
    this is what makes a feedback cycle schedulable.
    """

    def __init__(self, name: str, rate: Rate | None = None, bootstrap: bool = False):
        self.name = name
        self.rate = rate if rate is not None else Rate()
        self.bootstrap = bootstrap

        self.inputs: dict[str, Port] = {}
        self.outputs: dict[str, Port] = {}

        # Last payload received per input, and inputs read this cycle
        self._latest: dict[str, Payload] = {}
        self._fresh: set[str] = set()

        # Tick being processed, set by the engine before each step
        self.tick: int = -1
        self.updates: int = 0

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    # ───────────────────────────────────────────────────────────────
    # Ports
    # ───────────────────────────────────────────────────────────────

    def add_input(self, tag: str, size: int | None = None, optional: bool = False) -> Port:
        port = Port(tag, size, optional)
        self.inputs[tag] = port
        return port

    def add_output(self, tag: str, size: int | None = None) -> Port:
        port = Port(tag, size)
        self.outputs[tag] = port
        return port

    def accepts(self, tag: str) -> bool:
        """Whether a channel carrying `tag` can be connected to this actor."""
        return tag in self.inputs

    # ───────────────────────────────────────────────────────────────
    # Scheduling
    # ───────────────────────────────────────────────────────────────

    def is_due_to_read(self, tick: int) -> bool:
        return self.rate.is_due_to_read(tick)

    def is_due_to_write(self, tick: int) -> bool:
        return self.rate.is_due_to_write(tick)

    @property
    def primed(self) -> bool:
        """True once every required input has delivered at least one payload."""
        return all(
            tag in self._latest
            for tag, port in self.inputs.items()
            if not port.optional
        )

    # ───────────────────────────────────────────────────────────────
    # Inputs
    # ───────────────────────────────────────────────────────────────

    def read(self, tag: str, payload: Payload):
        """
        Store a payload in the pending-input buffer.

        Raises:
            PayloadTypeError: no such input, or tag/size mismatch
            ChannelError: the input was already read this cycle
        """
        port = self.inputs.get(tag)
        if port is None:
            raise PayloadTypeError(f"{self.name!r} has no input {tag!r}")
        if payload.tag != port.tag:
            raise PayloadTypeError(
                f"{self.name!r} input {tag!r} got payload {payload.tag!r}"
            )
        if port.size is not None and payload.size is not None and payload.size != port.size:
            raise PayloadTypeError(
                f"{self.name!r} input {tag!r} expects {port.size} values, got {payload.size}"
            )
        if tag in self._fresh:
            raise ChannelError(f"{self.name!r} input {tag!r} read twice before update")

        self._latest[tag] = payload
        self._fresh.add(tag)
        self.on_read(tag, payload)

    def on_read(self, tag: str, payload: Payload) -> None:
        """Hook called after a payload is stored. Default: nothing."""

    def end_cycle(self):
        """Mark this cycle's inputs as consumed (called after update)."""
        self._fresh.clear()

    def is_fresh(self, tag: str) -> bool:
        """Whether `tag` was read during the current cycle."""
        return tag in self._fresh

    def latest(self, tag: str) -> Any:
        """Data of the last payload received on `tag`, or None."""
        payload = self._latest.get(tag)
        return None if payload is None else payload.data

    def take(self, tag: str) -> Any:
        """Data read on `tag` this cycle, or None if nothing new arrived."""
        if tag not in self._fresh:
            return None
        return self._latest[tag].data

    # ───────────────────────────────────────────────────────────────
    # Behaviour
    # ───────────────────────────────────────────────────────────────

    @abstractmethod
    def update(self) -> None:
        """Recompute private state from current state and latest inputs."""
        ...

    @abstractmethod
    def write(self, tag: str) -> Any:
        """
        Output for `tag` this cycle.

        Returns:
            The value to publish, or None to publish nothing
        """
        ...

    def seed(self, tag: str) -> Any:
        """Bootstrap output, published before any input has been read."""
        return self.write(tag)


class Identity(Actor):
    """
    Pass-through actor: writes the last value it read.

    Useful to build chains, to re-tag a channel, or as a bootstrapped hold
    stage that breaks a cycle with a known seed.
    """

    def __init__(
        self,
        name: str,
        tag: str,
        out_tag: str | None = None,
        size: int | None = None,
        rate: Rate | None = None,
        bootstrap: bool = False,
        seed_value: Any = None,
    ):
        super().__init__(name, rate=rate, bootstrap=bootstrap)
        self.in_tag = tag
        self.out_tag = out_tag or tag
        self.add_input(self.in_tag, size)
        self.add_output(self.out_tag, size)
        self.seed_value = seed_value
        self.value: Any = None

    def update(self) -> None:
        self.value = self.latest(self.in_tag)

    def write(self, tag: str) -> Any:
        return self.value

    def seed(self, tag: str) -> Any:
        if self.seed_value is not None:
            return self.seed_value
        size = self.outputs[self.out_tag].size
        return np.zeros(size) if size is not None else 0.0
