"""
Channels and payloads for the dataflow engine.

A channel is the only shared mutable resource in a model: a one-slot
conduit written by exactly one producer and read by one or more consumers.
The slot holds the most recent payload (last-value semantics). Consumers
never mutate what they read; payload arrays are frozen on construction.

Rate conversion lives here as well:
- A consumer slower than the producer fetches the latest value and skips
  the intermediate ones (the value is held, not interpolated)
- A consumer faster than the producer gets nothing new on the ticks in
  between and keeps the payload it already has
- A buffered channel hands a slow consumer the whole history written
  since its previous fetch, stacked along a new leading axis
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

import numpy as np

from aoloop.core.errors import ChannelError, PayloadTypeError


@dataclass(frozen=True)
class Port:
    """An actor input or output: the tag it carries and its vector length."""

    tag: str
    size: int | None = None  # None = unknown / not checked
    optional: bool = False  # Inputs only: the actor runs without it


@dataclass(frozen=True)
class Payload:
    """
    One value written on a channel.

    The data array is copied and made read-only, so the same object can be
    handed to every consumer of a multiplexed channel.
    """

    tag: str
    tick: int  # Tick on which the producer wrote it
    data: Any
    producer: str = ""

    def __post_init__(self):
        data = self.data
        if isinstance(data, (list, tuple)):
            data = np.asarray(data, dtype=np.float64)
        if isinstance(data, np.ndarray):
            frozen = data.copy()
            frozen.flags.writeable = False
            object.__setattr__(self, "data", frozen)

    @property
    def size(self) -> int | None:
        """Number of elements in the payload (None for scalars)."""
        if isinstance(self.data, np.ndarray):
            return int(self.data.size)
        return None

    def is_finite(self) -> bool:
        """False if the payload holds a NaN or an infinity."""
        if isinstance(self.data, np.ndarray):
            if not np.issubdtype(self.data.dtype, np.number):
                return True
            return bool(np.all(np.isfinite(self.data)))
        if isinstance(self.data, float):
            return bool(np.isfinite(self.data))
        return True


@dataclass
class Channel:
    """
    Single-producer, multi-consumer conduit for one payload type.

    Structure:
    - latest: the one-slot buffer, overwritten by every write
    - delivered: per consumer, tick of the last payload it received
    - history: buffered channels only, payloads not yet fetched by every consumer
    """

    producer: str
    tag: str
    size: int | None = None
    buffered: bool = False

    consumers: list[str] = field(default_factory=list, init=False)
    latest: Payload | None = field(default=None, init=False)
    writes: int = field(default=0, init=False)
    _delivered: dict[str, int] = field(default_factory=dict, init=False)
    _history: list[Payload] = field(default_factory=list, init=False)

    @property
    def channel_id(self) -> str:
        return f"{self.producer}/{self.tag}"

    def add_consumer(self, consumer: str):
        """Fan the channel out to one more consumer (multiplexing)."""
        if consumer in self.consumers:
            raise ChannelError(f"{consumer!r} is already connected to {self.channel_id}")
        self.consumers.append(consumer)
        self._delivered[consumer] = -1

    def publish(self, payload: Payload):
        """
        Overwrite the slot with a new payload.

        Raises:
            PayloadTypeError: tag or size differs from the channel's
            ChannelError: the channel was already written this tick
        """
        if payload.tag != self.tag:
            raise PayloadTypeError(
                f"{self.channel_id} carries {self.tag!r}, got {payload.tag!r}"
            )
        if self.size is not None and payload.size is not None and payload.size != self.size:
            raise PayloadTypeError(
                f"{self.channel_id} expects {self.size} values, got {payload.size}"
            )
        if self.latest is not None and payload.tick <= self.latest.tick:
            raise ChannelError(
                f"{self.channel_id} already written at tick {self.latest.tick}"
            )

        self.latest = payload
        self.writes += 1
        if self.buffered:
            self._history.append(payload)

    def fetch(self, consumer: str) -> Payload | None:
        """
        Payload to deliver to a consumer, or None if it has nothing new.

        Every consumer of an unbuffered channel receives the same object.
        """
        last = self._delivered[consumer]
        if self.latest is None or self.latest.tick <= last:
            return None
        self._delivered[consumer] = self.latest.tick

        if not self.buffered:
            return self.latest

        fresh = [p for p in self._history if p.tick > last]
        self._prune_history()
        return Payload(
            tag=self.tag,
            tick=self.latest.tick,
            data=np.stack([np.asarray(p.data) for p in fresh]),
            producer=self.producer,
        )

    def _prune_history(self):
        """Drop payloads every consumer has already fetched."""
        oldest = min(self._delivered.values(), default=-1)
        self._history = [p for p in self._history if p.tick > oldest]

    def pending(self, consumer: str) -> bool:
        """True if the consumer has a payload waiting."""
        return self.latest is not None and self.latest.tick > self._delivered[consumer]
