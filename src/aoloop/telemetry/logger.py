"""
Logger: a zero-output consumer recording what it reads.

Inputs are created on demand when a channel is connected, so one logger
can subscribe to any number of tags (one producer per tag). The input
period decimates the log: a logger reading every 10 ticks records every
10th value of a per-tick channel.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any

import numpy as np

from aoloop.core.actor import Actor, Rate


class Logger(Actor):
    """In-memory telemetry sink."""

    def __init__(self, name: str = "logs", rate: Rate | None = None):
        super().__init__(name, rate=rate)
        self._records: dict[str, list[tuple[int, Any]]] = {}

    def accepts(self, tag: str) -> bool:
        if tag not in self.inputs:
            # Optional: a slow channel must not hold back the others
            self.add_input(tag, optional=True)
            self._records[tag] = []
        return True

    def update(self) -> None:
        for tag in self.inputs:
            if self.is_fresh(tag):
                payload = self._latest[tag]
                self._records[tag].append((payload.tick, payload.data))

    def write(self, tag: str) -> None:
        return None

    @property
    def tags(self) -> list[str]:
        return list(self._records)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._records.values())

    def get(self, tag: str) -> np.ndarray:
        """
        Recorded values of `tag`, stacked along a leading time axis.

        Raises:
            KeyError: the logger is not subscribed to `tag`
        """
        entries = self._records[tag]
        if not entries:
            return np.empty((0,))
        return np.stack([np.asarray(data) for _, data in entries])

    def ticks(self, tag: str) -> np.ndarray:
        """Tick at which each recorded value was written."""
        return np.array([tick for tick, _ in self._records[tag]], dtype=np.int64)

    def save(self, path: str | Path) -> None:
        """Dump every tag (values and ticks) to an .npz file."""
        arrays = {}
        for tag in self._records:
            arrays[tag] = self.get(tag)
            arrays[f"{tag}_ticks"] = self.ticks(tag)
        np.savez(path, **arrays)
