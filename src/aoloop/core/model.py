"""
Model: graph assembly, validation and tick-synchronous scheduling.

Lifecycle:
1. add actors and connect channels (construction errors raise immediately)
2. check(): validate rates, inputs, writers and feedback cycles, then
   freeze the graph and compute the schedule
3. run(): drive the clock in a background worker
4. wait(): block until the run completes, is cancelled or fails

Scheduling rule: within a tick, actors are visited in topological order of
the actor graph with bootstrap-broken edges removed. An edge u -> b is
broken when b is bootstrapped and u is reachable from b, i.e. the edge
closes a feedback cycle through b. A bootstrapped actor therefore reads
its feedback inputs as they stood at the end of the previous tick, and on
its first write publishes its seed. Every other edge delivers within the
tick: writes happen-before the reads that depend on them.
"""

from __future__ import annotations
import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum

import networkx as nx

from aoloop.core.actor import Actor
from aoloop.core.channel import Channel, Payload
from aoloop.core.clock import Clock, Timer
from aoloop.core.errors import (
    ActorError,
    DanglingInputError,
    DuplicateActorError,
    DuplicateWriterError,
    GraphError,
    InvalidRateError,
    ModelError,
    NonFiniteError,
    RunError,
    TypeMismatchError,
    UnbootstrappedCycleError,
)

logger = logging.getLogger(__name__)

NONFINITE_POLICIES = ("propagate", "warn", "halt")


class RunStatus(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class RunReport:
    """Terminal state of a run."""

    status: RunStatus
    ticks_completed: int
    elapsed: float  # Wall-clock seconds


class Model:
    """
    Owns the actors and channels of a simulation and runs them.

    The graph is mutable until check() succeeds, and frozen afterwards.
    """

    def __init__(self, name: str = "model", nonfinite: str = "propagate"):
        if nonfinite not in NONFINITE_POLICIES:
            raise ValueError(
                f"nonfinite must be one of {NONFINITE_POLICIES}, got {nonfinite!r}"
            )
        self.name = name
        self.nonfinite = nonfinite

        self.actors: dict[str, Actor] = {}
        # (producer, tag) -> channel
        self.channels: dict[tuple[str, str], Channel] = {}
        # (consumer, input tag) -> channel feeding it
        self._feeds: dict[tuple[str, str], Channel] = {}

        self._schedule: list[str] | None = None
        self._broken_edges: set[tuple[str, str]] = set()

        self._clock: Clock | None = None
        self._future: Future | None = None
        self._ticks_completed = 0
        self._failed = False
        self._warned: set[str] = set()

    def __repr__(self) -> str:
        return f"Model({self.name!r}, actors={len(self.actors)}, channels={len(self.channels)})"

    # ═══════════════════════════════════════════════════════════════
    # ASSEMBLY
    # ═══════════════════════════════════════════════════════════════

    def add_actor(self, actor: Actor) -> Actor:
        """Register an actor. Names must be unique within the model."""
        self._ensure_mutable()
        existing = self.actors.get(actor.name)
        if existing is not None and existing is not actor:
            raise DuplicateActorError(f"{self.name}: actor name {actor.name!r} already used")
        self.actors[actor.name] = actor
        return actor

    def add_actors(self, *actors: Actor) -> Model:
        for actor in actors:
            self.add_actor(actor)
        return self

    def connect(
        self,
        producer: Actor,
        tag: str,
        *consumers: Actor,
        buffered: bool = False,
    ) -> Channel:
        """
        Connect the `tag` output of `producer` to the same input of each consumer.

        Connecting the same output again multiplexes the existing channel to
        the new consumers. Actors not yet registered are added.

        Raises:
            TypeMismatchError: a port is missing or sizes disagree
            DuplicateWriterError: a consumer input is already fed
        """
        self._ensure_mutable()
        if not consumers:
            raise GraphError(f"{producer.name}/{tag}: connect() needs at least one consumer")

        self.add_actor(producer)
        out_port = producer.outputs.get(tag)
        if out_port is None:
            raise TypeMismatchError(f"{producer.name!r} has no output {tag!r}")

        key = (producer.name, tag)
        channel = self.channels.get(key)
        if channel is None:
            channel = Channel(producer.name, tag, size=out_port.size, buffered=buffered)
        elif channel.buffered != buffered:
            raise GraphError(f"{channel.channel_id}: cannot mix buffered and unbuffered consumers")

        for consumer in consumers:
            self.add_actor(consumer)
            if not consumer.accepts(tag):
                raise TypeMismatchError(
                    f"{channel.channel_id} -> {consumer.name!r}: no input accepts {tag!r}"
                )
            in_port = consumer.inputs[tag]
            if in_port.size is not None and out_port.size is not None and in_port.size != out_port.size:
                raise TypeMismatchError(
                    f"{channel.channel_id} -> {consumer.name!r}: "
                    f"size {out_port.size} does not match input size {in_port.size}"
                )
            if buffered and in_port.size is not None:
                raise TypeMismatchError(
                    f"{channel.channel_id} -> {consumer.name!r}: "
                    f"buffered input {tag!r} must not declare a size"
                )
            fed_by = self._feeds.get((consumer.name, tag))
            if fed_by is not None:
                raise DuplicateWriterError(
                    f"{consumer.name!r} input {tag!r} already fed by {fed_by.channel_id}"
                )
            channel.add_consumer(consumer.name)
            self._feeds[(consumer.name, tag)] = channel

        self.channels[key] = channel
        return channel

    def _ensure_mutable(self):
        if self._schedule is not None:
            raise GraphError(f"{self.name}: graph is frozen once checked")

    # ═══════════════════════════════════════════════════════════════
    # VALIDATION
    # ═══════════════════════════════════════════════════════════════

    def graph(self) -> nx.DiGraph:
        """Actor graph: one node per actor, one edge per producer -> consumer pair."""
        g = nx.DiGraph()
        for name, actor in self.actors.items():
            g.add_node(
                name,
                kind=type(actor).__name__,
                bootstrap=actor.bootstrap,
                rate=(actor.rate.input_period, actor.rate.output_period),
            )
        for channel in self.channels.values():
            for consumer in channel.consumers:
                if g.has_edge(channel.producer, consumer):
                    g.edges[channel.producer, consumer]["tags"].append(channel.tag)
                else:
                    g.add_edge(channel.producer, consumer, tags=[channel.tag])
        return g

    def check(self) -> Model:
        """
        Validate the graph and compute the schedule.

        Checks, in order:
        (c) every rate period is a positive integer
        (a) every required input is connected
        (d) every input has exactly one writer
        (b) every cycle contains at least one bootstrapped actor

        Returns:
            self, frozen and ready to run

        Raises:
            GraphError subclass naming the offending actor, channel or cycle
        """
        if self._schedule is not None:
            return self
        if not self.actors:
            raise GraphError(f"{self.name}: model has no actors")

        for actor in self.actors.values():
            if not actor.rate.is_valid():
                raise InvalidRateError(
                    f"{actor.name!r}: rate periods must be positive integers, got "
                    f"({actor.rate.input_period!r}, {actor.rate.output_period!r})"
                )

        for actor in self.actors.values():
            for tag, port in actor.inputs.items():
                if not port.optional and (actor.name, tag) not in self._feeds:
                    raise DanglingInputError(f"{actor.name!r} input {tag!r} is not connected")

        writers: dict[tuple[str, str], list[str]] = {}
        for channel in self.channels.values():
            for consumer in channel.consumers:
                writers.setdefault((consumer, channel.tag), []).append(channel.channel_id)
        for (consumer, tag), ids in writers.items():
            if len(ids) > 1:
                raise DuplicateWriterError(f"{consumer!r} input {tag!r} has writers {ids}")

        g = self.graph()
        index = {name: i for i, name in enumerate(self.actors)}

        for cycle in nx.simple_cycles(g):
            if not any(self.actors[name].bootstrap for name in cycle):
                first = min(range(len(cycle)), key=lambda i: index[cycle[i]])
                raise UnbootstrappedCycleError(cycle[first:] + cycle[:first])

        broken = {
            (u, v)
            for u, v in g.edges
            if self.actors[v].bootstrap and nx.has_path(g, v, u)
        }
        dag = g.copy()
        dag.remove_edges_from(broken)
        schedule = list(nx.lexicographical_topological_sort(dag, key=index.__getitem__))

        self._warn_rate_mismatches()

        self._broken_edges = broken
        self._schedule = schedule
        logger.info("%s: checked %d actors, %d channels", self.name, len(self.actors), len(self.channels))
        logger.info("%s: schedule %s", self.name, " -> ".join(schedule))
        if broken:
            logger.info(
                "%s: bootstrap-broken edges %s",
                self.name,
                ", ".join(f"{u}->{v}" for u, v in sorted(broken)),
            )
        return self

    def _warn_rate_mismatches(self):
        """Log channels whose producer and consumer periods are not commensurate."""
        for channel in self.channels.values():
            p_out = self.actors[channel.producer].rate.output_period
            for consumer in channel.consumers:
                p_in = self.actors[consumer].rate.input_period
                if max(p_out, p_in) % min(p_out, p_in) != 0:
                    logger.warning(
                        "%s: %s writes every %d ticks but %r reads every %d",
                        self.name, channel.channel_id, p_out, consumer, p_in,
                    )

    @property
    def checked(self) -> bool:
        return self._schedule is not None

    @property
    def schedule(self) -> list[str]:
        """Actor names in execution order within a tick."""
        if self._schedule is None:
            raise GraphError(f"{self.name}: model has not been checked")
        return list(self._schedule)

    @property
    def broken_edges(self) -> set[tuple[str, str]]:
        """Feedback edges delayed by one tick through a bootstrapped actor."""
        return set(self._broken_edges)

    # ═══════════════════════════════════════════════════════════════
    # EXECUTION
    # ═══════════════════════════════════════════════════════════════

    def run(self, n_ticks: int | None = None) -> Model:
        """
        Start running the model in a background worker.

        Args:
            n_ticks: Number of base ticks. Defaults to the shortest Timer
                     in the graph; unbounded (until cancel()) if none.

        Returns:
            self, so that model.check().run().wait() chains
        """
        if self._schedule is None:
            raise GraphError(f"{self.name}: model must be checked before it runs")
        if self._future is not None:
            raise GraphError(f"{self.name}: a model runs only once")

        if n_ticks is None:
            counts = [
                actor.n_ticks
                for actor in self.actors.values()
                if isinstance(actor, Timer) and actor.n_ticks is not None
            ]
            n_ticks = min(counts) if counts else None

        self._clock = Clock(n_ticks)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"aoloop-{self.name}")
        self._future = executor.submit(self._run_ticks, self._clock)
        executor.shutdown(wait=False)
        return self

    def wait(self, timeout: float | None = None) -> RunReport:
        """
        Block until the run terminates.

        Returns:
            RunReport with status COMPLETED or CANCELLED. A failed run does
            not return: its FAILED report is attached to the raised error.

        Raises:
            RunError: the run failed (ActorError, NonFiniteError, ...);
                      exc.report holds the RunReport with status FAILED
        """
        if self._future is None:
            raise GraphError(f"{self.name}: model is not running")
        return self._future.result(timeout)

    def cancel(self):
        """Abort the run between ticks. The last completed tick stays observable."""
        if self._clock is not None:
            self._clock.cancel()

    @property
    def status(self) -> RunStatus:
        if self._future is None:
            return RunStatus.IDLE
        if not self._future.done():
            return RunStatus.RUNNING
        if self._failed:
            return RunStatus.FAILED
        return self._future.result().status

    @property
    def ticks_completed(self) -> int:
        return self._ticks_completed

    def _run_ticks(self, clock: Clock) -> RunReport:
        order = [self.actors[name] for name in self._schedule]
        feeds = {name: [] for name in self.actors}
        for (consumer, tag), channel in self._feeds.items():
            feeds[consumer].append((tag, channel))
        outputs = {name: [] for name in self.actors}
        for (producer, tag), channel in self.channels.items():
            outputs[producer].append((tag, channel))

        length = "unbounded" if clock.n_ticks is None else clock.n_ticks
        logger.info("%s: running %s ticks", self.name, length)
        start = time.perf_counter()

        try:
            for tick in clock:
                for actor in order:
                    self._step(actor, tick, feeds[actor.name], outputs[actor.name])
                self._ticks_completed += 1
                logger.debug("%s: tick %d done", self.name, tick)
        except Exception as exc:
            self._failed = True
            logger.error("%s: run aborted after %d ticks: %s", self.name, self._ticks_completed, exc)
            if isinstance(exc, RunError):
                exc.report = RunReport(
                    status=RunStatus.FAILED,
                    ticks_completed=self._ticks_completed,
                    elapsed=time.perf_counter() - start,
                )
            raise

        elapsed = time.perf_counter() - start
        interrupted = clock.cancelled and (
            clock.n_ticks is None or self._ticks_completed < clock.n_ticks
        )
        status = RunStatus.CANCELLED if interrupted else RunStatus.COMPLETED
        logger.info(
            "%s: %s after %d ticks (%.3fs)", self.name, status.value, self._ticks_completed, elapsed
        )
        return RunReport(status=status, ticks_completed=self._ticks_completed, elapsed=elapsed)

    def _step(
        self,
        actor: Actor,
        tick: int,
        feeds: list[tuple[str, Channel]],
        outputs: list[tuple[str, Channel]],
    ):
        """Read, update and write one actor for one tick."""
        actor.tick = tick

        if actor.is_due_to_read(tick):
            phase = "read"
            try:
                for tag, channel in feeds:
                    payload = channel.fetch(actor.name)
                    if payload is not None:
                        actor.read(tag, payload)
                if actor.primed:
                    phase = "update"
                    actor.update()
                    actor.updates += 1
            except ModelError:
                raise
            except Exception as exc:
                raise ActorError(actor.name, tick, phase, exc) from exc
            finally:
                actor.end_cycle()

        if not actor.is_due_to_write(tick):
            return
        if actor.updates == 0 and not actor.bootstrap:
            return  # not primed yet, nothing to publish

        for tag, channel in outputs:
            try:
                value = actor.seed(tag) if actor.updates == 0 else actor.write(tag)
                if value is None:
                    continue
                payload = Payload(tag=tag, tick=tick, data=value, producer=actor.name)
            except ModelError:
                raise
            except Exception as exc:
                raise ActorError(actor.name, tick, "write", exc) from exc
            self._check_finite(channel, payload)
            channel.publish(payload)

    def _check_finite(self, channel: Channel, payload: Payload):
        if self.nonfinite == "propagate" or payload.is_finite():
            return
        if self.nonfinite == "warn":
            if channel.channel_id not in self._warned:
                self._warned.add(channel.channel_id)
                logger.warning(
                    "%s: %s published a non-finite value at tick %d",
                    self.name, channel.channel_id, payload.tick,
                )
            return
        raise NonFiniteError(
            f"{channel.channel_id} published a non-finite value at tick {payload.tick}"
        )

    # ═══════════════════════════════════════════════════════════════
    # DIAGNOSTICS
    # ═══════════════════════════════════════════════════════════════

    def flowchart(self, path=None):
        """Draw the actor graph (see aoloop.viz.flowchart.plot_flowchart)."""
        from aoloop.viz.flowchart import plot_flowchart
        return plot_flowchart(self, path=path)
