"""Bounded worker pool that drains a registry snapshot through the prober.

Concurrency model
-----------------
:func:`run_sweep` loads the snapshot into an :class:`asyncio.Queue` and
starts exactly ``max_parallels`` worker coroutines.  Each worker loops:

1. stop if :attr:`SweepState.aborting` is set;
2. pop the next node with ``get_nowait()`` (stop when the queue is empty);
3. await the ``ping`` coroutine for that node.

All workers run on one event loop, so ``get_nowait()``, the completion
counter, and the ``open_channels`` dict need no extra locking: none of them
is touched across an ``await``.  Popping a node hands it to exactly one
worker, which is the only writer of that record for the rest of the sweep.

Cancellation is cooperative.  Workers check the abort flag only between
pops, so an in-flight probe finishes its current step; the tracker also
closes every open push channel so that step ends promptly.  Nodes still in
the queue when the flag is seen keep their previous liveness fields.

The sweep returns once every worker has stopped.  Workers are gathered with
``return_exceptions=True``; a worker that raises despite the prober's
guarantees is logged and does not cancel its siblings.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from nodetracker.core.models import EndpointRecord

if TYPE_CHECKING:
    from nodetracker.tracker.prober import PushChannel

__all__ = ["SweepState", "SweepStats", "run_sweep"]

logger = logging.getLogger(__name__)

Ping = Callable[[EndpointRecord], Awaitable[None]]


@dataclass
class SweepState:
    """Per-tracker state shared by the workers of the current sweep.

    Attributes:
        aborting: Set by an abort request; workers stop at their next pop.
        completed: Probes finished in this sweep (success or failure).
        open_channels: Push channels currently waiting for a greeting,
            keyed by channel id.
    """

    aborting: bool = False
    completed: int = 0
    open_channels: dict[str, PushChannel] = field(default_factory=dict)

    def reset(self) -> None:
        """Clear the abort flag and the completion counter."""
        self.aborting = False
        self.completed = 0

    def next_index(self) -> int:
        """Increment the completion counter and return its new value."""
        self.completed += 1
        return self.completed


@dataclass
class SweepStats:
    """Outcome of one sweep.

    Attributes:
        total: Nodes in the snapshot.
        probed: Nodes a worker popped and probed.
        reachable: Probed nodes that ended with a latency.
        failed: Probed nodes that ended with an error.
        aborted: ``True`` if the abort flag was set when the sweep ended.
        duration_s: Wall-clock duration of the sweep.
    """

    total: int = 0
    probed: int = 0
    reachable: int = 0
    failed: int = 0
    aborted: bool = False
    duration_s: float = 0.0

    @property
    def untouched(self) -> int:
        """Nodes never popped (abort) and so left unchanged."""
        return self.total - self.probed

    def format_report(self) -> str:
        """Return a single-line summary for the log."""
        return (
            f"Sweep {'aborted' if self.aborted else 'complete'}: "
            f"{self.reachable} reachable, {self.failed} failed, "
            f"{self.untouched} untouched of {self.total} "
            f"in {self.duration_s:.1f} s"
        )


async def _worker(
    name: str,
    queue: asyncio.Queue[EndpointRecord],
    state: SweepState,
    ping: Ping,
    stats: SweepStats,
) -> None:
    while not state.aborting:
        try:
            node = queue.get_nowait()
        except asyncio.QueueEmpty:
            return
        await ping(node)
        stats.probed += 1
        if node.is_healthy:
            stats.reachable += 1
        else:
            stats.failed += 1
    logger.debug("%s: stopping on abort", name)


async def run_sweep(
    nodes: Iterable[EndpointRecord],
    ping: Ping,
    state: SweepState,
    max_parallels: int,
) -> SweepStats:
    """Probe *nodes* with ``max_parallels`` concurrent workers.

    Args:
        nodes: Snapshot of the registry, in registry order.
        ping: Coroutine probing one node and publishing its progress event.
        state: Shared sweep state; the caller resets it beforehand.
        max_parallels: Number of workers to start (> 0).

    Returns:
        A :class:`SweepStats` for the sweep.
    """
    queue: asyncio.Queue[EndpointRecord] = asyncio.Queue()
    for node in nodes:
        queue.put_nowait(node)
    stats = SweepStats(total=queue.qsize())

    workers = [
        _worker(f"worker-{i}", queue, state, ping, stats)
        for i in range(max_parallels)
    ]
    results = await asyncio.gather(*workers, return_exceptions=True)
    for i, result in enumerate(results):
        if isinstance(result, BaseException):
            logger.error("worker-%d raised unexpectedly: %s", i, result, exc_info=result)

    stats.aborted = state.aborting
    return stats
