"""Rank-biased random node selection.

:func:`rank_nodes` builds the candidate table: healthy nodes on the right
network within the latency cap, fastest first.  :func:`pick_nodes` keeps the
fastest ``top`` of that table and draws from them uniformly at random
without replacement.  Load is spread over the fast nodes instead of every
client converging on the single fastest one.

Both functions are pure; randomness comes from an injected
:class:`random.Random` so tests can seed it.
"""

from __future__ import annotations

import logging
import math
import random
from collections.abc import Iterable

from nodetracker.core.models import EndpointRecord

__all__ = ["rank_nodes", "pick_nodes"]

logger = logging.getLogger(__name__)

_DEFAULT_RNG = random.Random()


def _safe_latency(node: EndpointRecord) -> float:
    return node.latency if node.latency is not None else math.inf


def rank_nodes(
    nodes: Iterable[EndpointRecord],
    network_type: int,
    max_latency: float = math.inf,
) -> list[EndpointRecord]:
    """Return the selectable nodes sorted by ascending latency.

    A node qualifies when its network matches, it carries no error, and its
    latency (unset counts as infinite) is at most *max_latency*.  Unprobed
    nodes never qualify, not even without a cap.  The sort is stable, so
    ties keep registry order.
    """
    table = [
        node
        for node in nodes
        if node.network_identifier == network_type
        and node.latest_error is None
        and _safe_latency(node) < math.inf
        and _safe_latency(node) <= max_latency
    ]
    table.sort(key=_safe_latency)
    return table


def pick_nodes(
    table: list[EndpointRecord],
    count: int,
    top: int | None = None,
    rng: random.Random | None = None,
) -> list[EndpointRecord]:
    """Draw up to *count* distinct nodes from the first *top* of *table*.

    Args:
        table: Output of :func:`rank_nodes`.
        count: Number of nodes wanted.
        top: Size of the fast pool to draw from; ``None`` means all of it.
        rng: Randomness source.  Defaults to a module-level generator.

    Returns:
        The drawn nodes in draw order.  Shorter than *count* when the pool
        is smaller.
    """
    rng = rng or _DEFAULT_RNG
    pool = table[: max(top, 0)] if top is not None else list(table)
    picked: list[EndpointRecord] = []
    while len(picked) < count and pool:
        picked.append(pool.pop(rng.randrange(len(pool))))
    return picked
