"""Node discovery, probing, sweeping, and selection.

Public API
----------
* :class:`~nodetracker.tracker.service.NodeTracker` — the facade client
  code uses.
* :class:`~nodetracker.tracker.progress.ProgressBus` — progress stream.
* :func:`~nodetracker.tracker.registry.validate_nodes` — descriptor
  acceptance rules.
* :func:`~nodetracker.tracker.selector.rank_nodes` /
  :func:`~nodetracker.tracker.selector.pick_nodes` — selection primitives.
"""

from nodetracker.tracker.http_client import NodeHttpClient
from nodetracker.tracker.progress import ProgressBus
from nodetracker.tracker.registry import NodeRegistry, validate_nodes
from nodetracker.tracker.selector import pick_nodes, rank_nodes
from nodetracker.tracker.service import NodeTracker
from nodetracker.tracker.sweep import SweepState, SweepStats

__all__ = [
    "NodeTracker",
    "NodeHttpClient",
    "NodeRegistry",
    "ProgressBus",
    "SweepState",
    "SweepStats",
    "validate_nodes",
    "rank_nodes",
    "pick_nodes",
]
