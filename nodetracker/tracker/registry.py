"""Registry of candidate nodes and the acceptance rules for raw descriptors.

:func:`validate_nodes` is the single gate every descriptor passes through,
whether it comes from the stats service or from a warm-start cache.  A node
is accepted only when **all** hold:

* its ``networkIdentifier`` equals the tracker's network type;
* ``apiStatus.isAvailable`` is true;
* ``apiStatus.nodeStatus.apiNode`` and ``apiStatus.nodeStatus.db`` are ``"up"``;
* ``apiStatus.isHttpsEnabled`` is true;
* ``apiStatus.webSocket.isAvailable`` and ``apiStatus.webSocket.wss`` are true.

A descriptor with a missing or malformed required field is dropped
silently.  Input order is preserved.

:class:`NodeRegistry` holds the accepted records.  Its contents are only
ever replaced wholesale; readers get tuple snapshots.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from nodetracker.core.models import EndpointRecord

__all__ = ["is_acceptable", "validate_nodes", "NodeRegistry"]

logger = logging.getLogger(__name__)

_UP: str = "up"


def is_acceptable(node: EndpointRecord, network_type: int) -> bool:
    """Return ``True`` if *node* satisfies every acceptance predicate."""
    api = node.api_status
    return (
        node.network_identifier == network_type
        and api.is_available
        and api.node_status.api_node == _UP
        and api.node_status.db == _UP
        and api.is_https_enabled
        and api.web_socket.is_available
        and api.web_socket.wss
    )


def validate_nodes(
    raw_nodes: Iterable[Mapping[str, Any] | EndpointRecord],
    network_type: int,
) -> list[EndpointRecord]:
    """Parse and filter raw descriptors, keeping only acceptable nodes.

    Args:
        raw_nodes: Raw JSON objects (or already-parsed records).
        network_type: Network identifier nodes must declare.

    Returns:
        Accepted records in input order.
    """
    accepted: list[EndpointRecord] = []
    dropped = 0
    for raw in raw_nodes:
        if isinstance(raw, EndpointRecord):
            node = raw
        else:
            try:
                node = EndpointRecord.model_validate(raw)
            except ValidationError as exc:
                logger.debug("Dropping malformed node descriptor: %d error(s)", exc.error_count())
                dropped += 1
                continue
        if not is_acceptable(node, network_type):
            dropped += 1
            continue
        accepted.append(node)

    if dropped:
        logger.debug("Validation kept %d node(s), dropped %d", len(accepted), dropped)
    return accepted


class NodeRegistry:
    """The current list of tracked nodes plus the time it was discovered.

    Args:
        nodes: Initial (already validated) records.
        discovered_at: Epoch seconds of the discovery that produced *nodes*.
    """

    def __init__(
        self,
        nodes: Iterable[EndpointRecord] = (),
        discovered_at: float | None = None,
    ) -> None:
        self._nodes: list[EndpointRecord] = list(nodes)
        self._discovered_at = discovered_at

    def __len__(self) -> int:
        return len(self._nodes)

    @property
    def discovered_at(self) -> float | None:
        return self._discovered_at

    def snapshot(self) -> tuple[EndpointRecord, ...]:
        """Return the current records as an immutable sequence."""
        return tuple(self._nodes)

    def replace(self, nodes: Iterable[EndpointRecord], discovered_at: float) -> None:
        """Swap in a new node list; the previous records are discarded."""
        self._nodes = list(nodes)
        self._discovered_at = discovered_at

    def find(self, control_url: str, network_type: int) -> EndpointRecord | None:
        """Return the record with this control URL on this network, if any."""
        for node in self._nodes:
            if node.network_identifier == network_type and node.control_url == control_url:
                return node
        return None
