"""Node tracker domain models.

:class:`EndpointRecord` is parsed straight from one element of the stats
service's JSON array.  The service uses camelCase keys; the models accept
those through an alias generator and ignore any field they do not know
(``_id``, ``__v``, finalization data, ...).

Fields the acceptance rules read are strict: ``"152"`` is not a network
identifier and ``"yes"`` is not ``true``.  Informational fields take
whatever the service sends.

Typical usage::

    from nodetracker.core.models import EndpointRecord

    node = EndpointRecord.model_validate(raw_descriptor)
    print(node.control_url, node.push_url)

Liveness fields
---------------
``latency`` (milliseconds) and ``latest_error`` are never assigned directly.
Use :meth:`EndpointRecord.mark_reachable` / :meth:`EndpointRecord.mark_failed`
so that at most one of them is set at any time.

Single-writer invariant: during a sweep a record is written only by the
worker that popped it from the sweep queue.  Nothing enforces this; the
sweep and health-check code paths are built around it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "NETWORK_NAMES",
    "NodeStatus",
    "WebSocketStatus",
    "ApiStatus",
    "EndpointRecord",
    "ProgressEvent",
]

logger = logging.getLogger(__name__)

#: Numeric network identifiers and the names nodes report for them.
NETWORK_NAMES: dict[int, str] = {
    104: "mainnet",
    152: "testnet",
}


class _StatsModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class NodeStatus(_StatsModel):
    """Sub-service statuses reported by the stats service (``"up"``/``"down"``)."""

    api_node: str = Field(strict=True)
    db: str = Field(strict=True)


class WebSocketStatus(_StatsModel):
    """Push-channel descriptor."""

    is_available: bool = Field(strict=True)
    wss: bool = Field(strict=True)
    url: str


class ApiStatus(_StatsModel):
    """REST gateway descriptor, including its push channel."""

    rest_gateway_url: str
    is_available: bool = Field(strict=True)
    node_status: NodeStatus
    is_https_enabled: bool = Field(strict=True)
    web_socket: WebSocketStatus
    rest_version: Any = None
    last_status_check: Any = None


class EndpointRecord(_StatsModel):
    """One tracked candidate gateway node.

    Attributes:
        host: Node host name.
        network_identifier: Declared numeric network type (104, 152, ...).
        api_status: Control-plane and push-channel descriptors.
        friendly_name: Operator-chosen display name, if any.
        public_key: Node public key, if reported.
        version: Node software version, if reported.
        roles: Role bit flags, if reported.
        port: Peer port, if reported.
        latency: Round-trip time of the last successful probe, in ms.
        latest_error: Failure message of the last failed probe.
    """

    host: str
    network_identifier: int = Field(strict=True)
    api_status: ApiStatus
    # Informational only; never read by the acceptance rules.
    friendly_name: Any = None
    public_key: Any = None
    version: Any = None
    roles: Any = None
    port: Any = None

    latency: float | None = Field(default=None, exclude=True)
    latest_error: str | None = Field(default=None, exclude=True)

    @property
    def control_url(self) -> str:
        """REST gateway URL used for the latency call."""
        return self.api_status.rest_gateway_url

    @property
    def push_url(self) -> str:
        """WebSocket URL challenged for a greeting."""
        return self.api_status.web_socket.url

    @property
    def is_healthy(self) -> bool:
        """``True`` when the last probe succeeded."""
        return self.latency is not None and self.latest_error is None

    def mark_reachable(self, latency: float) -> None:
        """Record a successful probe."""
        self.latency = latency
        self.latest_error = None

    def mark_failed(self, message: str) -> None:
        """Record a failed probe."""
        self.latency = None
        self.latest_error = message

    def __str__(self) -> str:
        if self.latency is not None:
            return f"{self.control_url} [{self.latency:.0f} msecs]"
        if self.latest_error is not None:
            return f"{self.control_url} [{self.latest_error}]"
        return f"{self.control_url} [not probed]"


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted once per finished probe.

    Attributes:
        node: The record that was just probed.
        index: Value of the sweep's completion counter after this probe
            (1-based, strictly increasing within a sweep, unrelated to the
            node's position in the registry).
        total: Registry size when the sweep started.
    """

    node: EndpointRecord
    index: int
    total: int
