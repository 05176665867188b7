"""Node tracker exception taxonomy.

Every custom exception inherits from :class:`NodeTrackerError`.  Exceptions
are organised by layer so callers can catch at the right granularity:

    Layer hierarchy
    ---------------
    NodeTrackerError
    ├── ConfigError
    ├── DiscoveryError
    │   ├── DiscoveryFetchError
    │   └── DiscoveryParseError
    ├── ProbeError
    │   ├── ControlCallError
    │   ├── NetworkMismatchError
    │   └── PushChannelError
    └── CacheError

:class:`ProbeError` subclasses never escape a probe: the prober converts them
into the record's ``latest_error`` text so one broken node cannot abort a
sweep.

Usage:

    from nodetracker.core.exceptions import DiscoveryFetchError

    raise DiscoveryFetchError(url, "Connection refused") from exc
"""

from __future__ import annotations

import logging

__all__ = [
    "NodeTrackerError",
    # Config
    "ConfigError",
    # Discovery
    "DiscoveryError",
    "DiscoveryFetchError",
    "DiscoveryParseError",
    # Probe
    "ProbeError",
    "ControlCallError",
    "NetworkMismatchError",
    "PushChannelError",
    # Cache
    "CacheError",
]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class NodeTrackerError(Exception):
    """Root exception for all node tracker errors."""


# ---------------------------------------------------------------------------
# Config layer
# ---------------------------------------------------------------------------


class ConfigError(NodeTrackerError):
    """Raised when the tracker is constructed with invalid options.

    Examples:
        - ``max_parallels`` is zero or negative.
        - ``websocket_timeout`` is zero or negative.
        - Discovery requested without a stats service URL.
    """


# ---------------------------------------------------------------------------
# Discovery layer
# ---------------------------------------------------------------------------


class DiscoveryError(NodeTrackerError):
    """Base class for failures while fetching the candidate node list.

    The registry is never modified when this is raised.

    Args:
        source: URL of the stats service.
        message: Human-readable error description.
    """

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(f"[{source}] {message}")


class DiscoveryFetchError(DiscoveryError):
    """Raised when the stats service is unreachable or answers with an error.

    Covers network errors, unexpected HTTP status codes, and timeouts.
    """


class DiscoveryParseError(DiscoveryError):
    """Raised when the stats service body is not a JSON array."""


# ---------------------------------------------------------------------------
# Probe layer
# ---------------------------------------------------------------------------


class ProbeError(NodeTrackerError):
    """Base class for a failed reachability check against one node.

    Args:
        url: The URL that was being probed.
        message: Human-readable error description.
    """

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"{message} ({url})")


class ControlCallError(ProbeError):
    """Raised when the control-plane request fails or returns a bad status."""


class NetworkMismatchError(ProbeError):
    """Raised when a node reports a network other than the configured one.

    Args:
        url: Control-plane URL of the node.
        expected: Network name the tracker was configured for.
        actual: Network name reported by the node.
    """

    def __init__(self, url: str, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(url, f"Network mismatch: expected {expected!r}, got {actual!r}")


class PushChannelError(ProbeError):
    """Raised when the push channel closes, errors, or never greets in time."""


# ---------------------------------------------------------------------------
# Cache layer
# ---------------------------------------------------------------------------


class CacheError(NodeTrackerError):
    """Raised when the warm-start cache file exists but cannot be decoded."""
