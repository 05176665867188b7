"""Fetch candidate nodes from the stats service.

:func:`fetch_nodes` performs the HTTP GET, decodes the JSON array, runs it
through :func:`~nodetracker.tracker.registry.validate_nodes`, and applies the
optional URL allowlist.  It never touches a registry: the caller swaps the
result in only after this function returns, so a failure leaves the previous
registry contents untouched.

Typical usage::

    async with NodeHttpClient() as client:
        nodes = await fetch_nodes(client, stats_url, network_type=152)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Collection

import httpx

from nodetracker.core.exceptions import DiscoveryFetchError, DiscoveryParseError
from nodetracker.core.models import EndpointRecord
from nodetracker.tracker.http_client import NodeHttpClient
from nodetracker.tracker.registry import validate_nodes

__all__ = ["fetch_nodes"]

logger = logging.getLogger(__name__)


async def fetch_nodes(
    client: NodeHttpClient,
    stats_service_url: str,
    network_type: int,
    node_urls: Collection[str] | None = None,
) -> list[EndpointRecord]:
    """Fetch, validate, and optionally narrow the stats service node list.

    Args:
        client: HTTP client to issue the request with.
        stats_service_url: Endpoint returning a JSON array of descriptors.
        network_type: Network identifier nodes must declare.
        node_urls: Optional allowlist of REST gateway URLs.  Empty or
            ``None`` means no narrowing.

    Returns:
        Accepted records in the order the service returned them.

    Raises:
        DiscoveryFetchError: The request failed after all retries.
        DiscoveryParseError: The body was not a JSON array.
    """
    try:
        response = await client.get(stats_service_url)
    except httpx.HTTPStatusError as exc:
        raise DiscoveryFetchError(
            stats_service_url,
            f"HTTP {exc.response.status_code}: {exc.response.text[:200]}",
        ) from exc
    except httpx.HTTPError as exc:
        raise DiscoveryFetchError(stats_service_url, f"{type(exc).__name__}: {exc}") from exc

    try:
        payload = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise DiscoveryParseError(stats_service_url, f"Invalid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise DiscoveryParseError(
            stats_service_url,
            f"Expected a JSON array, got {type(payload).__name__}",
        )

    nodes = validate_nodes(payload, network_type)
    if node_urls:
        allowed = set(node_urls)
        nodes = [node for node in nodes if node.control_url in allowed]

    logger.info(
        "Stats service returned %d descriptor(s); %d node(s) accepted.",
        len(payload),
        len(nodes),
    )
    return nodes
