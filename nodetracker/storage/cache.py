"""Warm-start cache of discovered nodes.

After a successful discovery the CLI writes the accepted node list to a JSON
file; the next run can start from it instead of hitting the stats service.
Only identity fields are written: ``latency`` and ``latest_error`` are
excluded from the model dump, so no probe result outlives its sweep.

File shape::

    {
        "discovered_at": 1792150000.0,
        "nodes": [ { "host": "...", "networkIdentifier": 152, "apiStatus": {...} } ]
    }

Typical usage::

    from nodetracker.storage.cache import read_cache, write_cache

    cached = read_cache(path, max_age=86400)
    if cached is not None:
        nodes, discovered_at = cached
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from nodetracker.core import events
from nodetracker.core.exceptions import CacheError
from nodetracker.core.models import EndpointRecord

__all__ = ["write_cache", "read_cache"]

logger = logging.getLogger(__name__)


def write_cache(
    path: Path,
    nodes: Iterable[EndpointRecord],
    discovered_at: float,
) -> None:
    """Write *nodes* and their discovery time to *path*.

    Errors are logged at ``WARNING`` level and never propagated; a cache
    write failure must not fail the run that produced the nodes.
    """
    document = {
        "discovered_at": discovered_at,
        "nodes": [node.model_dump(by_alias=True, exclude_none=True) for node in nodes],
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(document, fh, indent=2)
    except OSError:
        logger.warning("Failed to write node cache '%s'.", path, exc_info=True)
        return
    logger.info(
        "Cached %d node(s) to %s",
        len(document["nodes"]),
        path,
        extra={"event": events.CACHE_WRITTEN},
    )


def read_cache(
    path: Path,
    max_age: float,
    now: float | None = None,
) -> tuple[list[dict[str, Any]], float] | None:
    """Load raw cached descriptors and their discovery time.

    The descriptors are returned unvalidated; the tracker runs them through
    the same acceptance rules as freshly discovered ones.

    Args:
        path: Cache file location.
        max_age: Seconds after which the cache is considered stale.
        now: Current epoch seconds (injected by tests).

    Returns:
        ``(descriptors, discovered_at)``, or ``None`` when the file is
        missing or stale.

    Raises:
        CacheError: The file exists but is not a valid cache document.
    """
    try:
        with open(path, encoding="utf-8") as fh:
            document = json.load(fh)
    except FileNotFoundError:
        return None
    except (OSError, json.JSONDecodeError) as exc:
        raise CacheError(f"Cannot read node cache {path}: {exc}") from exc

    if not isinstance(document, dict):
        raise CacheError(f"Node cache {path} is not a JSON object")
    nodes = document.get("nodes")
    discovered_at = document.get("discovered_at")
    if not isinstance(nodes, list) or not isinstance(discovered_at, (int, float)):
        raise CacheError(f"Node cache {path} is missing 'nodes' or 'discovered_at'")

    age = (now if now is not None else time.time()) - discovered_at
    if age > max_age:
        logger.info("Node cache %s is stale (%.0f s old) — ignoring.", path, age)
        return None

    return nodes, float(discovered_at)
