"""The node tracker: discovery, sweeps, health checks, and selection.

:class:`NodeTracker` owns the registry, the sweep state, the prober, and the
progress bus, and is the only object client code talks to.

Usage contract
--------------
* :meth:`NodeTracker.ping_all` and :meth:`NodeTracker.check_health` both
  reset the shared sweep state.  Never run them concurrently on one tracker.
* :meth:`NodeTracker.discovery` replaces the registry a sweep snapshots
  from.  Run it between sweeps, not during one.
* :meth:`NodeTracker.abort_pinging` is synchronous and returns immediately;
  the running :meth:`NodeTracker.ping_all` returning is the signal that the
  workers have stopped.

Typical usage::

    import asyncio
    from nodetracker.tracker import NodeTracker

    async def main() -> None:
        async with NodeTracker("https://stats.example.com/nodes", 152) as tracker:
            await tracker.discovery()
            await tracker.ping_all()
            node = tracker.pick_one(top=10, max_latency=1000)
            print(node.control_url if node else "no node qualifies")

    asyncio.run(main())
"""

from __future__ import annotations

import functools
import logging
import math
import random
import time
import uuid
from collections.abc import Collection, Iterable, Mapping
from types import TracebackType
from typing import Any

import websockets

from nodetracker.core import events
from nodetracker.core.exceptions import ConfigError, DiscoveryError
from nodetracker.core.logging_config import SWEEP_ID_CTX
from nodetracker.core.models import EndpointRecord, ProgressEvent
from nodetracker.core.settings import Settings
from nodetracker.tracker.discovery import fetch_nodes
from nodetracker.tracker.http_client import NodeHttpClient
from nodetracker.tracker.prober import Connect, Prober
from nodetracker.tracker.progress import ProgressBus
from nodetracker.tracker.registry import NodeRegistry, validate_nodes
from nodetracker.tracker.selector import pick_nodes, rank_nodes
from nodetracker.tracker.sweep import SweepState, SweepStats, run_sweep

__all__ = ["NodeTracker"]

logger = logging.getLogger(__name__)

_DEFAULT_MAX_PARALLELS = 10
_DEFAULT_WEBSOCKET_TIMEOUT_MS = 60000


class NodeTracker:
    """Track, probe, and pick gateway nodes of one network.

    Args:
        stats_service_url: Endpoint returning the JSON node list.
        network_type: Numeric network identifier nodes must declare.
        max_parallels: Concurrent probe workers per sweep (> 0).
        websocket_timeout: Milliseconds to wait for a push-channel
            greeting (> 0).
        no_websocket_challenge: Skip the push-channel phase of each probe.
        cached_nodes: Raw descriptors or records to start from before the
            first :meth:`discovery`.  They are re-validated.
        cache_timestamp: Epoch seconds at which *cached_nodes* were
            discovered.
        probe_timeout: Seconds allowed for each HTTP request.
        verify_network: Fail probes of nodes reporting another network.
        discovery_max_attempts: Attempts for the stats service request.
        http_client: Pre-built client (tests inject a mock transport here).
        connect: WebSocket factory passed to the prober.
        rng: Randomness source for :meth:`pick_multi`.

    Raises:
        ConfigError: If *max_parallels* or *websocket_timeout* is not
            positive.
    """

    def __init__(
        self,
        stats_service_url: str,
        network_type: int,
        *,
        max_parallels: int = _DEFAULT_MAX_PARALLELS,
        websocket_timeout: int = _DEFAULT_WEBSOCKET_TIMEOUT_MS,
        no_websocket_challenge: bool = False,
        cached_nodes: Iterable[Mapping[str, Any] | EndpointRecord] | None = None,
        cache_timestamp: float | None = None,
        probe_timeout: float = 10.0,
        verify_network: bool = True,
        discovery_max_attempts: int = 3,
        http_client: NodeHttpClient | None = None,
        connect: Connect = websockets.connect,
        rng: random.Random | None = None,
    ) -> None:
        if max_parallels <= 0:
            raise ConfigError(f"max_parallels must be > 0, got {max_parallels!r}")
        if websocket_timeout <= 0:
            raise ConfigError(f"websocket_timeout must be > 0, got {websocket_timeout!r}")

        self._stats_service_url = stats_service_url
        self._network_type = network_type
        self._max_parallels = max_parallels
        self._http = http_client or NodeHttpClient(
            timeout=probe_timeout,
            max_attempts=discovery_max_attempts,
        )
        self._owns_http = http_client is None
        self._prober = Prober(
            self._http,
            network_type=network_type,
            websocket_timeout=websocket_timeout / 1000.0,
            no_websocket_challenge=no_websocket_challenge,
            verify_network=verify_network,
            connect=connect,
        )
        self._registry = NodeRegistry(
            validate_nodes(cached_nodes or [], network_type),
            cache_timestamp,
        )
        self._state = SweepState()
        self._progress = ProgressBus()
        self._rng = rng or random.Random()
        self._last_sweep: SweepStats | None = None

        if len(self._registry):
            logger.info(
                "Tracker warm-started with %d cached node(s).",
                len(self._registry),
                extra={"event": events.CACHE_LOADED},
            )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> NodeTracker:
        """Build a tracker from :class:`~nodetracker.core.settings.Settings`.

        Keyword arguments override or extend the settings-derived options
        (e.g. ``cached_nodes``, ``http_client``).
        """
        options: dict[str, Any] = {
            "max_parallels": settings.max_parallels,
            "websocket_timeout": settings.websocket_timeout,
            "no_websocket_challenge": settings.no_websocket_challenge,
            "probe_timeout": settings.probe_timeout,
            "verify_network": settings.verify_network,
            "discovery_max_attempts": settings.discovery_max_attempts,
        }
        options.update(kwargs)
        return cls(settings.stats_service_url, settings.network_type, **options)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the HTTP client if this tracker created it."""
        if self._owns_http:
            await self._http.close()

    async def __aenter__(self) -> NodeTracker:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def network_type(self) -> int:
        return self._network_type

    @property
    def available_nodes(self) -> tuple[EndpointRecord, ...]:
        """Read-only snapshot of the registry."""
        return self._registry.snapshot()

    @property
    def discovered_at(self) -> float | None:
        """Epoch seconds of the discovery (or cache) behind the registry."""
        return self._registry.discovered_at

    @property
    def progress(self) -> ProgressBus:
        """Subscribe here for one :class:`ProgressEvent` per finished probe."""
        return self._progress

    @property
    def is_aborting(self) -> bool:
        return self._state.aborting

    @property
    def num_active_channels(self) -> int:
        """Push channels currently waiting for a greeting."""
        return len(self._state.open_channels)

    @property
    def last_sweep(self) -> SweepStats | None:
        return self._last_sweep

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def discovery(self, node_urls: Collection[str] | None = None) -> list[EndpointRecord]:
        """Fetch the node list and replace the registry with it.

        Args:
            node_urls: Optional allowlist of REST gateway URLs.

        Returns:
            The new registry contents.

        Raises:
            ConfigError: No stats service URL is configured.
            DiscoveryError: The fetch or parse failed; the registry keeps
                its previous contents.
        """
        if not self._stats_service_url:
            raise ConfigError("Discovery requires a stats service URL (set STATS_SERVICE_URL).")

        try:
            nodes = await fetch_nodes(
                self._http,
                self._stats_service_url,
                self._network_type,
                node_urls,
            )
        except DiscoveryError as exc:
            logger.error(
                "Discovery failed — keeping %d known node(s): %s",
                len(self._registry),
                exc,
                extra={"event": events.DISCOVERY_ERROR},
            )
            raise

        self._registry.replace(nodes, time.time())
        logger.info(
            "Discovered %d node(s).",
            len(nodes),
            extra={"event": events.DISCOVERY_OK},
        )
        return list(nodes)

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    async def ping_all(self) -> list[EndpointRecord]:
        """Probe every registered node with a bounded worker pool.

        Resolves even if every probe fails, and returns early (without
        error) after :meth:`abort_pinging`.

        Returns:
            The registry contents after the sweep.
        """
        self._state.reset()
        snapshot = self._registry.snapshot()
        token = SWEEP_ID_CTX.set(uuid.uuid4().hex[:8])
        try:
            logger.info(
                "Sweep started — %d node(s), %d worker(s).",
                len(snapshot),
                self._max_parallels,
                extra={"event": events.SWEEP_START},
            )
            t0 = time.monotonic()
            stats = await run_sweep(
                snapshot,
                functools.partial(self._ping, total=len(snapshot)),
                self._state,
                self._max_parallels,
            )
            stats.duration_s = time.monotonic() - t0
            logger.info(
                "%s",
                stats.format_report(),
                extra={"event": events.SWEEP_ABORT if stats.aborted else events.SWEEP_COMPLETE},
            )
        finally:
            SWEEP_ID_CTX.reset(token)

        self._last_sweep = stats
        return list(self._registry.snapshot())

    def abort_pinging(self) -> None:
        """Stop the running sweep at the workers' next pop.

        Every push channel still waiting for a greeting is closed so its
        probe fails now instead of at its timeout.  Returns immediately.
        """
        self._state.aborting = True
        channels = list(self._state.open_channels.values())
        for channel in channels:
            channel.close("aborted")
        logger.info(
            "Abort requested — closed %d open channel(s).",
            len(channels),
            extra={"event": events.ABORT_REQUESTED},
        )
        if channels:
            logger.debug(
                "Force-closed channels: %s",
                ", ".join(channel.url for channel in channels),
                extra={"event": events.CHANNEL_FORCE_CLOSED},
            )

    async def check_health(
        self,
        node_url: str,
        max_latency: float = math.inf,
    ) -> EndpointRecord | None:
        """Probe one registered node and return it if it is usable.

        Emits a single progress event (``index=1, total=1``) when a probe
        runs.

        Args:
            node_url: REST gateway URL of a registered node.
            max_latency: Latency cap in milliseconds.

        Returns:
            The record if the probe succeeded within *max_latency*;
            ``None`` otherwise, or when no registered node has that URL (in
            which case nothing is probed).
        """
        self._state.reset()
        node = self._registry.find(node_url, self._network_type)
        if node is None:
            logger.debug("Health check skipped — %s is not registered.", node_url)
            return None

        await self._prober.probe(node, self._state)
        self._progress.publish(ProgressEvent(node=node, index=self._state.next_index(), total=1))

        healthy = node.is_healthy and node.latency is not None and node.latency <= max_latency
        logger.info(
            "Health check %s: %s",
            "passed" if healthy else "failed",
            node,
            extra={"event": events.HEALTH_CHECK},
        )
        return node if healthy else None

    async def _ping(self, node: EndpointRecord, total: int) -> None:
        await self._prober.probe(node, self._state)
        self._progress.publish(
            ProgressEvent(node=node, index=self._state.next_index(), total=total)
        )

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def ranked_table(self, max_latency: float = math.inf) -> list[EndpointRecord]:
        """Healthy nodes within *max_latency* ms, fastest first."""
        return rank_nodes(self._registry.snapshot(), self._network_type, max_latency)

    def pick_multi(
        self,
        count: int,
        top: int | None = None,
        max_latency: float = math.inf,
    ) -> list[EndpointRecord]:
        """Pick up to *count* distinct nodes at random among the fastest *top*.

        Args:
            count: Number of nodes wanted.
            top: Size of the fast pool; ``None`` means the whole table.
            max_latency: Latency cap in milliseconds.
        """
        return pick_nodes(self.ranked_table(max_latency), count, top, self._rng)

    def pick_one(
        self,
        top: int | None = None,
        max_latency: float = math.inf,
    ) -> EndpointRecord | None:
        """Pick one node at random among the fastest *top*, or ``None``."""
        picked = self.pick_multi(1, top, max_latency)
        return picked[0] if picked else None
