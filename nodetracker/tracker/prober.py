"""Single-node reachability check.

A probe has two phases:

1. **Control call** — ``GET {rest_gateway_url}/network/properties``.  The
   wall-clock time of this request is the node's latency.  When network
   verification is on, the reported ``network.identifier`` must match the
   tracker's network type.
2. **Push-channel challenge** (skippable) — open the node's WebSocket and
   wait for the greeting the gateway sends right after connecting.  Nothing
   is sent.  A close, an error, or no greeting within the timeout fails the
   probe.

:meth:`Prober.probe` never raises (apart from task cancellation): every
failure is written into the record via
:meth:`~nodetracker.core.models.EndpointRecord.mark_failed`.

While phase 2 is waiting, the channel is listed in the sweep's
``open_channels`` so :meth:`~nodetracker.tracker.service.NodeTracker.abort_pinging`
can close it and make the wait fail at once instead of running out its
timeout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Final

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from nodetracker.core import events
from nodetracker.core.exceptions import (
    ControlCallError,
    NetworkMismatchError,
    ProbeError,
    PushChannelError,
)
from nodetracker.core.models import NETWORK_NAMES, EndpointRecord
from nodetracker.tracker.http_client import NodeHttpClient

if TYPE_CHECKING:
    from nodetracker.tracker.sweep import SweepState

__all__ = ["PushChannel", "Prober", "network_properties_url"]

logger = logging.getLogger(__name__)

#: Seconds the WebSocket closing handshake may take once a probe is done.
_CLOSE_TIMEOUT: Final[float] = 1.0

#: Prefix of the error recorded when the push channel is closed under a probe.
CHANNEL_INTERRUPTED: Final[str] = "WebSocket connection interrupted"

Connect = Callable[..., Any]


def network_properties_url(control_url: str) -> str:
    """Return the latency-probe URL for a REST gateway."""
    return control_url.rstrip("/") + "/network/properties"


class PushChannel:
    """One push-channel connection attempt, closable from outside.

    :meth:`close` only flips an :class:`asyncio.Event`; the coroutine blocked
    in :meth:`await_greeting` notices, tears the socket down itself, and
    fails.  :meth:`close` is idempotent and safe to call while the channel
    is completing normally; the first reason given wins.

    Args:
        url: WebSocket URL.
        connect: ``websockets.connect``-compatible factory.
    """

    def __init__(self, url: str, connect: Connect = websockets.connect) -> None:
        self.id = uuid.uuid4().hex
        self.url = url
        self._connect = connect
        self._closed = asyncio.Event()
        self._close_reason: str | None = None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self, reason: str = "closed") -> None:
        if self._closed.is_set():
            return
        self._close_reason = reason
        self._closed.set()

    async def await_greeting(self, timeout: float) -> None:
        """Connect and wait for the first message.

        Raises:
            PushChannelError: The channel closed, errored, or stayed silent
                for *timeout* seconds.
        """
        greeting = asyncio.ensure_future(self._receive_greeting())
        closed = asyncio.ensure_future(self._closed.wait())
        try:
            done, _ = await asyncio.wait(
                {greeting, closed},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if greeting in done:
                greeting.result()
                return
            if closed in done:
                raise PushChannelError(self.url, f"{CHANNEL_INTERRUPTED}: {self._close_reason}")
            self.close("timed out")
            raise PushChannelError(self.url, f"No WebSocket greeting within {timeout:g} s")
        finally:
            self.close()
            for task in (greeting, closed):
                if not task.done():
                    task.cancel()
            await asyncio.gather(greeting, closed, return_exceptions=True)

    async def _receive_greeting(self) -> None:
        try:
            async with self._connect(
                self.url, open_timeout=None, close_timeout=_CLOSE_TIMEOUT
            ) as ws:
                message = await ws.recv()
        except ConnectionClosed as exc:
            raise PushChannelError(self.url, f"{CHANNEL_INTERRUPTED}: {exc}") from exc
        except (OSError, WebSocketException, asyncio.TimeoutError) as exc:
            raise PushChannelError(self.url, f"WebSocket error: {exc}") from exc
        logger.debug("Greeting from %s: %.60r", self.url, message)


class Prober:
    """Probe nodes and record the outcome on each record.

    Args:
        http: Client for the control call.  Probes use a single attempt.
        network_type: Network identifier the tracker is configured for.
        websocket_timeout: Seconds to wait for the push-channel greeting.
        no_websocket_challenge: Skip phase 2 entirely.
        verify_network: Compare the node's reported network with
            *network_type* when the response carries one.
        connect: WebSocket factory; replaced with a fake in tests.
    """

    def __init__(
        self,
        http: NodeHttpClient,
        *,
        network_type: int,
        websocket_timeout: float,
        no_websocket_challenge: bool = False,
        verify_network: bool = True,
        connect: Connect = websockets.connect,
    ) -> None:
        self._http = http
        self._network_type = network_type
        self._websocket_timeout = websocket_timeout
        self._no_websocket_challenge = no_websocket_challenge
        self._verify_network = verify_network
        self._connect = connect

    async def probe(self, node: EndpointRecord, state: SweepState) -> None:
        """Check *node* and write ``latency`` or ``latest_error`` onto it."""
        try:
            latency = await self._measure_latency(node)
            if not self._no_websocket_challenge:
                await self._challenge_push_channel(node.push_url, state)
        except ProbeError as exc:
            node.mark_failed(str(exc))
        except Exception as exc:  # noqa: BLE001
            node.mark_failed(f"{type(exc).__name__}: {exc}")
        else:
            node.mark_reachable(latency)

        if node.latest_error is None:
            logger.debug("PROBE OK  %s", node, extra={"event": events.PROBE_OK})
        else:
            logger.debug("PROBE FAIL  %s", node, extra={"event": events.PROBE_FAILED})

    # ------------------------------------------------------------------
    # Phase 1: control call
    # ------------------------------------------------------------------

    async def _measure_latency(self, node: EndpointRecord) -> float:
        url = network_properties_url(node.control_url)
        started = time.monotonic()
        try:
            response = await self._http.get(url, max_attempts=1)
        except httpx.HTTPStatusError as exc:
            raise ControlCallError(url, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ControlCallError(url, f"{type(exc).__name__}: {exc}") from exc
        latency = (time.monotonic() - started) * 1000.0

        if self._verify_network:
            self._check_network(url, response)
        return latency

    def _check_network(self, url: str, response: httpx.Response) -> None:
        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ControlCallError(url, "Malformed network properties response") from exc

        network = payload.get("network") if isinstance(payload, dict) else None
        reported = network.get("identifier") if isinstance(network, dict) else None
        expected = NETWORK_NAMES.get(self._network_type)
        if reported and expected and reported != expected:
            raise NetworkMismatchError(url, expected, str(reported))

    # ------------------------------------------------------------------
    # Phase 2: push channel
    # ------------------------------------------------------------------

    async def _challenge_push_channel(self, url: str, state: SweepState) -> None:
        if state.aborting:
            raise PushChannelError(url, CHANNEL_INTERRUPTED)

        channel = PushChannel(url, connect=self._connect)
        state.open_channels[channel.id] = channel
        try:
            await channel.await_greeting(self._websocket_timeout)
        finally:
            state.open_channels.pop(channel.id, None)
