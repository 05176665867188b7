"""Shared pytest fixtures and configuration for the node tracker test suite.

This file is loaded automatically by pytest before any test module.
It provides project-wide fixtures used across unit and integration tests:
raw stats-service descriptors, an in-memory control-plane transport, and a
fake WebSocket ``connect`` that never touches the network.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
from collections.abc import Callable
from typing import Any

import httpx
import pytest
from pydantic_settings import SettingsConfigDict

from nodetracker.core import configure_logging
from nodetracker.core.settings import Settings
from nodetracker.tracker.http_client import NodeHttpClient

TESTNET = 152
MAINNET = 104


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _configure_test_logging() -> None:
    """Force DEBUG logging in text format for every test.

    ``force=True`` applies the configuration even when pytest's own
    ``log_cli`` handler is already present.
    """
    configure_logging(level="DEBUG", fmt="text", force=True)


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove every tracker env var for the duration of a test.

    Also disables pydantic-settings ``.env`` loading so a developer's local
    ``.env`` file cannot leak into Settings isolation tests.
    """
    prefixes = (
        "STATS_",
        "NETWORK_",
        "MAX_PARALLELS",
        "WEBSOCKET_",
        "NO_WEBSOCKET",
        "PROBE_",
        "DISCOVERY_",
        "VERIFY_",
        "CACHE_",
        "LOG_LEVEL",
        "LOG_FORMAT",
    )
    for key in list(os.environ):
        if any(key.startswith(prefix) for prefix in prefixes):
            monkeypatch.delenv(key, raising=False)

    monkeypatch.setattr(
        Settings,
        "model_config",
        SettingsConfigDict(
            env_file=None,
            env_file_encoding="utf-8",
            extra="ignore",
        ),
    )


# ---------------------------------------------------------------------------
# Raw descriptors
# ---------------------------------------------------------------------------


_BASE_DESCRIPTOR: dict[str, Any] = {
    "host": "node1.example.com",
    "friendlyName": "node1",
    "publicKey": "A" * 64,
    "version": 16777728,
    "roles": 3,
    "port": 7900,
    "networkIdentifier": TESTNET,
    "apiStatus": {
        "restGatewayUrl": "https://node1.example.com:3001",
        "isAvailable": True,
        "isHttpsEnabled": True,
        "restVersion": "2.4.4",
        "nodeStatus": {"apiNode": "up", "db": "up"},
        "webSocket": {
            "isAvailable": True,
            "wss": True,
            "url": "wss://node1.example.com:3001/ws",
        },
    },
}


def make_descriptor(host: str = "node1.example.com", **overrides: Any) -> dict[str, Any]:
    """Return a valid raw descriptor for *host*.

    Keyword overrides use dotted camelCase paths relative to the descriptor,
    e.g. ``make_descriptor(**{"apiStatus.nodeStatus.db": "down"})``.
    """
    raw = copy.deepcopy(_BASE_DESCRIPTOR)
    raw["host"] = host
    raw["friendlyName"] = host.split(".")[0]
    raw["apiStatus"]["restGatewayUrl"] = f"https://{host}:3001"
    raw["apiStatus"]["webSocket"]["url"] = f"wss://{host}:3001/ws"
    for path, value in overrides.items():
        *parents, leaf = path.split(".")
        target = raw
        for key in parents:
            target = target[key]
        target[leaf] = value
    return raw


@pytest.fixture()
def descriptor_factory() -> Callable[..., dict[str, Any]]:
    return make_descriptor


# ---------------------------------------------------------------------------
# Fake network
# ---------------------------------------------------------------------------


def network_properties(identifier: str = "testnet") -> dict[str, Any]:
    return {"network": {"identifier": identifier, "nodeEqualityStrategy": "host"}}


def control_transport(
    handler: Callable[[httpx.Request], httpx.Response] | None = None,
    *,
    nodes: list[dict[str, Any]] | None = None,
    identifier: str = "testnet",
) -> httpx.MockTransport:
    """Build a transport serving the stats list and every node's properties.

    ``/nodes`` returns *nodes*; ``/network/properties`` on any host returns a
    testnet payload.  A custom *handler* replaces both.
    """

    def _default(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/nodes":
            return httpx.Response(200, json=nodes or [])
        if request.url.path.endswith("/network/properties"):
            return httpx.Response(200, json=network_properties(identifier))
        return httpx.Response(404, text="not found")

    return httpx.MockTransport(handler or _default)


def make_http(transport: httpx.MockTransport, **kwargs: Any) -> NodeHttpClient:
    return NodeHttpClient(transport=transport, **kwargs)


class FakeWebSocket:
    """Stand-in for a ``websockets`` client connection."""

    def __init__(self, greeting: str | None, delay: float = 0.0) -> None:
        self._greeting = greeting
        self._delay = delay

    async def recv(self) -> str:
        if self._greeting is None:
            await asyncio.Event().wait()
        if self._delay:
            await asyncio.sleep(self._delay)
        return self._greeting

    async def __aenter__(self) -> FakeWebSocket:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


class FakeConnect:
    """``websockets.connect`` replacement.

    Args:
        silent: URLs whose socket never sends a greeting.
        refused: URLs whose connection fails with :class:`OSError`.
        delay: Seconds before a greeting is delivered.
    """

    def __init__(
        self,
        *,
        silent: set[str] | None = None,
        refused: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.silent = silent or set()
        self.refused = refused or set()
        self.delay = delay
        self.calls: list[str] = []

    def __call__(self, url: str, **kwargs: Any) -> FakeWebSocket:
        self.calls.append(url)
        if url in self.refused:
            raise OSError(f"connection refused: {url}")
        greeting = None if url in self.silent else json.dumps({"uid": "greeting"})
        return FakeWebSocket(greeting, self.delay)


@pytest.fixture()
def fake_connect() -> FakeConnect:
    return FakeConnect()


# ---------------------------------------------------------------------------
# Misc helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def logger() -> logging.Logger:
    """Return a ``logging.Logger`` scoped to the running test."""
    return logging.getLogger("tests")
