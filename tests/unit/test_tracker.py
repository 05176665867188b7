"""Unit tests for the ``NodeTracker`` facade.

Tests cover:
- Construction — option validation (``ConfigError``), ``from_settings``.
- ``ping_all`` — progress events with a strictly increasing counter,
  every record resolved, sweep summary stored.
- ``abort_pinging`` — open channels force-closed, unpopped records left
  unchanged, ``ping_all`` returns promptly.
- ``check_health`` — unknown URL performs no probe, latency cap, abort flag
  reset.
"""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from nodetracker.core import events
from nodetracker.core.exceptions import ConfigError
from nodetracker.core.models import ProgressEvent
from nodetracker.core.settings import Settings
from nodetracker.tracker.prober import CHANNEL_INTERRUPTED
from nodetracker.tracker.service import NodeTracker
from tests.conftest import TESTNET, FakeConnect, control_transport, make_descriptor, make_http


def _make_tracker(connect: FakeConnect, hosts: int = 4, **kwargs: object) -> NodeTracker:
    return NodeTracker(
        "https://stats.example.com/nodes",
        TESTNET,
        cached_nodes=[make_descriptor(f"n{i}.example.com") for i in range(hosts)],
        http_client=make_http(control_transport()),
        connect=connect,
        **kwargs,  # type: ignore[arg-type]
    )


async def _wait_for_channels(tracker: NodeTracker, count: int) -> None:
    for _ in range(400):
        if tracker.num_active_channels >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError(f"only {tracker.num_active_channels} channel(s) opened")


class TestConstruction:
    @pytest.mark.parametrize(
        "kwargs",
        [{"max_parallels": 0}, {"max_parallels": -1}, {"websocket_timeout": 0}],
    )
    def test_invalid_options_rejected(self, kwargs: dict[str, int]) -> None:
        with pytest.raises(ConfigError):
            NodeTracker("https://stats.example.com/nodes", TESTNET, **kwargs)

    def test_defaults(self) -> None:
        tracker = NodeTracker("https://stats.example.com/nodes", TESTNET)
        assert tracker.network_type == TESTNET
        assert tracker.available_nodes == ()
        assert tracker.discovered_at is None
        assert not tracker.is_aborting
        assert tracker.num_active_channels == 0
        assert tracker.last_sweep is None

    def test_from_settings(self, clean_env: None, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STATS_SERVICE_URL", "https://stats.example.com/nodes")
        monkeypatch.setenv("MAX_PARALLELS", "3")
        tracker = NodeTracker.from_settings(
            Settings(), cached_nodes=[make_descriptor()], cache_timestamp=9.0
        )
        assert tracker._max_parallels == 3
        assert len(tracker.available_nodes) == 1
        assert tracker.discovered_at == 9.0


class TestPingAll:
    @pytest.mark.asyncio
    async def test_every_record_resolved(self) -> None:
        refused = FakeConnect(refused={"wss://n1.example.com:3001/ws"})
        async with _make_tracker(refused, max_parallels=2) as tracker:
            nodes = await tracker.ping_all()
        assert len(nodes) == 4
        for node in nodes:
            assert (node.latency is None) != (node.latest_error is None)
        assert tracker.last_sweep is not None
        assert tracker.last_sweep.reachable == 3
        assert tracker.last_sweep.failed == 1

    @pytest.mark.asyncio
    async def test_progress_events(self, fake_connect: FakeConnect) -> None:
        events: list[ProgressEvent] = []
        async with _make_tracker(fake_connect, hosts=5, max_parallels=3) as tracker:
            tracker.progress.subscribe(events.append)
            await tracker.ping_all()
            await tracker.ping_all()
        first, second = events[:5], events[5:]
        assert [e.index for e in first] == [1, 2, 3, 4, 5]
        assert [e.index for e in second] == [1, 2, 3, 4, 5]
        assert {e.total for e in events} == {5}
        assert {e.node.host for e in first} == {f"n{i}.example.com" for i in range(5)}

    @pytest.mark.asyncio
    async def test_empty_registry(self, fake_connect: FakeConnect) -> None:
        async with _make_tracker(fake_connect, hosts=0) as tracker:
            assert await tracker.ping_all() == []


class TestAbortPinging:
    @pytest.mark.asyncio
    async def test_abort_closes_channels_and_returns(self) -> None:
        hosts = 5
        silent = {f"wss://n{i}.example.com:3001/ws" for i in range(hosts)}
        tracker = _make_tracker(
            FakeConnect(silent=silent), hosts=hosts, max_parallels=2, websocket_timeout=30000
        )
        for node in tracker.available_nodes:
            node.mark_reachable(77.0)

        async with tracker:
            sweep = asyncio.create_task(tracker.ping_all())
            await _wait_for_channels(tracker, 2)
            tracker.abort_pinging()
            assert tracker.is_aborting
            nodes = await asyncio.wait_for(sweep, timeout=2.0)

        interrupted = [n for n in nodes if n.latest_error]
        untouched = [n for n in nodes if n.latency == 77.0]
        assert len(interrupted) == 2
        assert all(n.latest_error.startswith(CHANNEL_INTERRUPTED) for n in interrupted)
        assert len(untouched) == 3
        assert tracker.num_active_channels == 0
        assert tracker.last_sweep.aborted

    @pytest.mark.asyncio
    async def test_abort_without_sweep(self, fake_connect: FakeConnect) -> None:
        async with _make_tracker(fake_connect) as tracker:
            tracker.abort_pinging()
            assert tracker.is_aborting
            await tracker.ping_all()
            assert not tracker.is_aborting


class TestCheckHealth:
    @pytest.mark.asyncio
    async def test_unknown_url_no_probe(self, fake_connect: FakeConnect) -> None:
        events: list[ProgressEvent] = []
        async with _make_tracker(fake_connect) as tracker:
            tracker.progress.subscribe(events.append)
            assert await tracker.check_health("https://unknown.example.com:3001") is None
        assert events == []
        assert fake_connect.calls == []
        assert all(n.latency is None and n.latest_error is None for n in tracker.available_nodes)

    @pytest.mark.asyncio
    async def test_healthy_node_returned(self, fake_connect: FakeConnect) -> None:
        events: list[ProgressEvent] = []
        async with _make_tracker(fake_connect) as tracker:
            tracker.progress.subscribe(events.append)
            node = await tracker.check_health("https://n2.example.com:3001")
        assert node is not None and node.host == "n2.example.com"
        assert node.is_healthy
        assert [(e.index, e.total) for e in events] == [(1, 1)]
        assert fake_connect.calls == ["wss://n2.example.com:3001/ws"]

    @pytest.mark.asyncio
    async def test_latency_cap(self, fake_connect: FakeConnect) -> None:
        async with _make_tracker(fake_connect) as tracker:
            assert await tracker.check_health("https://n0.example.com:3001", max_latency=-1) is None
            probed = tracker.available_nodes[0]
        assert probed.latency is not None

    @pytest.mark.asyncio
    async def test_failed_probe_returns_none(self) -> None:
        connect = FakeConnect(refused={"wss://n0.example.com:3001/ws"})
        async with _make_tracker(connect) as tracker:
            assert await tracker.check_health("https://n0.example.com:3001") is None
            assert tracker.available_nodes[0].latest_error

    @pytest.mark.asyncio
    async def test_resets_abort_flag(self, fake_connect: FakeConnect) -> None:
        async with _make_tracker(fake_connect) as tracker:
            tracker.abort_pinging()
            node = await tracker.check_health("https://n0.example.com:3001")
        assert node is not None
        assert not tracker.is_aborting

    @pytest.mark.asyncio
    async def test_resets_sweep_counter(self, fake_connect: FakeConnect) -> None:
        events_seen: list[ProgressEvent] = []
        async with _make_tracker(fake_connect) as tracker:
            await tracker.ping_all()
            assert tracker._state.completed == 4
            tracker.progress.subscribe(events_seen.append)
            await tracker.check_health("https://n1.example.com:3001")
            assert tracker._state.completed == 1
        assert [e.index for e in events_seen] == [1]


def _logged_events(mock_logger: object) -> list[str]:
    logged = []
    for method in ("debug", "info", "warning", "error"):
        for call in getattr(mock_logger, method).call_args_list:
            event = call.kwargs.get("extra", {}).get("event")
            if event is not None:
                logged.append(event)
    return logged


class TestAbortLogging:
    @pytest.mark.asyncio
    async def test_abort_request_and_sweep_end_logged_separately(self) -> None:
        silent = {f"wss://n{i}.example.com:3001/ws" for i in range(3)}
        tracker = _make_tracker(
            FakeConnect(silent=silent), hosts=3, max_parallels=1, websocket_timeout=30000
        )
        with patch("nodetracker.tracker.service.logger") as mock_logger:
            async with tracker:
                sweep = asyncio.create_task(tracker.ping_all())
                await _wait_for_channels(tracker, 1)
                tracker.abort_pinging()
                await asyncio.wait_for(sweep, timeout=2.0)

        logged = _logged_events(mock_logger)
        assert logged.count(events.ABORT_REQUESTED) == 1
        assert logged.count(events.SWEEP_ABORT) == 1
        assert events.CHANNEL_FORCE_CLOSED in logged
        assert events.SWEEP_COMPLETE not in logged
