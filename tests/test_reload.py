"""Tests for the push/pull reload strategy."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from fakes import SERVERS, FakeConnector, FakeHost, Recorder, settle

from crisscross_guest.cache.reload import ReloadStrategy
from crisscross_guest.cache.store import CacheStore
from crisscross_guest.errors import (
    ConfigurationError,
    MalformedResponseError,
    ReloadTimeoutError,
    TransportError,
)
from crisscross_guest.events import EventBus
from crisscross_guest.transport import PullClient, TransportProbe


def _strategy(bus: EventBus, store: CacheStore, fake_host: FakeHost, connector=None, **kw):
    probe = TransportProbe(bus, connect=connector or FakeConnector())
    puller = PullClient(transport=fake_host.transport)
    kw.setdefault("host", "h")
    kw.setdefault("port", 1)
    return ReloadStrategy(store, probe, puller, bus, **kw), probe


class TestPull:
    @pytest.mark.asyncio
    async def test_pull_when_push_unavailable(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        strategy, _ = _strategy(bus, store, fake_host)
        cb = MagicMock()

        await strategy.trigger_reload(cb)

        assert len(fake_host.requests) == 1
        cb.assert_called_once_with(store.servers)
        assert len(store) == len(SERVERS)
        assert strategy.pull_requests == 1
        assert strategy.push_requests == 0

    @pytest.mark.asyncio
    async def test_malformed_pull_keeps_callback_queued(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        errors = Recorder()
        bus.subscribe("error", errors)
        fake_host.body = "<html>oops</html>"
        strategy, _ = _strategy(bus, store, fake_host)
        cb = MagicMock()

        await strategy.trigger_reload(cb)

        cb.assert_not_called()
        assert store.pending_count == 1
        assert isinstance(errors.calls[0][0], MalformedResponseError)

        # The next good reload satisfies the queued callback.
        fake_host.body = None
        await strategy.trigger_reload()
        cb.assert_called_once()

    @pytest.mark.asyncio
    async def test_network_failure_is_published_and_raised(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        errors = Recorder()
        bus.subscribe("error", errors)
        fake_host.status_code = 500
        strategy, _ = _strategy(bus, store, fake_host)

        with pytest.raises(TransportError):
            await strategy.trigger_reload()

        assert errors.count == 1
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_pull_without_endpoint(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        errors = Recorder()
        bus.subscribe("error", errors)
        strategy, _ = _strategy(bus, store, fake_host, host=None, port=None)

        with pytest.raises(ConfigurationError):
            await strategy.trigger_reload()

        assert isinstance(errors.calls[0][0], ConfigurationError)
        assert fake_host.requests == []


class TestPush:
    @pytest.mark.asyncio
    async def test_push_sends_listservers(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        connector = FakeConnector()
        strategy, probe = _strategy(bus, store, fake_host, connector)
        probe.attempt_upgrade("h", 1)
        await settle()
        cb = MagicMock()

        await strategy.trigger_reload(cb)

        assert connector.connection.sent_json() == [{"type": "listservers"}]
        assert fake_host.requests == []
        assert strategy.push_requests == 1
        # The reply arrives later through the dispatch table.
        cb.assert_not_called()
        store.apply(SERVERS)
        cb.assert_called_once()
        await probe.close()


class TestAwaitableReload:
    @pytest.mark.asyncio
    async def test_reload_returns_snapshot(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        strategy, _ = _strategy(bus, store, fake_host)
        servers = await strategy.reload(timeout=1)
        assert [s.name for s in servers] == [s["name"] for s in SERVERS]

    @pytest.mark.asyncio
    async def test_reload_times_out_and_drops_waiter(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        fake_host.body = "not json"
        strategy, _ = _strategy(bus, store, fake_host)

        with pytest.raises(ReloadTimeoutError) as exc_info:
            await strategy.reload(timeout=0.05)

        assert exc_info.value.timeout == 0.05
        assert store.pending_count == 0

    @pytest.mark.asyncio
    async def test_reload_network_failure_drops_waiter(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        fake_host.status_code = 502
        strategy, _ = _strategy(bus, store, fake_host)
        with pytest.raises(TransportError):
            await strategy.reload(timeout=1)
        assert store.pending_count == 0


class TestBackgroundReload:
    @pytest.mark.asyncio
    async def test_spawn_reload_queues_callback_immediately(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        strategy, _ = _strategy(bus, store, fake_host)
        cb = MagicMock()

        task = strategy.spawn_reload(cb)
        assert store.pending_count == 1
        assert strategy.background_count == 1

        await task
        cb.assert_called_once()
        await settle()
        assert strategy.background_count == 0

    @pytest.mark.asyncio
    async def test_failed_background_reload_is_not_raised(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        fake_host.status_code = 500
        strategy, _ = _strategy(bus, store, fake_host)
        task = strategy.spawn_reload()
        await asyncio.gather(task, return_exceptions=True)
        await settle()
        assert strategy.background_count == 0

    @pytest.mark.asyncio
    async def test_cancel_background(
        self, bus: EventBus, store: CacheStore, fake_host: FakeHost
    ) -> None:
        strategy, _ = _strategy(bus, store, fake_host)
        task = strategy.spawn_reload()
        await strategy.cancel_background()
        assert task.cancelled()
