"""Tests for the server cache store and its refresh timer."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fakes import Recorder, settle

from crisscross_guest.cache.store import CacheStore, require_address
from crisscross_guest.cache.timer import RefreshTimer
from crisscross_guest.events import EventBus
from crisscross_guest.models import ServerRecord

A = {"name": "A", "type": "relay", "address": "1.1.1.1"}
B = {"name": "B", "type": "storage", "address": "2.2.2.2"}
C = {"name": "C", "type": "Relay", "address": "3.3.3.3"}


def _watch(bus: EventBus):
    added, changed = Recorder(), Recorder()
    bus.subscribe("serversadded", added)
    bus.subscribe("serverchange", changed)
    return added, changed


# ── apply ───────────────────────────────────────────────────────────────


class TestApply:
    def test_first_apply_scenario(self, bus: EventBus, store: CacheStore) -> None:
        added, changed = _watch(bus)
        store.apply([A])

        assert added.count == 1
        assert [s.name for s in added.calls[0][0]] == ["A"]
        assert changed.count == 1
        relays = store.list_servers("relay")
        assert len(relays) == 1
        assert relays[0].address == "1.1.1.1"

    def test_reapply_is_idempotent(self, bus: EventBus, store: CacheStore) -> None:
        store.apply([A, B])
        added, changed = _watch(bus)

        store.apply([A, B])

        assert added.count == 0
        assert changed.count == 0
        assert [s.name for s in store.servers] == ["A", "B"]

    def test_added_only_contains_new_names(self, bus: EventBus, store: CacheStore) -> None:
        store.apply([A, B])
        added, changed = _watch(bus)

        store.apply([{"name": "  a ", "type": "relay", "address": "9.9.9.9"}, C])

        assert [s.name for s in added.calls[0][0]] == ["C"]
        assert changed.count == 1
        assert [s.name for s in changed.calls[0][0]] == ["  a ", "C"]

    def test_removal_changes_without_additions(self, bus: EventBus, store: CacheStore) -> None:
        store.apply([A, B])
        added, changed = _watch(bus)

        store.apply([A])

        assert added.count == 0
        assert changed.count == 1

    def test_same_names_new_addresses_is_not_a_change(
        self, bus: EventBus, store: CacheStore
    ) -> None:
        store.apply([A])
        added, changed = _watch(bus)

        store.apply([{**A, "address": "4.4.4.4"}])

        assert added.count == 0
        assert changed.count == 0
        # Snapshot is still replaced.
        assert store.servers[0].address == "4.4.4.4"

    def test_same_length_with_rename_is_a_change(self, bus: EventBus, store: CacheStore) -> None:
        store.apply([A, B])
        _, changed = _watch(bus)
        store.apply([A, C])
        assert changed.count == 1

    def test_accepts_records_and_dicts(self, store: CacheStore) -> None:
        snapshot = store.apply([ServerRecord(**A), B])
        assert isinstance(snapshot, tuple)
        assert all(isinstance(s, ServerRecord) for s in snapshot)
        assert store.apply_count == 1

    def test_extra_fields_are_kept(self, store: CacheStore) -> None:
        store.apply([{**B, "region": "eu", "load": 3}])
        assert store.servers[0].extra == {"region": "eu", "load": 3}


# ── pending callbacks ───────────────────────────────────────────────────


class TestPendingCallbacks:
    def test_drained_exactly_once(self, store: CacheStore) -> None:
        first, second = MagicMock(), MagicMock()
        store.enqueue(first)
        store.enqueue(second)

        snapshot = store.apply([A])
        store.apply([A, B])

        first.assert_called_once_with(snapshot)
        second.assert_called_once_with(snapshot)
        assert store.pending_count == 0

    def test_callback_queued_during_drain_waits_for_next_apply(self, store: CacheStore) -> None:
        late = MagicMock()

        def early(servers) -> None:
            store.enqueue(late)

        store.enqueue(early)
        store.apply([A])
        late.assert_not_called()
        assert store.pending_count == 1

        store.apply([A, B])
        late.assert_called_once()

    def test_raising_callback_does_not_stop_the_rest(
        self, bus: EventBus, store: CacheStore
    ) -> None:
        errors = Recorder()
        bus.subscribe("error", errors)
        after = MagicMock()
        store.enqueue(MagicMock(side_effect=RuntimeError("boom")))
        store.enqueue(after)

        store.apply([A])

        after.assert_called_once()
        assert errors.count == 1
        assert isinstance(errors.calls[0][0], RuntimeError)

    def test_rejects_non_callable(self, store: CacheStore) -> None:
        with pytest.raises(TypeError):
            store.enqueue("not a callback")  # type: ignore[arg-type]

    def test_discard_pending(self, store: CacheStore) -> None:
        cb = MagicMock()
        store.enqueue(cb)
        assert store.discard_pending(cb) is True
        assert store.discard_pending(cb) is False
        store.apply([A])
        cb.assert_not_called()

    @pytest.mark.asyncio
    async def test_future_receives_snapshot(self, store: CacheStore) -> None:
        fut = asyncio.get_running_loop().create_future()
        store.enqueue(fut)
        snapshot = store.apply([A])
        assert fut.result() == snapshot

    @pytest.mark.asyncio
    async def test_async_callback_is_scheduled(self, store: CacheStore) -> None:
        cb = AsyncMock()
        store.enqueue(cb)
        snapshot = store.apply([A])
        await settle()
        cb.assert_awaited_once_with(snapshot)

    @pytest.mark.asyncio
    async def test_failing_async_callback_is_published(
        self, bus: EventBus, store: CacheStore
    ) -> None:
        errors = Recorder()
        bus.subscribe("error", errors)
        store.enqueue(AsyncMock(side_effect=ValueError("late failure")))
        store.apply([A])
        await settle()
        assert errors.count == 1
        assert str(errors.calls[0][0]) == "late failure"


# ── evict / list ────────────────────────────────────────────────────────


class TestEvict:
    def test_evict_is_case_and_space_insensitive(self, store: CacheStore) -> None:
        store.apply([{**A, "address": "Relay.Example:80"}, B])
        removed = store.evict("  relay.example:80 ")
        assert removed is not None and removed.name == "A"
        assert [s.name for s in store.servers] == ["B"]

    def test_evict_removes_first_match_only(self, store: CacheStore) -> None:
        store.apply([A, {**C, "address": "1.1.1.1"}])
        store.evict("1.1.1.1")
        assert [s.name for s in store.servers] == ["C"]

    def test_evict_miss_is_noop(self, bus: EventBus, store: CacheStore) -> None:
        store.apply([A])
        added, changed = _watch(bus)
        assert store.evict("8.8.8.8") is None
        assert len(store) == 1
        assert added.count == 0 and changed.count == 0

    @pytest.mark.parametrize("address", ["", "   ", None, 42])
    def test_evict_rejects_blank_address(self, store: CacheStore, address) -> None:
        with pytest.raises(ValueError):
            store.evict(address)

    def test_require_address_normalises(self) -> None:
        assert require_address(" 1.1.1.1 ") == "1.1.1.1"


class TestListServers:
    def test_empty_type_returns_everything(self, store: CacheStore) -> None:
        store.apply([A, B, C])
        assert len(store.list_servers()) == 3
        assert len(store.list_servers("   ")) == 3

    def test_filter_is_normalised(self, store: CacheStore) -> None:
        store.apply([A, B, C])
        assert [s.name for s in store.list_servers(" RELAY ")] == ["A", "C"]

    def test_unknown_type(self, store: CacheStore) -> None:
        store.apply([A])
        assert store.list_servers("storage") == ()

    def test_result_is_read_only(self, store: CacheStore) -> None:
        store.apply([A])
        view = store.list_servers()
        assert isinstance(view, tuple)
        store.apply([A, B])
        assert len(view) == 1


# ── refresh timer ───────────────────────────────────────────────────────


class TestRefreshTimer:
    @pytest.mark.asyncio
    async def test_timer_started_once_on_first_apply(self, bus: EventBus) -> None:
        refresh = AsyncMock()
        store = CacheStore(bus, cache_ttl=60.0, on_refresh=refresh)
        assert store.timer is None

        store.apply([A])
        timer = store.timer
        assert timer is not None and timer.running
        assert timer.interval == 60.0

        store.apply([A, B])
        assert store.timer is timer

        await store.stop()
        assert not timer.running

    @pytest.mark.asyncio
    async def test_timer_never_restarts_after_stop(self, bus: EventBus) -> None:
        store = CacheStore(bus, cache_ttl=60.0, on_refresh=AsyncMock())
        store.apply([A])
        await store.stop()
        store.apply([A, B])
        assert store.timer is not None
        assert not store.timer.running

    @pytest.mark.asyncio
    async def test_timer_ticks_and_survives_failures(self) -> None:
        calls = []

        async def action() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first tick fails")

        timer = RefreshTimer(0.01, action)
        timer.start()
        await asyncio.sleep(0.1)
        await timer.stop()
        assert timer.ticks >= 2
        assert len(calls) == timer.ticks

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self) -> None:
        timer = RefreshTimer(60.0, AsyncMock())
        timer.start()
        task = timer._task
        timer.start()
        assert timer._task is task
        await timer.stop()

    @pytest.mark.asyncio
    async def test_unexpected_failure_reaches_error_hook(self) -> None:
        errors = []

        async def action() -> None:
            raise RuntimeError("boom")

        timer = RefreshTimer(0.01, action, on_error=errors.append)
        timer.start()
        await asyncio.sleep(0.05)
        await timer.stop()
        assert errors
        assert isinstance(errors[0], RuntimeError)

    @pytest.mark.asyncio
    async def test_store_publishes_unexpected_refresh_failure(self, bus: EventBus) -> None:
        errors = Recorder()
        bus.subscribe("error", errors)
        store = CacheStore(bus, cache_ttl=0.01, on_refresh=AsyncMock(side_effect=KeyError("x")))
        store.apply([A])
        await asyncio.sleep(0.05)
        await store.stop()
        assert errors.count >= 1
        assert isinstance(errors.calls[0][0], KeyError)
