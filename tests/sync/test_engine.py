import asyncio

import pytest

from tests.factories import make_item
from tests.fakes import FakeEventResolver, FakeRemoteStore, settle
from wishlist_sync.clients.resilience import NetworkError, ValidationError
from wishlist_sync.models.enums import (
    ErrorKind,
    MutationState,
    NoticeKind,
    OperationKind,
    WishType,
)
from wishlist_sync.models.wishlist import WishlistState
from wishlist_sync.storage.kv import InMemoryKeyValueStorage
from wishlist_sync.sync.engine import WishlistSyncEngine
from wishlist_sync.sync.event_context import EventContext
from wishlist_sync.sync.notifications import NoticeBuffer


def _kinds(notices: NoticeBuffer) -> list[NoticeKind]:
    return [n.kind for n in notices.drain()]


@pytest.fixture
async def loaded(engine: WishlistSyncEngine, notices: NoticeBuffer) -> WishlistSyncEngine:
    """Engine with guest g1 loaded against an empty remote list."""
    await engine.load("g1")
    notices.drain()
    return engine


# ── Queue position scenario ──────────────────────────────────────────────────


class TestQueuePosition:
    async def test_add_behind_two_other_guests(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore, notices: NoticeBuffer
    ):
        remote.other_requests["prodA"] = 2

        result = await loaded.add_to_wishlist("prodA", "look-7", WishType.INDIVIDUAL)

        assert result.state == MutationState.CONFIRMED
        assert loaded.is_in_wishlist("prodA")
        assert loaded.get_position("prodA") == 3
        drained = notices.drain()
        assert [n.kind for n in drained] == [NoticeKind.ADDED, NoticeKind.QUEUE_POSITION]
        assert drained[1].position == 3

    async def test_position_of_absent_product(self, loaded: WishlistSyncEngine):
        assert loaded.get_position("prodZ") is None
        assert not loaded.is_in_wishlist("prodZ")


# ── Optimistic visibility ────────────────────────────────────────────────────


class TestOptimisticVisibility:
    async def test_add_visible_while_remote_pending(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore
    ):
        gate = remote.hold("insert")

        task = asyncio.create_task(loaded.add_to_wishlist("prodA"))
        await settle()

        assert loaded.is_in_wishlist("prodA")
        assert loaded.items[0].is_provisional
        assert loaded.is_syncing
        assert loaded.operation_state(OperationKind.ADD, "prodA") == (
            MutationState.OPTIMISTIC_APPLIED
        )

        gate.set()
        await task

        assert not loaded.items[0].is_provisional
        assert not loaded.is_syncing
        assert loaded.operation_state("add", "prodA") == MutationState.CONFIRMED

    async def test_listeners_see_optimistic_state(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore
    ):
        states: list[WishlistState] = []
        loaded.subscribe(states.append)
        gate = remote.hold("insert")

        task = asyncio.create_task(loaded.add_to_wishlist("prodA"))
        await settle()
        gate.set()
        await task

        first_with_item = next(s for s in states if s.items)
        assert first_with_item.items[0].is_provisional
        assert first_with_item.is_syncing
        assert not states[-1].is_syncing


# ── Failure handling ─────────────────────────────────────────────────────────


class TestFailureHandling:
    async def test_validation_failure_rolls_back(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore, notices: NoticeBuffer
    ):
        remote.fail("insert", ValidationError("violates foreign key constraint", code="23503"))

        result = await loaded.add_to_wishlist("prodA")

        assert result.state == MutationState.ROLLED_BACK
        assert not loaded.is_in_wishlist("prodA")
        assert loaded.operation_state(OperationKind.ADD, "prodA") == MutationState.ROLLED_BACK
        assert _kinds(notices) == [NoticeKind.ADDED, NoticeKind.ADD_FAILED]

    async def test_network_failure_keeps_item_offline(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore, notices: NoticeBuffer
    ):
        remote.fail("insert", NetworkError("offline"))

        result = await loaded.add_to_wishlist("prodA")

        assert result.state == MutationState.PENDING_SYNC
        assert result.error_kind == ErrorKind.NETWORK
        assert loaded.is_in_wishlist("prodA")
        assert loaded.items[0].pending_sync
        assert _kinds(notices) == [NoticeKind.ADDED, NoticeKind.ADDED_OFFLINE]

    async def test_remove_failure_restores_position(
        self, engine: WishlistSyncEngine, remote: FakeRemoteStore
    ):
        remote.seed("g1", "prodC")
        remote.seed("g1", "prodB", position=2)
        remote.seed("g1", "prodA")
        await engine.load("g1")
        remote.fail("delete", NetworkError("offline"))

        result = await engine.remove_from_wishlist("prodB")

        assert result.state == MutationState.ROLLED_BACK
        assert [i.product_id for i in engine.items] == ["prodA", "prodB", "prodC"]
        assert engine.get_position("prodB") == 2

    async def test_duplicate_add_rejected(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore, notices: NoticeBuffer
    ):
        await loaded.add_to_wishlist("prodA")
        notices.drain()

        result = await loaded.add_to_wishlist("prodA")

        assert result.state == MutationState.REJECTED
        assert len(remote.method_calls("insert")) == 1
        assert _kinds(notices) == [NoticeKind.DUPLICATE_REJECTED]


# ── Reconciliation ───────────────────────────────────────────────────────────


class TestReconciliation:
    async def test_reload_preserves_in_flight_add(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore
    ):
        remote.seed("g1", "prodB")
        gate = remote.hold("insert")

        task = asyncio.create_task(loaded.add_to_wishlist("prodA"))
        await settle()
        assert await loaded.sync_with_server()

        assert [i.product_id for i in loaded.items] == ["prodA", "prodB"]
        assert loaded.items[0].is_provisional

        gate.set()
        await task
        assert [i.product_id for i in loaded.items] == ["prodA", "prodB"]
        assert not loaded.items[0].is_provisional

    async def test_reload_hides_item_with_remove_in_flight(
        self, engine: WishlistSyncEngine, remote: FakeRemoteStore
    ):
        remote.seed("g1", "prodA")
        await engine.load("g1")
        gate = remote.hold("delete")

        task = asyncio.create_task(engine.remove_from_wishlist("prodA"))
        await settle()
        await engine.sync_with_server()

        assert not engine.is_in_wishlist("prodA")
        gate.set()
        await task

    async def test_sync_emits_synced(
        self, loaded: WishlistSyncEngine, notices: NoticeBuffer
    ):
        assert await loaded.sync_with_server()
        assert _kinds(notices) == [NoticeKind.SYNCED]
        assert not loaded.is_syncing

    async def test_sync_without_guest(self, engine: WishlistSyncEngine, remote: FakeRemoteStore):
        assert await engine.sync_with_server() is False
        assert remote.calls == []

    async def test_sync_failure_falls_back_without_synced_notice(
        self, loaded: WishlistSyncEngine, remote: FakeRemoteStore, notices: NoticeBuffer
    ):
        remote.fail("list_for_guest", NetworkError("offline"))

        assert await loaded.sync_with_server() is False
        assert _kinds(notices) == [NoticeKind.LOADED_FROM_CACHE]


# ── Offline cache ────────────────────────────────────────────────────────────


class TestOfflineCache:
    async def test_cache_survives_restart(
        self, remote: FakeRemoteStore, resolver: FakeEventResolver
    ):
        storage = InMemoryKeyValueStorage()
        first = WishlistSyncEngine(remote, EventContext(resolver), storage)
        await first.load("g1")
        await first.add_to_wishlist("prodA", "look-7", WishType.FULL_LOOK)
        await first.cache.flush()

        second = WishlistSyncEngine(remote, EventContext(resolver), storage)
        restored = await second.restore_cached()

        assert restored == first.items
        assert second.items[0].wish_type == WishType.FULL_LOOK

    async def test_offline_load_uses_cache(
        self, engine: WishlistSyncEngine, remote: FakeRemoteStore, storage, notices
    ):
        engine.cache.persist([make_item(id="wish-7", product_id="prodCached")])
        remote.fail("list_for_guest", NetworkError("offline"))

        assert await engine.load("g1") is False

        assert engine.is_in_wishlist("prodCached")
        assert _kinds(notices) == [NoticeKind.LOADED_FROM_CACHE]

    async def test_clear_wishlist(self, loaded: WishlistSyncEngine):
        await loaded.add_to_wishlist("prodA")

        loaded.clear_wishlist()

        assert loaded.items == []
        assert await loaded.cache.restore() == []


# ── Session handling ─────────────────────────────────────────────────────────


class TestSession:
    async def test_anonymous_adds_replayed_after_guest_loads(
        self, engine: WishlistSyncEngine, remote: FakeRemoteStore
    ):
        result = await engine.add_to_wishlist("prodA")
        assert result.state == MutationState.PENDING_SYNC
        assert await engine.replay_pending_sync() == []

        await engine.load("g1")
        assert engine.items[0].pending_sync

        replayed = await engine.replay_pending_sync()

        assert [r.state for r in replayed] == [MutationState.CONFIRMED]
        assert remote.method_calls("insert")[0].guest_id == "g1"
        assert not engine.items[0].pending_sync

    async def test_event_resolved_once_per_guest(
        self, loaded: WishlistSyncEngine, resolver: FakeEventResolver
    ):
        await loaded.add_to_wishlist("prodA")
        await loaded.add_to_wishlist("prodB")
        assert resolver.calls == 1

        await loaded.load("g2")
        await loaded.add_to_wishlist("prodC")
        assert resolver.calls == 2

    async def test_reload_same_guest_keeps_event(
        self, loaded: WishlistSyncEngine, resolver: FakeEventResolver
    ):
        await loaded.add_to_wishlist("prodA")
        await loaded.load("g1")
        await loaded.add_to_wishlist("prodB")
        assert resolver.calls == 1
