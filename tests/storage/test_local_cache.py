import asyncio
import json
import logging

from tests.factories import make_item, make_provisional_item
from tests.fakes import FailingStorage
from wishlist_sync.models.enums import WishType
from wishlist_sync.storage.kv import InMemoryKeyValueStorage
from wishlist_sync.storage.local_cache import (
    DEFAULT_LAST_SYNC_KEY,
    DEFAULT_WISHLIST_KEY,
    LocalCache,
)


class SlowStorage(InMemoryKeyValueStorage):
    """Storage whose first write is slower than the ones after it."""

    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []
        self._delays = [0.02]

    async def set(self, key: str, value: str) -> None:
        if key == DEFAULT_WISHLIST_KEY:
            delay = self._delays.pop() if self._delays else 0
            await asyncio.sleep(delay)
            self.writes.append(value)
        await super().set(key, value)


# ── Persist & restore ────────────────────────────────────────────────────────


class TestPersistRestore:
    async def test_round_trip(self):
        cache = LocalCache(InMemoryKeyValueStorage())
        items = [
            make_item(product_id="prodA", position=3, product={"name": "Silk Trench Coat"}),
            make_provisional_item(product_id="prodB", wish_type=WishType.FULL_LOOK,
                                  pending_sync=True),
        ]

        cache.persist(items)
        restored = await cache.restore()

        assert restored == items

    async def test_persist_returns_before_write(self):
        storage = InMemoryKeyValueStorage()
        cache = LocalCache(storage)

        cache.persist([make_item()])

        assert DEFAULT_WISHLIST_KEY not in storage.data
        await cache.flush()
        assert DEFAULT_WISHLIST_KEY in storage.data

    async def test_persist_snapshots_at_call_time(self):
        cache = LocalCache(InMemoryKeyValueStorage())
        items = [make_item(product_id="prodA")]

        cache.persist(items)
        items.append(make_item(product_id="prodB"))
        restored = await cache.restore()

        assert [i.product_id for i in restored] == ["prodA"]

    async def test_stored_as_json_list(self):
        storage = InMemoryKeyValueStorage()
        cache = LocalCache(storage)

        cache.persist([make_item(product_id="prodA")])
        await cache.flush()

        data = json.loads(storage.data[DEFAULT_WISHLIST_KEY])
        assert data[0]["product_id"] == "prodA"
        assert data[0]["wish_type"] == "individual"

    async def test_custom_keys(self):
        storage = InMemoryKeyValueStorage()
        cache = LocalCache(storage, wishlist_key="wl", last_sync_key="ls")

        cache.persist([])
        await cache.flush()

        assert set(storage.data) == {"wl", "ls"}

    async def test_writes_applied_in_request_order(self):
        storage = SlowStorage()
        cache = LocalCache(storage)

        cache.persist([make_item(product_id="first")])
        cache.persist([make_item(product_id="second")])
        await cache.flush()

        assert [json.loads(w)[0]["product_id"] for w in storage.writes] == ["first", "second"]
        restored = await cache.restore()
        assert restored[0].product_id == "second"


# ── Restore edge cases ───────────────────────────────────────────────────────


class TestRestoreEdgeCases:
    async def test_missing_returns_empty(self):
        assert await LocalCache(InMemoryKeyValueStorage()).restore() == []

    async def test_corrupt_returns_empty(self, caplog):
        storage = InMemoryKeyValueStorage({DEFAULT_WISHLIST_KEY: "{not json"})
        with caplog.at_level(logging.WARNING):
            assert await LocalCache(storage).restore() == []
        assert "unreadable" in caplog.text

    async def test_wrong_shape_returns_empty(self):
        storage = InMemoryKeyValueStorage({DEFAULT_WISHLIST_KEY: '{"id": "x"}'})
        assert await LocalCache(storage).restore() == []

    async def test_read_failure_returns_empty(self):
        assert await LocalCache(FailingStorage()).restore() == []


# ── Failures & clearing ──────────────────────────────────────────────────────


class TestFailuresAndClear:
    async def test_write_failure_is_swallowed(self, caplog):
        cache = LocalCache(FailingStorage())

        with caplog.at_level(logging.WARNING):
            cache.persist([make_item()])
            await cache.flush()

        assert "Failed to persist" in caplog.text

    async def test_clear_removes_snapshot(self):
        storage = InMemoryKeyValueStorage()
        cache = LocalCache(storage)

        cache.persist([make_item()])
        cache.clear()

        assert await cache.restore() == []

    async def test_clear_failure_is_swallowed(self):
        cache = LocalCache(FailingStorage())
        cache.clear()
        await cache.flush()

    def test_persist_without_event_loop_is_skipped(self, caplog):
        storage = InMemoryKeyValueStorage()
        cache = LocalCache(storage)

        with caplog.at_level(logging.WARNING):
            cache.persist([make_item()])

        assert storage.data == {}
        assert "No running event loop" in caplog.text


# ── Last sync marker ─────────────────────────────────────────────────────────


class TestLastSyncedAt:
    async def test_none_before_first_write(self):
        assert await LocalCache(InMemoryKeyValueStorage()).last_synced_at() is None

    async def test_set_on_persist(self):
        storage = InMemoryKeyValueStorage()
        cache = LocalCache(storage)

        cache.persist([])
        marker = await cache.last_synced_at()

        assert marker is not None
        assert marker.isoformat() == storage.data[DEFAULT_LAST_SYNC_KEY]

    async def test_read_failure_returns_none(self):
        assert await LocalCache(FailingStorage()).last_synced_at() is None
