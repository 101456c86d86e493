"""Offline snapshot of the wishlist in local persistent storage."""

import asyncio
import logging
from collections.abc import Coroutine, Iterable
from datetime import datetime

from pydantic import TypeAdapter

from wishlist_sync.models.wishlist import WishlistItem, utc_now
from wishlist_sync.storage.kv import KeyValueStorage

logger = logging.getLogger(__name__)

DEFAULT_WISHLIST_KEY = "second-story-wishlist"
DEFAULT_LAST_SYNC_KEY = "second-story-last-sync"

_ITEMS = TypeAdapter(list[WishlistItem])


class LocalCache:
    """Persist and restore wishlist snapshots.

    ``persist`` serializes immediately and writes in the background: the
    caller never waits for, or fails because of, local storage. Writes are
    applied in the order they were requested.

    Args:
        storage: Key-value backend.
        wishlist_key: Key holding the JSON list of items.
        last_sync_key: Key holding the ISO timestamp of the last write.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        wishlist_key: str = DEFAULT_WISHLIST_KEY,
        last_sync_key: str = DEFAULT_LAST_SYNC_KEY,
    ) -> None:
        self.storage = storage
        self.wishlist_key = wishlist_key
        self.last_sync_key = last_sync_key
        self._lock = asyncio.Lock()
        self._writes: set[asyncio.Task] = set()

    def persist(self, items: Iterable[WishlistItem]) -> None:
        payload = _ITEMS.dump_json(list(items)).decode()
        self._schedule(self._write(payload, utc_now().isoformat()))

    def clear(self) -> None:
        self._schedule(self._remove())

    async def flush(self) -> None:
        """Wait until every scheduled write has been applied."""
        while self._writes:
            await asyncio.gather(*list(self._writes))

    async def restore(self) -> list[WishlistItem]:
        """Return the last persisted snapshot, or ``[]`` if missing or corrupt."""
        await self.flush()
        try:
            raw = await self.storage.get(self.wishlist_key)
        except Exception:  # noqa: BLE001
            logger.warning("Failed to read wishlist from local storage", exc_info=True)
            return []
        if not raw:
            return []
        try:
            return _ITEMS.validate_json(raw)
        except ValueError:
            logger.warning("Discarding unreadable local wishlist snapshot")
            return []

    async def last_synced_at(self) -> datetime | None:
        await self.flush()
        try:
            raw = await self.storage.get(self.last_sync_key)
            return datetime.fromisoformat(raw) if raw else None
        except Exception:  # noqa: BLE001
            logger.warning("Failed to read last sync marker", exc_info=True)
            return None

    def _schedule(self, coro: Coroutine) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; skipping local cache write")
            return
        task = loop.create_task(coro)
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _write(self, payload: str, synced_at: str) -> None:
        async with self._lock:
            try:
                await self.storage.set(self.wishlist_key, payload)
                await self.storage.set(self.last_sync_key, synced_at)
            except Exception:  # noqa: BLE001
                logger.warning("Failed to persist wishlist to local storage", exc_info=True)

    async def _remove(self) -> None:
        async with self._lock:
            try:
                await self.storage.remove(self.wishlist_key)
            except Exception:  # noqa: BLE001
                logger.warning("Failed to clear local wishlist", exc_info=True)
