"""Load the authoritative wishlist and fold it into local state."""

import logging

from wishlist_sync.clients.remote_store import RemoteStore
from wishlist_sync.models.enums import NoticeKind, OperationKind
from wishlist_sync.models.wishlist import WishlistItem
from wishlist_sync.storage.local_cache import LocalCache
from wishlist_sync.sync.notifications import Notifier
from wishlist_sync.sync.state import LocalStateStore, operation_key

logger = logging.getLogger(__name__)


class Reconciler:
    """Replace local state with the remote list, falling back to the local cache.

    ``load`` never raises: a remote failure degrades to the last cached
    snapshot and a ``loaded_from_cache`` notice.
    """

    def __init__(
        self,
        store: LocalStateStore,
        cache: LocalCache,
        remote: RemoteStore,
        notifier: Notifier,
    ) -> None:
        self.store = store
        self.cache = cache
        self.remote = remote
        self.notifier = notifier

    async def load(self, guest_id: str | None) -> bool:
        """Load the wishlist for *guest_id*.

        Returns:
            True when the remote list was applied, False when state came from
            the local cache (anonymous session or remote failure).
        """
        self.store.set_loading(True)
        try:
            if not guest_id:
                self.store.replace_all(self.merge(await self.cache.restore()))
                return False

            try:
                records = await self.remote.list_for_guest(guest_id)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to load wishlist for guest %s: %s", guest_id, exc)
                self.store.replace_all(self.merge(await self.cache.restore()))
                self.notifier.emit(NoticeKind.LOADED_FROM_CACHE, detail=str(exc))
                return False

            items = [WishlistItem.from_record(record) for record in records]
            self.store.replace_all(self.merge(items))
            self.cache.persist(self.store.items)
            logger.info("Loaded %d wishlist items for guest %s", len(items), guest_id)
            return True
        finally:
            self.store.set_loading(False)

    def merge(self, incoming: list[WishlistItem]) -> list[WishlistItem]:
        """Fold *incoming* into current state without clobbering in-flight edits.

        Incoming items whose product has a remove in flight are skipped.
        Provisional local items with an add in flight, or waiting to sync,
        are kept at the head unless *incoming* already covers their product.
        """
        kept = [
            item for item in incoming
            if not self.store.is_pending(operation_key(OperationKind.REMOVE, item.product_id))
        ]
        covered = {item.product_id for item in kept}
        unconfirmed = [
            item for item in self.store.items
            if item.is_provisional
            and item.product_id not in covered
            and (
                item.pending_sync
                or self.store.is_pending(operation_key(OperationKind.ADD, item.product_id))
            )
        ]
        return unconfirmed + kept
