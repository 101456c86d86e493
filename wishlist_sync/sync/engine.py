"""Public entry point of the wishlist synchronization engine."""

from collections.abc import Callable

from wishlist_sync.clients.remote_store import RemoteStore
from wishlist_sync.models.enums import MutationState, NoticeKind, OperationKind, WishType
from wishlist_sync.models.mutation import MutationResult
from wishlist_sync.models.wishlist import WishlistItem
from wishlist_sync.storage.kv import KeyValueStorage
from wishlist_sync.storage.local_cache import (
    DEFAULT_LAST_SYNC_KEY,
    DEFAULT_WISHLIST_KEY,
    LocalCache,
)
from wishlist_sync.sync import queries
from wishlist_sync.sync.event_context import EventContext
from wishlist_sync.sync.mutations import MutationPipeline
from wishlist_sync.sync.notifications import NotificationSink, Notifier
from wishlist_sync.sync.reconciler import Reconciler
from wishlist_sync.sync.state import LocalStateStore, StateListener


class WishlistSyncEngine:
    """Optimistic wishlist for one guest session.

    Wires the local state store, local cache, reconciler and mutation
    pipeline together and exposes the operations the UI layer calls.

    Args:
        remote: Authoritative wishlist store.
        events: Session-scoped active event identity.
        storage: Local persistent key-value storage for the offline snapshot.
        sinks: Notification sinks; defaults to logging only.
        wishlist_key: Storage key of the snapshot.
        last_sync_key: Storage key of the last-sync marker.
    """

    def __init__(
        self,
        remote: RemoteStore,
        events: EventContext,
        storage: KeyValueStorage,
        *sinks: NotificationSink,
        wishlist_key: str = DEFAULT_WISHLIST_KEY,
        last_sync_key: str = DEFAULT_LAST_SYNC_KEY,
    ) -> None:
        self.guest_id: str | None = None
        self.events = events
        self.store = LocalStateStore()
        self.cache = LocalCache(storage, wishlist_key, last_sync_key)
        self.notifier = Notifier(*sinks)
        self.reconciler = Reconciler(self.store, self.cache, remote, self.notifier)
        self.mutations = MutationPipeline(
            self.store, self.cache, remote, events, self.notifier,
        )

    # ── Observable state ──────────────────────────────────────────────────

    @property
    def items(self) -> list[WishlistItem]:
        return self.store.items

    @property
    def is_syncing(self) -> bool:
        return self.store.is_syncing

    @property
    def is_loading(self) -> bool:
        return self.store.is_loading

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    # ── Loading ───────────────────────────────────────────────────────────

    async def restore_cached(self) -> list[WishlistItem]:
        """Show the last offline snapshot before any remote call completes."""
        items = await self.cache.restore()
        self.store.replace_all(self.reconciler.merge(items))
        return self.store.items

    async def load(self, guest_id: str | None) -> bool:
        """Load the wishlist of *guest_id* (cache only when None). Never raises."""
        if guest_id != self.guest_id:
            self.events.reset()
        self.guest_id = guest_id
        return await self.reconciler.load(guest_id)

    async def sync_with_server(self) -> bool:
        """User-triggered refresh from the remote store."""
        if not self.guest_id:
            return False
        self.store.set_syncing(True)
        try:
            synced = await self.reconciler.load(self.guest_id)
        finally:
            self.store.set_syncing(False)
        if synced:
            self.notifier.emit(NoticeKind.SYNCED)
        return synced

    # ── Mutations ─────────────────────────────────────────────────────────

    async def add_to_wishlist(
        self,
        product_id: str,
        look_id: str = "",
        wish_type: WishType | str = WishType.INDIVIDUAL,
    ) -> MutationResult:
        return await self.mutations.add(
            product_id, look_id, wish_type, guest_id=self.guest_id,
        )

    async def remove_from_wishlist(self, product_id: str) -> MutationResult:
        return await self.mutations.remove(product_id, guest_id=self.guest_id)

    async def replay_pending_sync(self) -> list[MutationResult]:
        """Retry adds that were kept locally through a network failure."""
        if not self.guest_id:
            return []
        return await self.mutations.replay_pending(self.guest_id)

    def clear_wishlist(self) -> None:
        self.store.replace_all([])
        self.cache.clear()

    def operation_state(self, kind: OperationKind | str, product_id: str) -> MutationState:
        return self.mutations.state_of(OperationKind(kind), product_id)

    # ── Queries ───────────────────────────────────────────────────────────

    def is_in_wishlist(self, product_id: str) -> bool:
        return queries.is_in_wishlist(self.store.items, product_id)

    def get_position(self, product_id: str) -> int | None:
        return queries.get_position(self.store.items, product_id)
