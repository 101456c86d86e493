"""In-memory wishlist state and the set of in-flight operations."""

import logging
from collections import Counter
from collections.abc import Callable, Iterable

from wishlist_sync.models.enums import OperationKind
from wishlist_sync.models.wishlist import WishlistItem, WishlistState
from wishlist_sync.sync import queries

logger = logging.getLogger(__name__)

StateListener = Callable[[WishlistState], None]


def operation_key(kind: OperationKind, product_id: str) -> str:
    """Pending-set token, e.g. ``add:prod-1``."""
    return f"{kind}:{product_id}"


class LocalStateStore:
    """Ordered wishlist (most recently added first) plus pending operation tokens.

    Every mutator is synchronous and leaves at most one item per product.
    Items are immutable; updates swap in a ``model_copy``.
    """

    def __init__(self, items: Iterable[WishlistItem] = ()) -> None:
        self._items: list[WishlistItem] = self._dedupe(items)
        self._pending: Counter[str] = Counter()
        self._listeners: list[StateListener] = []
        self._loading = False
        self._syncing = False

    # ── Reads ─────────────────────────────────────────────────────────────

    @property
    def items(self) -> list[WishlistItem]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def find_by_id(self, item_id: str) -> WishlistItem | None:
        return next((item for item in self._items if item.id == item_id), None)

    def find_by_product(self, product_id: str) -> WishlistItem | None:
        return queries.find_item(self._items, product_id)

    def contains(self, product_id: str) -> bool:
        return queries.is_in_wishlist(self._items, product_id)

    def position_of(self, product_id: str) -> int | None:
        return queries.get_position(self._items, product_id)

    def snapshot(self) -> WishlistState:
        return WishlistState(
            items=self.items, is_syncing=self.is_syncing, is_loading=self._loading,
        )

    # ── Item mutations ────────────────────────────────────────────────────

    def replace_all(self, items: Iterable[WishlistItem]) -> None:
        self._items = self._dedupe(items)
        self._notify()

    def insert(self, item: WishlistItem, index: int = 0) -> bool:
        """Insert *item* at *index*. Refuses (returns False) on a duplicate product or id."""
        if self.contains(item.product_id) or self.find_by_id(item.id) is not None:
            return False
        index = max(0, min(index, len(self._items)))
        self._items.insert(index, item)
        self._notify()
        return True

    def remove_by_id(self, item_id: str) -> WishlistItem | None:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                del self._items[index]
                self._notify()
                return item
        return None

    def remove_by_product(self, product_id: str) -> tuple[int, WishlistItem] | None:
        """Remove the item for *product_id*; return its former index and the item."""
        for index, item in enumerate(self._items):
            if item.product_id == product_id:
                del self._items[index]
                self._notify()
                return index, item
        return None

    def update(self, item_id: str, **changes: object) -> WishlistItem | None:
        """Rewrite the item with *item_id* in place. Returns the new item or None."""
        for index, item in enumerate(self._items):
            if item.id == item_id:
                updated = item.model_copy(update=changes)
                self._items[index] = updated
                self._notify()
                return updated
        return None

    # ── Pending operations ────────────────────────────────────────────────

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._pending)

    def mark_pending(self, key: str) -> None:
        """Count one more in-flight operation for *key*; overlapping operations stack."""
        self._pending[key] += 1
        self._notify()

    def clear_pending(self, key: str) -> None:
        if self._pending[key] <= 1:
            self._pending.pop(key, None)
        else:
            self._pending[key] -= 1
        self._notify()

    def is_pending(self, key: str) -> bool:
        return self._pending[key] > 0

    # ── Flags ─────────────────────────────────────────────────────────────

    @property
    def is_syncing(self) -> bool:
        return bool(self._pending) or self._syncing

    @property
    def is_loading(self) -> bool:
        return self._loading

    def set_loading(self, loading: bool) -> None:
        self._loading = loading
        self._notify()

    def set_syncing(self, syncing: bool) -> None:
        self._syncing = syncing
        self._notify()

    # ── Listeners ─────────────────────────────────────────────────────────

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        state = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:  # noqa: BLE001
                logger.exception("Wishlist state listener failed")

    @staticmethod
    def _dedupe(items: Iterable[WishlistItem]) -> list[WishlistItem]:
        seen_products: set[str] = set()
        seen_ids: set[str] = set()
        result: list[WishlistItem] = []
        for item in items:
            if item.product_id in seen_products or item.id in seen_ids:
                logger.debug("Dropping duplicate wishlist entry for %s", item.product_id)
                continue
            seen_products.add(item.product_id)
            seen_ids.add(item.id)
            result.append(item)
        return result
