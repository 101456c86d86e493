"""Optimistic add/remove: apply locally, confirm remotely, reconcile or roll back."""

import logging

from wishlist_sync.clients.remote_store import RemoteStore
from wishlist_sync.clients.resilience import FailurePolicy, classify_error, failure_policy
from wishlist_sync.models.enums import (
    ErrorKind,
    MutationState,
    NoticeKind,
    OperationKind,
    WishType,
)
from wishlist_sync.models.mutation import MutationResult
from wishlist_sync.models.wishlist import NewWishlistRecord, RemoteWishlistRecord, WishlistItem
from wishlist_sync.storage.local_cache import LocalCache
from wishlist_sync.sync.event_context import EventContext
from wishlist_sync.sync.notifications import Notifier
from wishlist_sync.sync.state import LocalStateStore, operation_key

logger = logging.getLogger(__name__)


class MutationPipeline:
    """Run wishlist mutations as optimistic-then-confirm operations.

    Each operation goes ``idle -> optimistic_applied -> confirmed | rolled_back``
    (or ``pending_sync`` when an add is kept through a network failure). The
    optimistic step always completes before the first ``await`` so callers
    observe it on the same turn.

    Nothing is locked: an operation that resolves late reconciles against
    whatever the store holds at that moment, never against a snapshot taken
    when it started.
    """

    def __init__(
        self,
        store: LocalStateStore,
        cache: LocalCache,
        remote: RemoteStore,
        events: EventContext,
        notifier: Notifier,
    ) -> None:
        self.store = store
        self.cache = cache
        self.remote = remote
        self.events = events
        self.notifier = notifier
        self._states: dict[str, MutationState] = {}
        # Provisional ids removed locally while their insert was still in flight
        self._withdrawn: set[str] = set()

    def state_of(self, kind: OperationKind, product_id: str) -> MutationState:
        """Last known state of the operation keyed by (*kind*, *product_id*)."""
        return self._states.get(operation_key(kind, product_id), MutationState.IDLE)

    # ── Add ───────────────────────────────────────────────────────────────

    async def add(
        self,
        product_id: str,
        look_id: str = "",
        wish_type: WishType | str = WishType.INDIVIDUAL,
        *,
        guest_id: str | None,
    ) -> MutationResult:
        kind = WishType.parse(wish_type)
        if kind is None:
            logger.warning("Rejecting add of %s: unknown wish type %r", product_id, wish_type)
            return MutationResult(
                kind=OperationKind.ADD,
                product_id=product_id,
                state=MutationState.REJECTED,
                error_kind=ErrorKind.VALIDATION,
            )
        existing = self.store.find_by_product(product_id)
        if existing is not None:
            self.notifier.emit(NoticeKind.DUPLICATE_REJECTED, product_id=product_id)
            return MutationResult(
                kind=OperationKind.ADD,
                product_id=product_id,
                state=MutationState.REJECTED,
                item=existing,
            )

        same_product = sum(1 for item in self.store.items if item.product_id == product_id)
        item = WishlistItem.provisional(
            product_id, look_id, kind, position=same_product + 1,
        )
        key = operation_key(OperationKind.ADD, product_id)
        self.store.insert(item)
        self.store.mark_pending(key)
        self._states[key] = MutationState.OPTIMISTIC_APPLIED
        self.cache.persist(self.store.items)
        self.notifier.emit(NoticeKind.ADDED, product_id=product_id)

        try:
            if guest_id:
                result = await self._push_add(item, guest_id)
            else:
                logger.info("No guest identity yet; keeping %s local only", product_id)
                result = MutationResult(
                    kind=OperationKind.ADD,
                    product_id=product_id,
                    state=MutationState.PENDING_SYNC,
                    item=self.store.update(item.id, pending_sync=True),
                )
        finally:
            self.store.clear_pending(key)
            self.cache.persist(self.store.items)
        self._states[key] = result.state
        return result

    async def replay_pending(self, guest_id: str) -> list[MutationResult]:
        """Push every locally-retained add that has no operation in flight."""
        results: list[MutationResult] = []
        for item in self.store.items:
            if not (item.pending_sync and item.is_provisional):
                continue
            key = operation_key(OperationKind.ADD, item.product_id)
            current = self.store.find_by_id(item.id)
            if current is None or self.store.is_pending(key):
                continue
            self.store.mark_pending(key)
            self._states[key] = MutationState.OPTIMISTIC_APPLIED
            try:
                result = await self._push_add(current, guest_id)
            finally:
                self.store.clear_pending(key)
                self.cache.persist(self.store.items)
            self._states[key] = result.state
            results.append(result)
        return results

    async def _push_add(self, item: WishlistItem, guest_id: str) -> MutationResult:
        try:
            event_id = await self.events.resolve()
            count = await self.remote.count_for_product(item.product_id)
            record = await self.remote.insert(
                NewWishlistRecord(
                    guest_id=guest_id,
                    product_id=item.product_id,
                    look_id=item.look_id or None,
                    wish_type=item.wish_type,
                    position=count + 1,
                    event_id=event_id,
                )
            )
        except Exception as exc:  # noqa: BLE001
            return self._add_failed(item, exc)

        confirmed = await self._confirm_add(item, record)
        if confirmed is None:
            return MutationResult(
                kind=OperationKind.ADD,
                product_id=item.product_id,
                state=MutationState.ROLLED_BACK,
            )
        if confirmed.position > 1:
            self.notifier.emit(
                NoticeKind.QUEUE_POSITION,
                product_id=item.product_id,
                position=confirmed.position,
            )
        return MutationResult(
            kind=OperationKind.ADD,
            product_id=item.product_id,
            state=MutationState.CONFIRMED,
            item=confirmed,
        )

    async def _confirm_add(
        self, item: WishlistItem, record: RemoteWishlistRecord
    ) -> WishlistItem | None:
        """Swap the confirmed row into the store.

        Returns None when a later local edit superseded this add; the
        remote row is then deleted so it cannot resurface on the next load.
        """
        server_item = WishlistItem.from_record(record)
        if item.id in self._withdrawn:
            self._withdrawn.discard(item.id)
            self.store.remove_by_id(server_item.id)
            logger.info(
                "Add of %s confirmed as %s after it was removed locally",
                item.product_id, server_item.id,
            )
            await self._discard_remote(server_item.id, item.product_id)
            return None

        changes = {
            "id": server_item.id,
            "position": server_item.position,
            "added_at": server_item.added_at,
            "product": server_item.product or item.product,
            "pending_sync": False,
        }
        # A load may already have swapped the provisional item for the canonical row
        updated = self.store.update(item.id, **changes) or self.store.update(
            server_item.id, **changes
        )
        if updated is not None:
            return updated

        if self.store.contains(item.product_id):
            logger.info(
                "Add of %s confirmed as %s but a later local edit owns the product",
                item.product_id, server_item.id,
            )
            await self._discard_remote(server_item.id, item.product_id)
            return None

        confirmed = item.model_copy(update=changes)
        logger.info(
            "Optimistic item for %s disappeared before confirmation; re-inserting %s",
            item.product_id, server_item.id,
        )
        self.store.insert(confirmed)
        return confirmed

    async def _discard_remote(self, record_id: str, product_id: str) -> None:
        try:
            await self.remote.delete(record_id)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Failed to delete superseded wishlist record %s for %s (%s): %s",
                record_id, product_id, classify_error(exc), exc,
            )

    def _add_failed(self, item: WishlistItem, exc: Exception) -> MutationResult:
        self._withdrawn.discard(item.id)
        error_kind = classify_error(exc)
        logger.error(
            "Failed to add %s to wishlist (%s, item %s): %s",
            item.product_id, error_kind, item.id, exc,
        )
        if failure_policy(OperationKind.ADD, error_kind) == FailurePolicy.RETAIN:
            retained = self.store.update(item.id, pending_sync=True)
            self.notifier.emit(
                NoticeKind.ADDED_OFFLINE, product_id=item.product_id, error_kind=error_kind,
            )
            return MutationResult(
                kind=OperationKind.ADD,
                product_id=item.product_id,
                state=MutationState.PENDING_SYNC,
                error_kind=error_kind,
                item=retained,
            )

        self.store.remove_by_id(item.id)
        self.notifier.emit(
            NoticeKind.ADD_FAILED,
            product_id=item.product_id,
            error_kind=error_kind,
            detail=str(exc),
        )
        return MutationResult(
            kind=OperationKind.ADD,
            product_id=item.product_id,
            state=MutationState.ROLLED_BACK,
            error_kind=error_kind,
        )

    # ── Remove ────────────────────────────────────────────────────────────

    async def remove(self, product_id: str, *, guest_id: str | None) -> MutationResult:
        removed = self.store.remove_by_product(product_id)
        if removed is None:
            return MutationResult(
                kind=OperationKind.REMOVE, product_id=product_id, state=MutationState.IDLE,
            )

        index, item = removed
        if item.is_provisional and self.store.is_pending(
            operation_key(OperationKind.ADD, product_id)
        ):
            self._withdrawn.add(item.id)
        key = operation_key(OperationKind.REMOVE, product_id)
        self.store.mark_pending(key)
        self._states[key] = MutationState.OPTIMISTIC_APPLIED
        self.cache.persist(self.store.items)
        self.notifier.emit(NoticeKind.REMOVED, product_id=product_id)

        try:
            result = await self._push_remove(index, item, guest_id)
        finally:
            self.store.clear_pending(key)
            self.cache.persist(self.store.items)
        self._states[key] = result.state
        return result

    async def _push_remove(
        self, index: int, item: WishlistItem, guest_id: str | None
    ) -> MutationResult:
        # Provisional items never reached the remote store
        if guest_id and not item.is_provisional:
            try:
                found = await self.remote.delete(item.id)
            except Exception as exc:  # noqa: BLE001
                return self._remove_failed(index, item, exc)
            if not found:
                logger.info("Wishlist record %s was already gone remotely", item.id)
        return MutationResult(
            kind=OperationKind.REMOVE,
            product_id=item.product_id,
            state=MutationState.CONFIRMED,
            item=item,
        )

    def _remove_failed(self, index: int, item: WishlistItem, exc: Exception) -> MutationResult:
        error_kind = classify_error(exc)
        logger.error(
            "Failed to remove %s from wishlist (%s, item %s): %s",
            item.product_id, error_kind, item.id, exc,
        )
        state = MutationState.PENDING_SYNC
        if failure_policy(OperationKind.REMOVE, error_kind) == FailurePolicy.ROLLBACK:
            state = MutationState.ROLLED_BACK
            if not self.store.insert(item, index):
                logger.info("%s was re-added meanwhile; not restoring %s", item.product_id, item.id)
        self.notifier.emit(
            NoticeKind.REMOVE_FAILED,
            product_id=item.product_id,
            error_kind=error_kind,
            detail=str(exc),
        )
        return MutationResult(
            kind=OperationKind.REMOVE,
            product_id=item.product_id,
            state=state,
            error_kind=error_kind,
            item=item,
        )
