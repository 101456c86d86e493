"""Contracts for the remote collaborators of the sync engine."""

from typing import Protocol

from wishlist_sync.models.wishlist import NewWishlistRecord, RemoteWishlistRecord


class RemoteStore(Protocol):
    """Authoritative record store for the ``wishlists`` collection.

    Implementations raise the errors from ``wishlist_sync.clients.resilience``
    (or let raw transport errors through); the engine classifies them.
    """

    async def list_for_guest(self, guest_id: str) -> list[RemoteWishlistRecord]:
        """Return every record of *guest_id*, newest first."""
        ...

    async def count_for_product(self, product_id: str) -> int:
        """Return how many requests exist for *product_id* across all guests."""
        ...

    async def insert(self, record: NewWishlistRecord) -> RemoteWishlistRecord:
        """Insert *record* and return the stored row with server-assigned fields."""
        ...

    async def delete(self, record_id: str) -> bool:
        """Delete a record. Returns False when it did not exist."""
        ...


class ActiveEventResolver(Protocol):
    async def resolve_active_event_id(self) -> str | None:
        """Return the id of the currently active event, or None."""
        ...
