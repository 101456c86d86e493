"""Read-only lookups over the current wishlist. No side effects, no awaits."""

from collections.abc import Iterable

from wishlist_sync.models.wishlist import WishlistItem


def find_item(items: Iterable[WishlistItem], product_id: str) -> WishlistItem | None:
    return next((item for item in items if item.product_id == product_id), None)


def is_in_wishlist(items: Iterable[WishlistItem], product_id: str) -> bool:
    return find_item(items, product_id) is not None


def get_position(items: Iterable[WishlistItem], product_id: str) -> int | None:
    """Queue position for *product_id*, or None when it is not wished for."""
    item = find_item(items, product_id)
    return item.position if item else None
