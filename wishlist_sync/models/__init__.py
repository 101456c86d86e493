from wishlist_sync.models.enums import (
    ErrorKind,
    MutationState,
    NoticeKind,
    OperationKind,
    WishType,
)
from wishlist_sync.models.mutation import MutationResult
from wishlist_sync.models.notice import Notice
from wishlist_sync.models.wishlist import (
    NewWishlistRecord,
    RemoteWishlistRecord,
    WishlistItem,
    WishlistState,
)

__all__ = [
    "ErrorKind",
    "MutationResult",
    "MutationState",
    "NewWishlistRecord",
    "Notice",
    "NoticeKind",
    "OperationKind",
    "RemoteWishlistRecord",
    "WishType",
    "WishlistItem",
    "WishlistState",
]
