from pydantic import BaseModel

from wishlist_sync.models.enums import ErrorKind, MutationState, OperationKind
from wishlist_sync.models.wishlist import WishlistItem


class MutationResult(BaseModel):
    kind: OperationKind
    product_id: str
    state: MutationState
    error_kind: ErrorKind | None = None
    item: WishlistItem | None = None

    @property
    def succeeded(self) -> bool:
        return self.state in (MutationState.CONFIRMED, MutationState.PENDING_SYNC)
