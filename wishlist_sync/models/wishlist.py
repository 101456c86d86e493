from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from wishlist_sync.models.enums import WishType

PROVISIONAL_ID_PREFIX = "temp_"


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def make_provisional_id(product_id: str) -> str:
    """Mint a locally-unique placeholder id for an unconfirmed add."""
    return f"{PROVISIONAL_ID_PREFIX}{uuid4().hex[:12]}_{product_id}"


class RemoteWishlistRecord(BaseModel):
    """A row of the remote ``wishlists`` collection, as returned by the store."""

    model_config = ConfigDict(from_attributes=True, extra="ignore")

    id: str
    guest_id: str | None = None
    product_id: str
    look_id: str | None = None
    wish_type: str | None = None
    position: int | None = None
    added_at: datetime | None = None
    event_id: str | None = None
    products: dict | None = None


class NewWishlistRecord(BaseModel):
    """Insert payload for the remote ``wishlists`` collection."""

    guest_id: str
    product_id: str
    look_id: str | None = None
    wish_type: WishType = WishType.INDIVIDUAL
    position: int
    event_id: str


class WishlistItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    look_id: str = ""
    wish_type: WishType = WishType.INDIVIDUAL
    position: int = 1
    added_at: datetime = Field(default_factory=utc_now)
    product: dict | None = None
    pending_sync: bool = False

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(PROVISIONAL_ID_PREFIX)

    @classmethod
    def provisional(
        cls,
        product_id: str,
        look_id: str = "",
        wish_type: WishType = WishType.INDIVIDUAL,
        position: int = 1,
    ) -> "WishlistItem":
        return cls(
            id=make_provisional_id(product_id),
            product_id=product_id,
            look_id=look_id or "",
            wish_type=wish_type,
            position=position,
            added_at=utc_now(),
        )

    @classmethod
    def from_record(cls, record: RemoteWishlistRecord) -> "WishlistItem":
        """Normalize a remote record into the local item shape.

        Missing ``wish_type`` becomes ``individual`` and a missing or zero
        ``position`` becomes ``1``.
        """
        return cls(
            id=record.id,
            product_id=record.product_id,
            look_id=record.look_id or "",
            wish_type=WishType.normalize(record.wish_type),
            position=record.position or 1,
            added_at=record.added_at or utc_now(),
            product=record.products,
        )


class WishlistState(BaseModel):
    """Snapshot handed to state listeners after every change."""

    items: list[WishlistItem] = []
    is_syncing: bool = False
    is_loading: bool = False
