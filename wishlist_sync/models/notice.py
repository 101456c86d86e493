from datetime import datetime

from pydantic import BaseModel, Field

from wishlist_sync.models.enums import ErrorKind, NoticeKind
from wishlist_sync.models.wishlist import utc_now


class Notice(BaseModel):
    """A semantic outcome emitted by the engine. Presentation is up to the caller."""

    kind: NoticeKind
    product_id: str | None = None
    position: int | None = None
    error_kind: ErrorKind | None = None
    detail: str | None = None
    emitted_at: datetime = Field(default_factory=utc_now)
