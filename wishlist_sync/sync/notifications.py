"""Semantic notices emitted by the engine and their user-facing wording."""

import logging
from collections import deque
from collections.abc import Callable

from wishlist_sync.models.enums import ErrorKind, NoticeKind
from wishlist_sync.models.notice import Notice

logger = logging.getLogger(__name__)

NotificationSink = Callable[[Notice], None]


def get_user_message(notice: Notice) -> str:
    """Map a notice to the text a guest would see."""
    kind = notice.kind
    if kind == NoticeKind.ADDED:
        return "Added to wishlist"
    if kind == NoticeKind.ADDED_OFFLINE:
        return "Added to local wishlist. Will sync when online."
    if kind == NoticeKind.DUPLICATE_REJECTED:
        return "Already in your wishlist"
    if kind == NoticeKind.ADD_FAILED:
        if notice.error_kind == ErrorKind.VALIDATION:
            return "Failed to add to wishlist. Please try again."
        return "Something went wrong. Please try again."
    if kind == NoticeKind.REMOVED:
        return "Removed from wishlist"
    if kind == NoticeKind.REMOVE_FAILED:
        return "Failed to remove from wishlist. Please try again."
    if kind == NoticeKind.QUEUE_POSITION:
        return f"You're #{notice.position} in queue"
    if kind == NoticeKind.LOADED_FROM_CACHE:
        return "Loading from offline cache"
    if kind == NoticeKind.SYNCED:
        return "Wishlist synced"
    return kind.value


def logging_sink(notice: Notice) -> None:
    """Default sink: record notices in the log only."""
    logger.info("Wishlist notice: %s", get_user_message(notice))


class NoticeBuffer:
    """Sink that keeps the most recent notices for later display.

    Args:
        max_size: Oldest notices are dropped beyond this many.
    """

    def __init__(self, max_size: int = 50) -> None:
        self._notices: deque[Notice] = deque(maxlen=max_size)

    def __call__(self, notice: Notice) -> None:
        self._notices.append(notice)

    def drain(self) -> list[Notice]:
        """Return and forget every buffered notice."""
        notices = list(self._notices)
        self._notices.clear()
        return notices

    def __len__(self) -> int:
        return len(self._notices)


class Notifier:
    """Fan notices out to sinks; a failing sink never affects the engine."""

    def __init__(self, *sinks: NotificationSink) -> None:
        self.sinks: list[NotificationSink] = list(sinks) or [logging_sink]

    def emit(self, kind: NoticeKind, **fields: object) -> Notice:
        notice = Notice(kind=kind, **fields)
        for sink in self.sinks:
            try:
                sink(notice)
            except Exception:  # noqa: BLE001
                logger.exception("Notification sink failed for %s", kind)
        return notice
