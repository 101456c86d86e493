"""Session-scoped active event identity."""

import asyncio
import logging

from wishlist_sync.clients.remote_store import ActiveEventResolver
from wishlist_sync.clients.resilience import NoActiveEventError

logger = logging.getLogger(__name__)


class EventContext:
    """Resolve the active event once per session and remember it.

    Args:
        resolver: Looks the active event up remotely.
        event_id: Preconfigured identity; when set the resolver is never called.
    """

    def __init__(self, resolver: ActiveEventResolver, event_id: str | None = None) -> None:
        self.resolver = resolver
        self._configured_id = event_id
        self._event_id = event_id
        self._lock = asyncio.Lock()

    @property
    def event_id(self) -> str | None:
        return self._event_id

    async def resolve(self) -> str:
        """Return the active event id.

        Raises:
            NoActiveEventError: If no active event exists.
            NetworkError: If the lookup itself failed in transit.
        """
        if self._event_id:
            return self._event_id
        async with self._lock:
            if self._event_id:
                return self._event_id
            event_id = await self.resolver.resolve_active_event_id()
            if not event_id:
                logger.warning("Could not resolve an active event")
                raise NoActiveEventError()
            self._event_id = event_id
            logger.info("Active event resolved: %s", event_id)
            return event_id

    def reset(self) -> None:
        """Forget a resolved identity; a configured one is kept."""
        self._event_id = self._configured_id
