"""Supabase (PostgREST) adapters for the ``wishlists`` and ``events`` collections."""

import logging

import httpx
from pydantic import ValidationError as PydanticValidationError

from wishlist_sync.clients.resilience import (
    CircuitBreaker,
    NetworkError,
    RemoteStoreError,
    raise_for_remote_error,
    resilient_request,
)
from wishlist_sync.models.wishlist import NewWishlistRecord, RemoteWishlistRecord

logger = logging.getLogger(__name__)

WISHLISTS_PATH = "/rest/v1/wishlists"
EVENTS_PATH = "/rest/v1/events"

# Embed the joined catalog row so items carry a display snapshot
RECORD_SELECT = "*,products(*)"


def parse_content_range_total(header: str | None) -> int:
    """Extract the total from a PostgREST ``Content-Range`` header.

    ``0-24/130`` and ``*/130`` both yield 130; ``*/*`` or a missing header
    yields 0.
    """
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else 0


class SupabaseClient:
    """Shared request plumbing for PostgREST endpoints.

    Args:
        base_url: Project URL, e.g. ``https://xyz.supabase.co``.
        api_key: Anon (public) API key.
        timeout: Per-request timeout in seconds.
        breaker: Circuit breaker guarding this client; one is created if omitted.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.breaker = breaker or CircuitBreaker("supabase", fail_max=5, reset_timeout=30.0)

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: object = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request through the circuit breaker and raise typed errors."""
        return await self.breaker.call_async(
            self._send(method, path, params=params, json=json, headers=headers)
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None,
        json: object,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method,
                    f"{self.base_url}{path}",
                    params=params,
                    json=json,
                    headers=self._headers(headers),
                )
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{method} {path} timed out") from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {path} connection failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "Supabase %s %s failed (HTTP %d): %s",
                method, path, response.status_code, response.text,
            )
        raise_for_remote_error(response)
        return response

    @staticmethod
    def _rows(response: httpx.Response) -> list[dict]:
        data = response.json()
        if not isinstance(data, list):
            raise RemoteStoreError(f"Expected a list of rows, got {type(data).__name__}")
        return data


class SupabaseWishlistStore(SupabaseClient):
    """``RemoteStore`` backed by the PostgREST ``wishlists`` table."""

    @staticmethod
    def _records(rows: list[dict]) -> list[RemoteWishlistRecord]:
        """Validate rows one by one, skipping any that are not product wishes.

        Whole-look rows carry ``product_id = null``; they are not items.
        """
        records: list[RemoteWishlistRecord] = []
        for row in rows:
            if not row.get("product_id"):
                logger.debug("Skipping wishlist row %s without a product", row.get("id"))
                continue
            try:
                records.append(RemoteWishlistRecord.model_validate(row))
            except PydanticValidationError as exc:
                logger.warning("Skipping malformed wishlist row %s: %s", row.get("id"), exc)
        return records

    @resilient_request
    async def list_for_guest(self, guest_id: str) -> list[RemoteWishlistRecord]:
        response = await self._request(
            "GET",
            WISHLISTS_PATH,
            params={
                "select": RECORD_SELECT,
                "guest_id": f"eq.{guest_id}",
                "order": "added_at.desc",
            },
        )
        return self._records(self._rows(response))

    @resilient_request
    async def count_for_product(self, product_id: str) -> int:
        response = await self._request(
            "HEAD",
            WISHLISTS_PATH,
            params={"select": "id", "product_id": f"eq.{product_id}"},
            headers={"Prefer": "count=exact"},
        )
        return parse_content_range_total(response.headers.get("content-range"))

    async def insert(self, record: NewWishlistRecord) -> RemoteWishlistRecord:
        response = await self._request(
            "POST",
            WISHLISTS_PATH,
            params={"select": RECORD_SELECT},
            json=[record.model_dump(mode="json")],
            headers={"Prefer": "return=representation"},
        )
        rows = self._rows(response)
        if not rows:
            raise RemoteStoreError("Insert returned no rows")
        return RemoteWishlistRecord.model_validate(rows[0])

    async def delete(self, record_id: str) -> bool:
        response = await self._request(
            "DELETE",
            WISHLISTS_PATH,
            params={"id": f"eq.{record_id}"},
            headers={"Prefer": "return=representation"},
        )
        return bool(self._rows(response))


class SupabaseEventResolver(SupabaseClient):
    """Resolve the active event as the most recently created one."""

    @resilient_request
    async def resolve_active_event_id(self) -> str | None:
        response = await self._request(
            "GET",
            EVENTS_PATH,
            params={"select": "id", "order": "created_at.desc", "limit": "1"},
        )
        rows = self._rows(response)
        if not rows:
            return None
        return rows[0].get("id")
