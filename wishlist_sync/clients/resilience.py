"""Resilience primitives: error taxonomy, central classification, retry, circuit breaker."""

import logging
import time
from enum import StrEnum

import httpx
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from wishlist_sync.models.enums import ErrorKind, OperationKind

logger = logging.getLogger(__name__)


# ── Exception Hierarchy ──────────────────────────────────────────────────────


class RemoteStoreError(Exception):
    """Base class for all remote store errors.

    Args:
        message: Human-readable description.
        code: Backend error code (e.g. a Postgres SQLSTATE), if any.
    """

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.code = code


class ValidationError(RemoteStoreError):
    """Non-retriable rejection: malformed id, constraint violation, unknown collection."""


class NoActiveEventError(ValidationError):
    """No active event identity could be resolved for this session."""

    def __init__(self, message: str = "No active event found. Please contact support.") -> None:
        super().__init__(message)


class NetworkError(RemoteStoreError):
    """Potentially transient failure: timeout, connection, gateway errors."""


class CircuitOpenError(NetworkError):
    """Circuit breaker is open; calls are being shed."""


class AuthError(RemoteStoreError):
    """The remote store refused our credentials (401/403)."""


TRANSIENT_STATUS_CODES = {408, 429, 502, 503, 504}

_VALIDATION_CODES = {"22P02", "42P01", "PGRST205"}


# ── Classification ───────────────────────────────────────────────────────────


def is_validation_code(code: str | None, message: str = "") -> bool:
    """Return True when a backend error code/message denotes a validation failure.

    ``22P02`` is an invalid text representation (e.g. a malformed UUID),
    ``23xxx`` are integrity constraint violations and ``42P01`` /
    ``PGRST205`` mean the collection does not exist.
    """
    if code and (code in _VALIDATION_CODES or code.startswith("23")):
        return True
    return "invalid input syntax" in message


def raise_for_remote_error(response: object) -> None:
    """Raise a typed error for a failed PostgREST response.

    Args:
        response: An object with ``status_code`` and ``json()`` (e.g. httpx.Response).

    Raises:
        ValidationError: On validation codes or 404 (unknown collection).
        AuthError: On 401/403.
        NetworkError: On 408, 429, 502, 503, 504.
        RemoteStoreError: On anything else.
    """
    status = getattr(response, "status_code", None)
    if status is None or 200 <= status < 400:
        return

    code: str | None = None
    message = f"Remote store error (HTTP {status})"
    try:
        body = response.json()  # type: ignore[attr-defined]
    except ValueError:
        body = None
    if isinstance(body, dict):
        code = body.get("code")
        message = body.get("message") or message

    if is_validation_code(code, message) or status == 404:
        raise ValidationError(message, code=code)
    if status in (401, 403):
        raise AuthError(f"Authentication failed (HTTP {status})", code=code)
    if status in TRANSIENT_STATUS_CODES:
        raise NetworkError(f"Transient error (HTTP {status}): {message}", code=code)
    raise RemoteStoreError(message, code=code)


def classify_error(error: BaseException) -> ErrorKind:
    """Map any failure raised by a remote call onto the error taxonomy.

    This is the only place that decides validation vs. network vs. unknown.
    """
    if isinstance(error, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(error, NetworkError):
        return ErrorKind.NETWORK
    if isinstance(error, (httpx.TransportError, TimeoutError, ConnectionError)):
        return ErrorKind.NETWORK
    return ErrorKind.UNKNOWN


class FailurePolicy(StrEnum):
    ROLLBACK = "rollback"
    RETAIN = "retain"


FAILURE_POLICY: dict[tuple[OperationKind, ErrorKind], FailurePolicy] = {
    (OperationKind.ADD, ErrorKind.VALIDATION): FailurePolicy.ROLLBACK,
    (OperationKind.ADD, ErrorKind.NETWORK): FailurePolicy.RETAIN,
    (OperationKind.ADD, ErrorKind.UNKNOWN): FailurePolicy.ROLLBACK,
    (OperationKind.REMOVE, ErrorKind.VALIDATION): FailurePolicy.ROLLBACK,
    (OperationKind.REMOVE, ErrorKind.NETWORK): FailurePolicy.ROLLBACK,
    (OperationKind.REMOVE, ErrorKind.UNKNOWN): FailurePolicy.ROLLBACK,
}


def failure_policy(kind: OperationKind, error_kind: ErrorKind) -> FailurePolicy:
    return FAILURE_POLICY.get((kind, error_kind), FailurePolicy.ROLLBACK)


# ── Retry ─────────────────────────────────────────────────────────────────


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Tenacity ``before_sleep`` callback that logs each retry."""
    attempt = retry_state.attempt_number
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("Retry attempt %d after error: %s", attempt, exc)


resilient_request = retry(
    retry=(
        retry_if_exception_type(NetworkError)
        & retry_if_not_exception_type(CircuitOpenError)
    ),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    before_sleep=log_retry_attempt,
    reraise=True,
)
"""Tenacity decorator for retrying idempotent reads on ``NetworkError``."""


# ── Circuit Breaker ──────────────────────────────────────────────────────────


class CircuitState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Lightweight async circuit breaker.

    Only network failures count towards opening the circuit; a validation
    rejection means the store is up and answering.

    Args:
        name: Human-readable name for logging.
        fail_max: Consecutive failures before opening.
        reset_timeout: Seconds to wait before trying again (half-open).
    """

    def __init__(
        self, name: str, fail_max: int = 5, reset_timeout: float = 30.0
    ) -> None:
        self.name = name
        self.fail_max = fail_max
        self.reset_timeout = reset_timeout

        self._state = CircuitState.CLOSED
        self._fail_count = 0
        self._last_failure_time: float = 0.0

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time >= self.reset_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    async def call_async(self, coro):  # type: ignore[no-untyped-def]
        """Execute *coro*, applying circuit-breaker logic.

        Raises:
            CircuitOpenError: If the circuit is OPEN.
        """
        current = self.state
        if current == CircuitState.OPEN:
            coro.close()
            raise CircuitOpenError(f"Circuit '{self.name}' is open")

        try:
            result = await coro
        except Exception as exc:
            if classify_error(exc) != ErrorKind.NETWORK:
                raise
            self._fail_count += 1
            self._last_failure_time = time.monotonic()
            if self._fail_count >= self.fail_max:
                self._state = CircuitState.OPEN
                logger.warning("Circuit '%s' opened after %d failures", self.name, self._fail_count)
            elif current == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
                logger.warning("Circuit '%s' re-opened on half-open failure", self.name)
            raise

        self._fail_count = 0
        self._state = CircuitState.CLOSED
        return result
