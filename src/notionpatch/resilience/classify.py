"""Error classification: decide whether a failed remote call may be retried.

The decision is a closed two-way choice (ErrorKind) so the retry loop never
has to reason about exception hierarchies itself.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import httpx
from notion_client.errors import RequestTimeoutError

from notionpatch.errors import (
    NotionPatchError,
    RateLimitError,
    notion_error_code,
    retry_after_of,
)


class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    NON_TRANSIENT = "non_transient"


@dataclass(frozen=True, slots=True)
class Classification:
    kind: ErrorKind
    reason: str
    retry_after: Optional[float] = None  # seconds, from the server when known
    rate_limited: bool = False

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT


_NON_TRANSIENT_STATUS = {400, 401, 403, 404}
_NON_TRANSIENT_CODES = {
    "validation_error",
    "invalid_json",
    "invalid_request",
    "invalid_request_url",
    "unauthorized",
    "restricted_resource",
    "object_not_found",
}
_TRANSIENT_CODES = {
    "conflict_error",
    "internal_server_error",
    "service_unavailable",
    "database_connection_unavailable",
    "gateway_timeout",
}


def _transient(reason: str, **kwargs) -> Classification:
    return Classification(ErrorKind.TRANSIENT, reason, **kwargs)


def _non_transient(reason: str) -> Classification:
    return Classification(ErrorKind.NON_TRANSIENT, reason)


def classify_error(err: BaseException) -> Classification:
    """Map a raised error onto {transient, non-transient}.

    Rate limiting (HTTP 429) is transient and carries the server's
    ``Retry-After`` hint. Auth, not-found and validation failures can never
    succeed on retry. Timeouts, transport failures, 409 and 5xx are
    transient, and so is any other status code.
    """
    if isinstance(err, RateLimitError):
        return _transient("rate_limited", retry_after=err.retry_after, rate_limited=True)
    if isinstance(err, NotionPatchError):
        return _non_transient(err.code.value)

    status = getattr(err, "status", None)
    code = notion_error_code(err)

    if status == 429 or code == "rate_limited":
        return _transient("rate_limited", retry_after=retry_after_of(err), rate_limited=True)
    if status in _NON_TRANSIENT_STATUS or code in _NON_TRANSIENT_CODES:
        return _non_transient(code or f"http_{status}")
    if code in _TRANSIENT_CODES:
        return _transient(code)
    if isinstance(status, int):
        return _transient(f"http_{status}")

    if isinstance(err, (RequestTimeoutError, httpx.TimeoutException, asyncio.TimeoutError)):
        return _transient("timeout")
    if isinstance(err, (httpx.TransportError, ConnectionError, TimeoutError)):
        return _transient("network")

    return _transient(type(err).__name__)
