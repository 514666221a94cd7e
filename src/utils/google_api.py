"""Google API call helpers shared by the token refresh and the Drive listing."""

from __future__ import annotations

import random
import time
from typing import Any, Callable, TypeVar

from google.auth.exceptions import TransportError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from utils.logging_config import logger

T = TypeVar("T")

_TRANSIENT_HTTP_STATUSES = frozenset({429, 500, 502, 503, 504})


def is_retryable_google_api_error(error: BaseException) -> bool:
    """True for rate limits, server errors and dropped connections.

    google-auth reports network failures during a token refresh as
    ``TransportError``; a rejected refresh token is a ``RefreshError`` and
    is never retried.
    """
    if isinstance(error, HttpError):
        return getattr(error.resp, "status", None) in _TRANSIENT_HTTP_STATUSES
    return isinstance(error, (TransportError, TimeoutError, ConnectionError))


def _backoff_delay(retried: int, base_delay_s: float, max_delay_s: float) -> float:
    return min(max_delay_s, base_delay_s * 2**retried) * random.uniform(0.5, 1.5)


def execute_with_retry(
    fn: Callable[[], T],
    *,
    operation: str = "Google API call",
    retries: int = 4,
    base_delay_s: float = 0.5,
    max_delay_s: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run ``fn()`` and retry it with jittered exponential backoff on transient errors.

    Args:
        fn: Performs one request and returns its result.
        operation: Names the call in retry warnings, e.g. ``"token refresh"``.
        retries: Retries allowed after the first attempt.
        base_delay_s: Delay before the first retry, doubled for each later one.
        max_delay_s: Upper bound for a single delay.
        sleep: Sleep function, replaceable in tests.

    Raises:
        The error from ``fn()`` when it is not transient or retries ran out.
    """
    retried = 0
    while True:
        try:
            return fn()
        except Exception as exc:
            if retried == retries or not is_retryable_google_api_error(exc):
                raise
            delay_s = _backoff_delay(retried, base_delay_s, max_delay_s)
            retried += 1
            logger.warning(f"{operation} failed ({exc}); retry {retried}/{retries} in {delay_s:.2f}s")
            sleep(delay_s)


def list_all_pages(
    fetch_page: Callable[[str | None], dict[str, Any]],
    *,
    items_field: str,
    limit: int | None = None,
) -> list[dict[str, Any]]:
    """Follow ``nextPageToken`` and collect the object items of ``items_field``.

    No further page is requested once ``limit`` items are in hand.
    """
    items: list[dict[str, Any]] = []
    page_token: str | None = None
    while limit is None or len(items) < limit:
        page = fetch_page(page_token)
        items.extend(item for item in page.get(items_field) or [] if isinstance(item, dict))
        page_token = page.get("nextPageToken")
        if not page_token:
            break
    return items if limit is None else items[:limit]


def build_service(api_name: str, version: str, credentials: Any) -> Any:
    """Build a discovery-based API client for already resolved credentials."""
    return build(api_name, version, credentials=credentials, cache_discovery=False)
