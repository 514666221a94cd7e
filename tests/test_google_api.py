from __future__ import annotations

import logging
from unittest.mock import MagicMock

import httplib2
import pytest
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from utils.google_api import execute_with_retry, is_retryable_google_api_error, list_all_pages


def _http_error(status: int) -> HttpError:
    return HttpError(httplib2.Response({"status": status}), b"{}")


@pytest.mark.parametrize(
    ("error", "retryable"),
    [
        (_http_error(429), True),
        (_http_error(503), True),
        (_http_error(404), False),
        (TransportError("connection reset"), True),
        (ConnectionError(), True),
        (RefreshError("invalid_grant"), False),
        (ValueError("nope"), False),
    ],
)
def test_is_retryable_google_api_error(error, retryable) -> None:
    assert is_retryable_google_api_error(error) is retryable


def test_execute_with_retry_recovers_from_transient_errors() -> None:
    fn = MagicMock(side_effect=[TransportError("blip"), _http_error(500), "ok"])
    sleep = MagicMock()

    assert execute_with_retry(fn, sleep=sleep) == "ok"
    assert fn.call_count == 3
    assert sleep.call_count == 2


def test_execute_with_retry_does_not_retry_permanent_errors() -> None:
    fn = MagicMock(side_effect=RefreshError("invalid_grant"))
    sleep = MagicMock()

    with pytest.raises(RefreshError):
        execute_with_retry(fn, sleep=sleep)
    fn.assert_called_once()
    sleep.assert_not_called()


def test_execute_with_retry_gives_up_after_retries() -> None:
    fn = MagicMock(side_effect=TransportError("down"))

    with pytest.raises(TransportError):
        execute_with_retry(fn, retries=2, sleep=MagicMock())
    assert fn.call_count == 3


def test_list_all_pages_follows_tokens_and_honours_limit() -> None:
    pages = {
        None: {"files": [{"id": "1"}, {"id": "2"}], "nextPageToken": "p2"},
        "p2": {"files": [{"id": "3"}, "junk"], "nextPageToken": "p3"},
        "p3": {"files": [{"id": "4"}]},
    }
    seen: list[str | None] = []

    def fetch_page(token: str | None) -> dict:
        seen.append(token)
        return pages[token]

    assert [f["id"] for f in list_all_pages(fetch_page, items_field="files")] == ["1", "2", "3", "4"]
    assert seen == [None, "p2", "p3"]

    seen.clear()
    limited = list_all_pages(fetch_page, items_field="files", limit=2)
    assert [f["id"] for f in limited] == ["1", "2"]
    assert seen == [None]


def test_execute_with_retry_names_the_operation_in_warnings(caplog) -> None:
    fn = MagicMock(side_effect=[TransportError("blip"), "ok"])

    with caplog.at_level(logging.WARNING, logger="drive_auth"):
        assert execute_with_retry(fn, operation="token refresh", sleep=MagicMock()) == "ok"

    assert "token refresh failed (blip); retry 1/4" in caplog.text
