"""Tests for scripts.extattrs.fetcher."""

from unittest.mock import MagicMock

import pytest
import requests

from scripts.extattrs.exceptions import (
    BadRequestError,
    PermissionDeniedError,
    ThrottledError,
    TokenExpiredError,
    TransientError,
)
from scripts.extattrs.fetcher import (
    FailureKind,
    PageFailure,
    PageFetcher,
    PageSuccess,
    build_headers,
    classify_failure,
)

URL = "https://graph.microsoft.com/v1.0/users?$top=2"
HEADERS = build_headers("tok")


def _response(status=200, body=None, json_error=None):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    resp.text = "" if body is None else str(body)
    if json_error is not None:
        resp.json.side_effect = json_error
    else:
        resp.json.return_value = body
    return resp


def _fetcher(*responses):
    session = MagicMock()
    session.get.side_effect = list(responses)
    return PageFetcher(session=session, timeout=7), session


def test_build_headers():
    assert build_headers("abc") == {
        "Authorization": "Bearer abc",
        "Content-Type": "application/json",
    }


@pytest.mark.parametrize(
    "status, had_success, expected",
    [
        (401, True, FailureKind.TOKEN_EXPIRED),
        (401, False, FailureKind.PERMISSION_DENIED),
        (403, False, FailureKind.PERMISSION_DENIED),
        (403, True, FailureKind.PERMISSION_DENIED),
        (429, False, FailureKind.THROTTLED),
        (503, True, FailureKind.THROTTLED),
        (504, False, FailureKind.THROTTLED),
        (400, True, FailureKind.BAD_REQUEST),
        (500, False, FailureKind.TRANSIENT),
        (404, True, FailureKind.TRANSIENT),
        (None, True, FailureKind.TRANSIENT),
    ],
)
def test_classify_failure(status, had_success, expected):
    assert classify_failure(status, had_success) is expected


def test_only_client_errors_are_fatal():
    fatal = {kind for kind in FailureKind if kind.fatal}
    assert fatal == {FailureKind.PERMISSION_DENIED, FailureKind.BAD_REQUEST}


def test_fetch_page_success_with_next_link():
    body = {
        "value": [{"id": "1"}, {"id": "2"}],
        "@odata.nextLink": "https://graph.microsoft.com/v1.0/users?$skiptoken=X",
    }
    fetcher, session = _fetcher(_response(200, body))

    page = fetcher.fetch_page(URL, HEADERS, had_success=False)

    assert isinstance(page, PageSuccess)
    assert page.records == [{"id": "1"}, {"id": "2"}]
    assert page.next_link.endswith("$skiptoken=X")
    session.get.assert_called_once_with(URL, headers=HEADERS, timeout=7)


def test_fetch_page_last_page_has_no_cursor():
    fetcher, _ = _fetcher(_response(200, {"value": [{"id": "1"}]}))
    page = fetcher.fetch_page(URL, HEADERS, had_success=True)
    assert isinstance(page, PageSuccess)
    assert page.next_link is None


def test_fetch_page_missing_value_is_empty_page():
    fetcher, _ = _fetcher(_response(200, {}))
    page = fetcher.fetch_page(URL, HEADERS, had_success=False)
    assert page == PageSuccess(records=[], next_link=None)


def test_fetch_page_401_before_any_success_is_permission_denied():
    body = {"error": {"code": "InvalidAuthenticationToken", "message": "Access token is empty."}}
    fetcher, _ = _fetcher(_response(401, body))

    page = fetcher.fetch_page(URL, HEADERS, had_success=False)

    assert isinstance(page, PageFailure)
    assert page.kind is FailureKind.PERMISSION_DENIED
    assert page.status_code == 401
    assert page.detail == "Access token is empty."


def test_fetch_page_401_after_success_is_token_expired():
    fetcher, _ = _fetcher(_response(401, {"error": {"message": "expired"}}))
    page = fetcher.fetch_page(URL, HEADERS, had_success=True)
    assert page.kind is FailureKind.TOKEN_EXPIRED


def test_fetch_page_error_body_not_json_keeps_text():
    fetcher, _ = _fetcher(_response(502, "Bad Gateway", json_error=ValueError("nope")))
    page = fetcher.fetch_page(URL, HEADERS, had_success=False)
    assert page.kind is FailureKind.TRANSIENT
    assert page.detail == "Bad Gateway"


def test_fetch_page_connection_error_is_transient():
    fetcher, _ = _fetcher(requests.ConnectionError("name resolution failed"))
    page = fetcher.fetch_page(URL, HEADERS, had_success=True)
    assert page.kind is FailureKind.TRANSIENT
    assert page.status_code is None
    assert "name resolution failed" in page.detail


def test_fetch_page_timeout_is_transient():
    fetcher, _ = _fetcher(requests.Timeout("read timed out"))
    page = fetcher.fetch_page(URL, HEADERS, had_success=False)
    assert page.kind is FailureKind.TRANSIENT


def test_fetch_page_undecodable_success_body_is_transient():
    fetcher, _ = _fetcher(_response(200, "<html>", json_error=ValueError("Expecting value")))
    page = fetcher.fetch_page(URL, HEADERS, had_success=False)
    assert isinstance(page, PageFailure)
    assert page.kind is FailureKind.TRANSIENT
    assert page.status_code is None


@pytest.mark.parametrize(
    "kind, error_cls",
    [
        (FailureKind.TOKEN_EXPIRED, TokenExpiredError),
        (FailureKind.THROTTLED, ThrottledError),
        (FailureKind.PERMISSION_DENIED, PermissionDeniedError),
        (FailureKind.BAD_REQUEST, BadRequestError),
        (FailureKind.TRANSIENT, TransientError),
    ],
)
def test_page_failure_as_error(kind, error_cls):
    err = PageFailure(kind, 418, "teapot").as_error()
    assert isinstance(err, error_cls)
    assert str(err) == "HTTP 418: teapot"


@pytest.mark.parametrize(
    "body",
    [
        {"value": ["not-an-object"]},
        {"value": [{"id": "1"}, None]},
        {"value": {"id": "1"}},
        {"value": "users"},
    ],
)
def test_fetch_page_malformed_value_is_transient(body):
    fetcher, _ = _fetcher(_response(200, body))
    page = fetcher.fetch_page(URL, HEADERS, had_success=True)
    assert isinstance(page, PageFailure)
    assert page.kind is FailureKind.TRANSIENT
    assert page.status_code is None
