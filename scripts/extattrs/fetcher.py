"""Single-page Graph fetch with outcome classification.

The network call and the retry policy are kept apart: PageFetcher performs
one GET and turns whatever happened into a PageSuccess or a PageFailure
tagged with a FailureKind. classify_failure() holds the status-code policy
and needs no HTTP layer to test.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

import requests

from scripts.extattrs.exceptions import (
    BadRequestError,
    ExtAttrsError,
    PermissionDeniedError,
    ThrottledError,
    TokenExpiredError,
    TransientError,
)

logger = logging.getLogger("extattrs.fetcher")

THROTTLE_STATUSES = frozenset({429, 503, 504})


class FailureKind(Enum):
    TOKEN_EXPIRED = "token_expired"
    THROTTLED = "throttled"
    PERMISSION_DENIED = "permission_denied"
    BAD_REQUEST = "bad_request"
    TRANSIENT = "transient"

    @property
    def fatal(self) -> bool:
        return self in (FailureKind.PERMISSION_DENIED, FailureKind.BAD_REQUEST)


_ERRORS: dict[FailureKind, type[ExtAttrsError]] = {
    FailureKind.TOKEN_EXPIRED: TokenExpiredError,
    FailureKind.THROTTLED: ThrottledError,
    FailureKind.PERMISSION_DENIED: PermissionDeniedError,
    FailureKind.BAD_REQUEST: BadRequestError,
    FailureKind.TRANSIENT: TransientError,
}


@dataclass
class PageSuccess:
    records: list[dict[str, Any]] = field(default_factory=list)
    next_link: Optional[str] = None


@dataclass
class PageFailure:
    kind: FailureKind
    status_code: Optional[int] = None
    detail: str = ""

    def as_error(self) -> ExtAttrsError:
        prefix = f"HTTP {self.status_code}: " if self.status_code else ""
        return _ERRORS[self.kind](f"{prefix}{self.detail}".strip())


PageResult = Union[PageSuccess, PageFailure]


def build_headers(token: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


def classify_failure(status_code: Optional[int], had_success: bool) -> FailureKind:
    """Map a failed request to the action the fetch loop must take.

    Rules are applied in order; a 401 only means an expired token once a page
    has already come back, before that it means the caller lacks access.
    """
    if status_code is None:
        return FailureKind.TRANSIENT
    if status_code == 401 and had_success:
        return FailureKind.TOKEN_EXPIRED
    if status_code in THROTTLE_STATUSES:
        return FailureKind.THROTTLED
    if status_code in (401, 403):
        return FailureKind.PERMISSION_DENIED
    if status_code == 400:
        return FailureKind.BAD_REQUEST
    return FailureKind.TRANSIENT


def _error_message(resp: requests.Response) -> str:
    """Pull Graph's error.message out of a failed response, if there is one."""
    try:
        body = resp.json()
    except ValueError:
        return resp.text[:500]
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, dict) and err.get("message"):
            return str(err["message"])
    return resp.text[:500]


class PageFetcher:
    """Issues one GET per call against a shared requests.Session."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 30) -> None:
        self._session = session or requests.Session()
        self._timeout = timeout

    def close(self) -> None:
        self._session.close()

    def fetch_page(self, url: str, headers: dict[str, str], had_success: bool) -> PageResult:
        try:
            resp = self._session.get(url, headers=headers, timeout=self._timeout)
        except requests.RequestException as exc:
            logger.debug("Request to %s failed without a response: %s", url, exc)
            return PageFailure(FailureKind.TRANSIENT, None, str(exc))

        if not resp.ok:
            kind = classify_failure(resp.status_code, had_success)
            return PageFailure(kind, resp.status_code, _error_message(resp))

        try:
            data = resp.json()
        except ValueError as exc:
            return PageFailure(FailureKind.TRANSIENT, None, f"Undecodable response body: {exc}")
        if not isinstance(data, dict):
            return PageFailure(FailureKind.TRANSIENT, None, "Response body is not a JSON object")

        records = data.get("value") or []
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            return PageFailure(FailureKind.TRANSIENT, None, "Response value is not a list of objects")

        return PageSuccess(
            records=records,
            next_link=data.get("@odata.nextLink") or None,
        )
