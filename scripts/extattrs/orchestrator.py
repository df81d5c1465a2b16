"""Paginated fetch loop over the Graph /users endpoint."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote, urlencode

from scripts.extattrs.config import FetchConfig
from scripts.extattrs.exceptions import (
    AuthenticationError,
    ExtAttrsError,
    RetriesExhaustedError,
)
from scripts.extattrs.fetcher import (
    FailureKind,
    PageFetcher,
    PageSuccess,
    build_headers,
)
from scripts.extattrs.projector import SELECT_FIELDS, project_record
from scripts.extattrs.token_provider import TokenProvider

logger = logging.getLogger("extattrs.orchestrator")

_GUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


class FetchStatus(Enum):
    COMPLETE = "complete"
    AUTH_FAILED = "auth_failed"
    PERMISSION_DENIED = "permission_denied"
    BAD_REQUEST = "bad_request"
    RETRIES_EXHAUSTED = "retries_exhausted"


_FATAL_STATUS = {
    FailureKind.PERMISSION_DENIED: (
        FetchStatus.PERMISSION_DENIED,
        "Access denied by the directory; check permissions for the signed-in account.",
    ),
    FailureKind.BAD_REQUEST: (
        FetchStatus.BAD_REQUEST,
        "The directory rejected the request; check the query (user identifier).",
    ),
}


@dataclass
class RetryState:
    attempts: int = 0
    had_success: bool = False


@dataclass
class FetchResult:
    records: list[dict[str, Any]] = field(default_factory=list)
    status: FetchStatus = FetchStatus.COMPLETE
    message: Optional[str] = None
    error: Optional[ExtAttrsError] = None
    pages: int = 0
    fetched: int = 0
    output_path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.COMPLETE

    def raise_for_status(self) -> None:
        if self.error is not None:
            raise self.error


def _odata_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def build_query_url(base_url: str, user: Optional[str] = None, page_size: int = 999) -> str:
    """Build the first-page URL for all users, or for one user when given.

    A GUID is matched against the object id, anything else against the
    user principal name.
    """
    params = {
        "$select": ",".join(SELECT_FIELDS),
        "$top": str(page_size),
    }
    if user is not None:
        user = user.strip()
        if not user:
            raise ValueError("user identifier must not be empty")
        prop = "id" if _GUID_RE.match(user) else "userPrincipalName"
        params["$filter"] = f"{prop} eq {_odata_literal(user)}"
    query = urlencode(params, quote_via=quote, safe="$,'")
    return f"{base_url.rstrip('/')}/users?{query}"


class FetchOrchestrator:
    """Drives PageFetcher across the nextLink chain for one tenant.

    Only one request is ever in flight. The credential is rotated after every
    successful page except the first, and on a mid-run 401.
    """

    def __init__(
        self,
        tenant_id: str,
        token_provider: TokenProvider,
        fetcher: PageFetcher,
        config: Optional[FetchConfig] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self.token_provider = token_provider
        self.fetcher = fetcher
        self.config = config or FetchConfig()

    def run(self, user: Optional[str] = None, include_guest_info: bool = False) -> FetchResult:
        started = time.monotonic()
        url: Optional[str] = build_query_url(
            self.config.graph_base_url, user=user, page_size=self.config.page_size
        )
        result = self._fetch(url, include_guest_info)
        duration = round(time.monotonic() - started, 2)

        if result.ok:
            logger.info(
                "Fetched %d users in %d pages", result.fetched, result.pages,
                extra={"tenant": self.tenant_id, "records": result.fetched, "duration_s": duration},
            )
        else:
            logger.warning(
                "Fetch aborted (%s): %s", result.status.value, result.message,
                extra={"tenant": self.tenant_id, "records": result.fetched, "duration_s": duration},
            )
        return result

    def _fetch(self, url: Optional[str], include_guest_info: bool) -> FetchResult:
        result = FetchResult()
        state = RetryState()

        try:
            credential = self.token_provider.acquire(self.tenant_id)
        except AuthenticationError as exc:
            return self._abort(result, FetchStatus.AUTH_FAILED, f"Could not sign in: {exc}", exc)
        headers = build_headers(credential.access_token)

        while url:
            page = self.fetcher.fetch_page(url, headers, state.had_success)

            if isinstance(page, PageSuccess):
                result.records.extend(
                    project_record(raw, include_guest_info) for raw in page.records
                )
                result.pages += 1
                result.fetched += len(page.records)
                url = page.next_link
                state.attempts = 0
                logger.info(
                    "Fetched page %d (%d users so far)", result.pages, result.fetched,
                    extra={"tenant": self.tenant_id, "page": result.pages, "records": result.fetched},
                )
                # Rotate the token on every page after the first, ahead of expiry.
                # This includes the last page, so a refresh failure there still
                # reports auth_failed even though every row was fetched.
                if state.had_success:
                    try:
                        headers = self._refreshed_headers()
                    except AuthenticationError as exc:
                        return self._abort(result, FetchStatus.AUTH_FAILED, f"Token refresh failed: {exc}", exc)
                state.had_success = True
                continue

            if page.kind is FailureKind.TOKEN_EXPIRED:
                logger.warning(
                    "Access token expired, refreshing",
                    extra={"tenant": self.tenant_id, "status_code": page.status_code},
                )
                try:
                    headers = self._refreshed_headers()
                except AuthenticationError as exc:
                    return self._abort(result, FetchStatus.AUTH_FAILED, f"Token refresh failed: {exc}", exc)
                # A second 401 before the next success is treated as no access
                state.had_success = False
                continue

            if page.kind is FailureKind.THROTTLED:
                logger.warning(
                    "Throttled, sleeping %.1fs", self.config.throttle_delay,
                    extra={"tenant": self.tenant_id, "status_code": page.status_code},
                )
                time.sleep(self.config.throttle_delay)
                continue

            if page.kind.fatal:
                status, message = _FATAL_STATUS[page.kind]
                if page.detail:
                    message = f"{message} ({page.detail})"
                return self._abort(result, status, message, page.as_error())

            state.attempts += 1
            logger.warning(
                "Request failed (attempt %d/%d): %s",
                state.attempts, self.config.max_retries, page.detail,
                extra={"tenant": self.tenant_id, "attempt": state.attempts, "status_code": page.status_code},
            )
            if state.attempts >= self.config.max_retries:
                return self._abort(
                    result,
                    FetchStatus.RETRIES_EXHAUSTED,
                    "Download request failed, try again later.",
                    RetriesExhaustedError(page.detail or "transient failures"),
                )

        return result

    def _refreshed_headers(self) -> dict[str, str]:
        credential = self.token_provider.refresh(self.tenant_id)
        return build_headers(credential.access_token)

    @staticmethod
    def _abort(
        result: FetchResult,
        status: FetchStatus,
        message: str,
        error: ExtAttrsError,
    ) -> FetchResult:
        result.status = status
        result.message = message
        result.error = error
        return result
