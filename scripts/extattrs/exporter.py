"""Entry point used by the CLI and by callers embedding the exporter."""

from __future__ import annotations

import logging
from typing import Optional

from scripts.extattrs.config import ExportConfig, load_config
from scripts.extattrs.fetcher import PageFetcher
from scripts.extattrs.orchestrator import FetchOrchestrator, FetchResult
from scripts.extattrs.output import write_csv
from scripts.extattrs.projector import output_fields
from scripts.extattrs.token_provider import MsalTokenProvider, TokenProvider

logger = logging.getLogger("extattrs.exporter")


def export_extension_attributes(
    tenant_id: str,
    *,
    all_users: bool = False,
    user: Optional[str] = None,
    include_guest_info: bool = False,
    write_to_file: bool = False,
    config: Optional[ExportConfig] = None,
    token_provider: Optional[TokenProvider] = None,
    fetcher: Optional[PageFetcher] = None,
) -> FetchResult:
    """Fetch extension attributes for every user or a single user.

    Exactly one of all_users / user must be given. The records are always on
    the returned FetchResult; with write_to_file they are also written to a
    dated CSV and output_path is set. A fetch that stopped early still returns
    (and writes) whatever was collected, with status and message explaining why.
    """
    if not tenant_id:
        raise ValueError("tenant_id is required")
    if all_users == (user is not None):
        raise ValueError("Specify exactly one of all_users or user")

    config = config or load_config(tenant_id)
    token_provider = token_provider or MsalTokenProvider(config.auth)
    owns_fetcher = fetcher is None
    fetcher = fetcher or PageFetcher(timeout=config.fetch.request_timeout)

    try:
        orchestrator = FetchOrchestrator(tenant_id, token_provider, fetcher, config.fetch)
        result = orchestrator.run(user=user, include_guest_info=include_guest_info)
    finally:
        if owns_fetcher:
            fetcher.close()

    if write_to_file and (result.records or result.ok):
        if not result.ok:
            logger.warning(
                "Writing partial results (%d users)", len(result.records),
                extra={"tenant": tenant_id, "records": len(result.records)},
            )
        result.output_path = write_csv(
            result.records,
            output_fields(include_guest_info),
            config.output_dir,
            tenant_id,
        )
    return result
