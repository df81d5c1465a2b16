"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev)
  - .env files in the working directory
  - AWS Secrets Manager / GCP Secret Manager references for CLIENT_SECRET,
    resolved per tenant at sign-in (see secrets.py)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

# Microsoft Azure CLI first-party public client; works for delegated Graph reads
DEFAULT_CLIENT_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"
AUTH_FLOWS = ("interactive", "device_code")


@dataclass(frozen=True)
class AuthConfig:
    client_id: str = DEFAULT_CLIENT_ID
    client_secret: Optional[str] = None  # None = public client, user sign-in
    authority_host: str = "https://login.microsoftonline.com"
    auth_flow: str = "interactive"
    scopes: list[str] = field(
        default_factory=lambda: ["https://graph.microsoft.com/.default"]
    )


@dataclass(frozen=True)
class FetchConfig:
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    page_size: int = 999
    request_timeout: int = 30
    throttle_delay: float = 5.0
    max_retries: int = 5


@dataclass(frozen=True)
class ExportConfig:
    tenant_id: Optional[str] = None
    auth: AuthConfig = field(default_factory=AuthConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)
    output_dir: str = "."
    log_level: str = "INFO"


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < 1:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def load_config(tenant_id: Optional[str] = None) -> ExportConfig:
    """Load configuration from environment variables.

    An explicit tenant_id (e.g. from the command line) wins over TENANT_ID.
    The tenant may still be None here; callers that fetch must supply one.
    """
    load_dotenv()

    auth_flow = os.environ.get("AUTH_FLOW", "interactive").strip().lower()
    if auth_flow not in AUTH_FLOWS:
        raise ValueError(
            f"AUTH_FLOW must be one of {', '.join(AUTH_FLOWS)}, got {auth_flow!r}"
        )

    auth = AuthConfig(
        client_id=os.environ.get("CLIENT_ID") or DEFAULT_CLIENT_ID,
        # Kept as given; secret manager references are resolved per tenant
        client_secret=os.environ.get("CLIENT_SECRET") or None,
        authority_host=os.environ.get(
            "AUTHORITY_HOST", "https://login.microsoftonline.com"
        ).rstrip("/"),
        auth_flow=auth_flow,
    )

    fetch = FetchConfig(
        graph_base_url=os.environ.get(
            "GRAPH_API_BASE_URL", "https://graph.microsoft.com/v1.0"
        ).rstrip("/"),
        page_size=_int_env("GRAPH_PAGE_SIZE", 999),
        request_timeout=_int_env("REQUEST_TIMEOUT_SECONDS", 30),
        throttle_delay=float(_int_env("THROTTLE_DELAY_SECONDS", 5)),
        max_retries=_int_env("MAX_TRANSIENT_RETRIES", 5),
    )

    return ExportConfig(
        tenant_id=tenant_id or os.environ.get("TENANT_ID") or None,
        auth=auth,
        fetch=fetch,
        output_dir=os.environ.get("OUTPUT_DIR", "."),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
    )
