"""Bearer credentials for Microsoft Graph via MSAL."""

from __future__ import annotations

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import msal

from scripts.extattrs.config import AuthConfig
from scripts.extattrs.exceptions import AuthenticationError
from scripts.extattrs.secrets import resolve_client_secret

logger = logging.getLogger("extattrs.auth")


@dataclass(frozen=True)
class Credential:
    access_token: str
    expires_on: datetime


class TokenProvider(ABC):
    """Obtains and refreshes a bearer credential for a tenant."""

    @abstractmethod
    def acquire(self, tenant_id: str) -> Credential:
        """Return a credential, reusing a cached valid one when possible."""

    @abstractmethod
    def refresh(self, tenant_id: str) -> Credential:
        """Return a freshly issued credential, ignoring any cached one."""


def _to_credential(result: Optional[dict[str, Any]], action: str) -> Credential:
    if not result or "access_token" not in result:
        result = result or {}
        reason = result.get("error_description") or result.get("error") or "no token returned"
        raise AuthenticationError(f"Token {action} failed: {reason}")
    expires_in = int(result.get("expires_in", 3600))
    return Credential(
        access_token=result["access_token"],
        expires_on=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )


class MsalTokenProvider(TokenProvider):
    """MSAL-backed provider.

    Without a client secret a public client signs the user in (browser or
    device code) on the first acquire per tenant and serves later calls from
    the MSAL cache. With a client secret the app-only client-credentials flow
    is used instead; a secret manager reference is looked up once per tenant.
    """

    def __init__(self, config: AuthConfig) -> None:
        self.config = config
        self._apps: dict[str, msal.ClientApplication] = {}
        self._client_secrets: dict[str, str] = {}

    def _authority(self, tenant_id: str) -> str:
        return f"{self.config.authority_host}/{tenant_id}"

    def _app(self, tenant_id: str) -> msal.ClientApplication:
        app = self._apps.get(tenant_id)
        if app is None:
            if self.config.client_secret:
                app = msal.ConfidentialClientApplication(
                    self.config.client_id,
                    authority=self._authority(tenant_id),
                    client_credential=self._client_secret(tenant_id),
                )
            else:
                app = msal.PublicClientApplication(
                    self.config.client_id,
                    authority=self._authority(tenant_id),
                )
            self._apps[tenant_id] = app
        return app

    def _client_secret(self, tenant_id: str) -> str:
        secret = self._client_secrets.get(tenant_id)
        if secret is None:
            secret = resolve_client_secret(self.config.client_secret, tenant_id)
            self._client_secrets[tenant_id] = secret
        return secret

    @property
    def _confidential(self) -> bool:
        return bool(self.config.client_secret)

    def acquire(self, tenant_id: str) -> Credential:
        try:
            if self._confidential:
                result = self._app(tenant_id).acquire_token_for_client(
                    scopes=self.config.scopes
                )
            else:
                result = self._acquire_silent(tenant_id, force_refresh=False)
                if not result:
                    result = self._acquire_interactive(tenant_id)
        except AuthenticationError:
            raise
        except Exception as exc:
            raise AuthenticationError(f"Token acquisition failed: {exc}") from exc
        return _to_credential(result, "acquisition")

    def refresh(self, tenant_id: str) -> Credential:
        logger.debug("Refreshing access token", extra={"tenant": tenant_id})
        try:
            if self._confidential:
                # Client-credential tokens are cached per app; start a new one
                self._apps.pop(tenant_id, None)
                result = self._app(tenant_id).acquire_token_for_client(
                    scopes=self.config.scopes
                )
            else:
                result = self._acquire_silent(tenant_id, force_refresh=True)
                if not result:
                    result = self._acquire_interactive(tenant_id)
        except AuthenticationError:
            raise
        except Exception as exc:
            raise AuthenticationError(f"Token refresh failed: {exc}") from exc
        return _to_credential(result, "refresh")

    def _acquire_silent(self, tenant_id: str, force_refresh: bool) -> Optional[dict]:
        app = self._app(tenant_id)
        account = next(iter(app.get_accounts()), None)
        if account is None:
            return None
        return app.acquire_token_silent(
            self.config.scopes, account=account, force_refresh=force_refresh
        )

    def _acquire_interactive(self, tenant_id: str) -> dict:
        app = self._app(tenant_id)
        logger.info(
            "Signing in to tenant (%s flow)", self.config.auth_flow,
            extra={"tenant": tenant_id},
        )
        if self.config.auth_flow == "device_code":
            flow = app.initiate_device_flow(scopes=self.config.scopes)
            if "user_code" not in flow:
                raise AuthenticationError(
                    f"Device code start failed: {flow.get('error_description') or flow.get('error')}"
                )
            # stdout carries the export itself
            print(flow["message"], file=sys.stderr, flush=True)
            return app.acquire_token_by_device_flow(flow)
        return app.acquire_token_interactive(scopes=self.config.scopes)
