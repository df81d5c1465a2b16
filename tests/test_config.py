"""Tests for scripts.extattrs.config."""

import os
from unittest.mock import patch

import pytest

from scripts.extattrs.config import DEFAULT_CLIENT_ID, load_config


def _load(env, tenant_id=None):
    with patch.dict(os.environ, env, clear=True), \
         patch("scripts.extattrs.config.load_dotenv"):
        return load_config(tenant_id)


def test_defaults():
    config = _load({})
    assert config.tenant_id is None
    assert config.auth.client_id == DEFAULT_CLIENT_ID
    assert config.auth.client_secret is None
    assert config.auth.auth_flow == "interactive"
    assert config.fetch.graph_base_url == "https://graph.microsoft.com/v1.0"
    assert config.fetch.page_size == 999
    assert config.fetch.throttle_delay == 5.0
    assert config.fetch.max_retries == 5
    assert config.output_dir == "."


def test_environment_overrides():
    config = _load({
        "TENANT_ID": "env-tenant",
        "CLIENT_ID": "app-id",
        "CLIENT_SECRET": "s3cret",
        "AUTH_FLOW": "DEVICE_CODE",
        "GRAPH_API_BASE_URL": "https://graph.microsoft.us/v1.0/",
        "GRAPH_PAGE_SIZE": "100",
        "THROTTLE_DELAY_SECONDS": "2",
        "MAX_TRANSIENT_RETRIES": "3",
        "OUTPUT_DIR": "/tmp/exports",
    })
    assert config.tenant_id == "env-tenant"
    assert config.auth.client_id == "app-id"
    assert config.auth.client_secret == "s3cret"
    assert config.auth.auth_flow == "device_code"
    assert config.fetch.graph_base_url == "https://graph.microsoft.us/v1.0"
    assert config.fetch.page_size == 100
    assert config.fetch.throttle_delay == 2.0
    assert config.fetch.max_retries == 3
    assert config.output_dir == "/tmp/exports"


def test_explicit_tenant_wins():
    assert _load({"TENANT_ID": "env-tenant"}, "cli-tenant").tenant_id == "cli-tenant"


@pytest.mark.parametrize(
    "env",
    [
        {"GRAPH_PAGE_SIZE": "many"},
        {"MAX_TRANSIENT_RETRIES": "0"},
        {"AUTH_FLOW": "password"},
    ],
)
def test_invalid_values(env):
    with pytest.raises(ValueError):
        _load(env)


def test_client_secret_reference_is_kept_for_sign_in():
    config = _load({"CLIENT_SECRET": "aws-secret://extattrs/{tenant}#client_secret"})
    assert config.auth.client_secret == "aws-secret://extattrs/{tenant}#client_secret"
