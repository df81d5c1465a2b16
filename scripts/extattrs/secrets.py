"""Per-tenant client secret lookup for app-only sign-in.

CLIENT_SECRET may hold the secret itself or point at a secret manager entry.
A reference may contain "{tenant}", which is filled with the tenant being
exported, so one deployment can keep a separate app registration secret for
every tenant it reads:

  aws-secret://extattrs/{tenant}#client_secret   AWS Secrets Manager, JSON key
  aws-secret://extattrs-client-secret            AWS Secrets Manager, whole value
  gcp-secret://extattrs-{tenant}                 GCP Secret Manager, latest version
  gcp-secret://projects/p/secrets/s/versions/3   GCP Secret Manager, full name
"""

from __future__ import annotations

import json
import logging
import os
import re

logger = logging.getLogger("extattrs.secrets")

AWS_SCHEME = "aws-secret://"
GCP_SCHEME = "gcp-secret://"
TENANT_PLACEHOLDER = "{tenant}"

# GCP secret ids allow only letters, digits, '-' and '_'
_GCP_ID_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


def is_secret_reference(value: str) -> bool:
    return value.startswith((AWS_SCHEME, GCP_SCHEME))


def resolve_client_secret(value: str, tenant_id: str) -> str:
    """Return the client secret to use when signing in to tenant_id."""
    if not is_secret_reference(value):
        return value

    if value.startswith(AWS_SCHEME):
        ref = value[len(AWS_SCHEME):].replace(TENANT_PLACEHOLDER, tenant_id)
        secret = _aws_client_secret(ref)
    else:
        tenant_slug = _GCP_ID_UNSAFE.sub("-", tenant_id)
        ref = value[len(GCP_SCHEME):].replace(TENANT_PLACEHOLDER, tenant_slug)
        secret = _gcp_client_secret(ref)

    if not secret:
        raise ValueError(f"Client secret for tenant {tenant_id} is empty")
    logger.debug("Resolved client secret from secret manager", extra={"tenant": tenant_id})
    return secret


def _aws_client_secret(ref: str) -> str:
    import boto3

    secret_id, _, json_key = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    secret_string = client.get_secret_value(SecretId=secret_id)["SecretString"]
    if not json_key:
        return secret_string
    return str(json.loads(secret_string)[json_key])


def _gcp_client_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "")
        if not project:
            raise RuntimeError("GCP_PROJECT_ID must be set for short gcp-secret references")
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")
