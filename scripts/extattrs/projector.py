"""Projection of raw Graph user objects into fixed-shape export rows."""

from __future__ import annotations

from typing import Any, Optional

IDENTITY_FIELDS = ("displayName", "userPrincipalName", "objectId")
EXTENSION_FIELDS = tuple(f"extensionAttribute{i}" for i in range(1, 16))
GUEST_FIELDS = ("userType", "createdDateTime", "externalUserState", "creationType")

# Graph $select list covering both output shapes, so one query serves either
SELECT_FIELDS = (
    "displayName",
    "userPrincipalName",
    "id",
    "onPremisesExtensionAttributes",
    "userType",
    "externalUserState",
    "creationType",
    "createdDateTime",
)


def output_fields(include_guest_info: bool) -> tuple[str, ...]:
    """Column order for a run; fixed by the mode flag, never per record."""
    fields = IDENTITY_FIELDS + EXTENSION_FIELDS
    if include_guest_info:
        fields += GUEST_FIELDS
    return fields


def project_record(raw: dict[str, Any], include_guest_info: bool) -> dict[str, Optional[Any]]:
    # Some directory object types come back without the extension mapping at all
    extensions = raw.get("onPremisesExtensionAttributes") or {}
    row: dict[str, Optional[Any]] = {
        "displayName": raw.get("displayName"),
        "userPrincipalName": raw.get("userPrincipalName"),
        "objectId": raw.get("id", raw.get("Id")),
    }
    for name in EXTENSION_FIELDS:
        row[name] = extensions.get(name)
    if include_guest_info:
        for name in GUEST_FIELDS:
            row[name] = raw.get(name)
    return row
