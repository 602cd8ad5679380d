"""Org profile fetcher — identity, edition, licenses and storage usage.

Runs before every other fetcher. Authentication errors propagate so the
orchestrator can abort the scan before fanning out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from migready.errors import AuthenticationError, TransportError
from migready.inventory.cascade import query_or_empty
from migready.inventory.models import OrgProfile, StorageBucket, StorageUsage
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

_LICENSE_QUERY = (
    "SELECT Id, Name, LicenseDefinitionKey, UsedLicenses, TotalLicenses FROM UserLicense"
)

# License-name fragment → edition, checked in order
_EDITION_HINTS: list[tuple[tuple[str, ...], str]] = [
    (("unlimited", "performance"), "Unlimited Edition"),
    (("enterprise",), "Enterprise Edition"),
    (("professional",), "Professional Edition"),
    (("group",), "Group Edition"),
    (("contact manager",), "Contact Manager Edition"),
    (("developer",), "Developer Edition"),
]

_SANDBOX_URL_MARKERS = ("--", ".sandbox.", "test.")


async def fetch_org_profile(client: SalesforceClient) -> OrgProfile:
    """Resolve org identity, edition, licenses and storage."""
    limits, describe, licenses, identity = await asyncio.gather(
        _get_or_empty(client, client.data_path("limits")),
        _get_or_empty(client, client.data_path("sobjects/Organization/describe")),
        query_or_empty(client, _LICENSE_QUERY, label="UserLicense"),
        _identity(client),
    )

    org_id = identity.get("organization_id") or describe.get("organizationId") or ""
    logger.debug(
        "Org id resolution identity=%s describe=%s",
        identity.get("organization_id"),
        describe.get("organizationId"),
    )

    edition = "Unknown"
    is_sandbox = False
    instance_name = ""
    org_name = ""

    if org_id:
        try:
            record = await client.get(client.data_path(f"sobjects/Organization/{org_id}"))
        except AuthenticationError:
            raise
        except TransportError as exc:
            logger.warning("Could not fetch Organization record %s: %s", org_id, exc)
        else:
            edition = record.get("Edition") or record.get("OrganizationType") or edition
            is_sandbox = record.get("IsSandbox") is True
            instance_name = record.get("InstanceName") or ""
            org_name = record.get("Name") or ""

    if edition == "Unknown":
        if any(marker in client.instance_url for marker in _SANDBOX_URL_MARKERS):
            is_sandbox = True
        edition = infer_edition(licenses) or edition

    profile = OrgProfile(
        instance_url=client.instance_url,
        api_version=client.api_version,
        org_id=org_id,
        edition=edition,
        organization_name=org_name,
        is_sandbox=is_sandbox,
        instance_name=instance_name,
        storage=storage_from_limits(limits),
        limits=limits,
        user_licenses=tuple(licenses),
    )
    logger.info(
        "Org profile fetched org=%s edition=%s sandbox=%s licenses=%d",
        org_id,
        edition,
        is_sandbox,
        len(licenses),
    )
    return profile


async def _get_or_empty(client: SalesforceClient, path: str) -> dict[str, Any]:
    try:
        payload = await client.get(path)
    except AuthenticationError:
        raise
    except TransportError as exc:
        logger.debug("GET %s failed: %s", path, exc)
        return {}
    return payload if isinstance(payload, dict) else {}


async def _identity(client: SalesforceClient) -> dict[str, Any]:
    """Identity info from ``/id``, falling back to the userinfo endpoint."""
    for path in ("/id", "/services/oauth2/userinfo"):
        info = await _get_or_empty(client, path)
        if info:
            return info
    return {}


def infer_edition(licenses: list[dict[str, Any]]) -> str | None:
    """Guess the edition from license names when the org record is unreadable."""
    if not licenses:
        return None
    keys = ",".join(str(lic.get("LicenseDefinitionKey") or "") for lic in licenses).lower()
    if "salesforce" not in keys:
        return None
    names = " ".join(str(lic.get("Name") or "") for lic in licenses).lower()
    for fragments, edition in _EDITION_HINTS:
        if any(fragment in names for fragment in fragments):
            return edition
    return None


def storage_from_limits(limits: dict[str, Any]) -> StorageUsage:
    """Data/file storage usage from ``DataStorageMB``/``FileStorageMB`` limits."""
    data = _bucket(limits.get("DataStorageMB"))
    file = _bucket(limits.get("FileStorageMB"))
    if data is None and file is None:
        return StorageUsage(note="Storage limits not available")
    return StorageUsage(data=data, file=file)


def _bucket(entry: Any) -> StorageBucket | None:
    if not isinstance(entry, dict):
        return None
    maximum = entry.get("Max")
    remaining = entry.get("Remaining")
    if not isinstance(maximum, (int, float)) or not isinstance(remaining, (int, float)):
        return None
    used = maximum - remaining
    used_pct = round(100.0 * used / maximum, 1) if maximum > 0 else 0.0
    return StorageBucket(
        used_mb=float(used),
        max_mb=float(maximum),
        remaining_mb=float(remaining),
        used_pct=used_pct,
    )
