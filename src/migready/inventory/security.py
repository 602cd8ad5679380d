"""Security fetcher — profiles, permission sets and license distribution."""

from __future__ import annotations

import asyncio
import logging

from migready.inventory.cascade import (
    CascadeHit,
    Records,
    Strategy,
    query_or_empty,
    run_cascade,
)
from migready.inventory.models import (
    LicenseUsage,
    PermissionSetInfo,
    ProfileInfo,
    SecurityIndex,
)
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

_ASSIGNMENT_QUERY = (
    "SELECT PermissionSetId, PermissionSet.Name, PermissionSet.Label, "
    "PermissionSet.UserLicenseId FROM PermissionSetAssignment LIMIT 1000"
)

PERMISSION_SET_STRATEGIES = [
    Strategy(name="REST - basic fields", soql="SELECT Id, Name FROM PermissionSet"),
    Strategy(name="REST - with Label", soql="SELECT Id, Name, Label FROM PermissionSet"),
    Strategy(
        name="REST - with UserLicenseId",
        soql="SELECT Id, Name, UserLicenseId FROM PermissionSet",
    ),
    Strategy(
        name="REST - with IsCustom filter",
        soql=(
            "SELECT Id, Name, Label, UserLicenseId, IsCustom FROM PermissionSet "
            "WHERE IsCustom = true"
        ),
    ),
    Strategy(
        name="Tooling - basic fields", soql="SELECT Id, Name FROM PermissionSet", tooling=True
    ),
    Strategy(
        name="Tooling - all fields",
        soql="SELECT Id, Name, Label, UserLicenseId FROM PermissionSet",
        tooling=True,
    ),
]


async def _from_assignments(client: SalesforceClient) -> Records:
    """Unique permission sets referenced by assignments."""
    page = await client.query(_ASSIGNMENT_QUERY)
    unique: dict[str, dict] = {}
    for assignment in page.records:
        ps_id = assignment.get("PermissionSetId")
        related = assignment.get("PermissionSet")
        if not ps_id or not related:
            continue
        unique[ps_id] = {
            "Id": ps_id,
            "Name": related.get("Name"),
            "Label": related.get("Label"),
            "UserLicenseId": related.get("UserLicenseId"),
        }
    return list(unique.values())


async def fetch_security(client: SalesforceClient) -> SecurityIndex:
    profiles_rows, permission_hit, license_rows = await asyncio.gather(
        query_or_empty(client, "SELECT Id, Name, UserLicenseId FROM Profile", label="Profile"),
        run_cascade(
            client,
            [
                *PERMISSION_SET_STRATEGIES,
                Strategy(name="PermissionSetAssignment", loader=_from_assignments),
            ],
            label="permission sets",
        ),
        query_or_empty(
            client,
            "SELECT Id, Name, LicenseDefinitionKey, UsedLicenses, TotalLicenses FROM UserLicense",
            label="UserLicense",
        ),
    )

    licenses: dict[str, tuple[str, int, int]] = {}
    for lic in license_rows:
        name = lic.get("Name") or lic.get("LicenseDefinitionKey") or "Unknown"
        licenses[lic.get("Id")] = (
            name,
            int(lic.get("TotalLicenses") or 0),
            int(lic.get("UsedLicenses") or 0),
        )

    def license_name(license_id: str | None) -> str:
        entry = licenses.get(license_id) if license_id else None
        return entry[0] if entry else "Unknown"

    # Per-profile user counts need User queries, which field-level security
    # commonly blocks; they stay at zero.
    profiles = tuple(
        ProfileInfo(
            id=row.get("Id", ""),
            name=row.get("Name", ""),
            user_license=license_name(row.get("UserLicenseId")),
        )
        for row in profiles_rows
    )

    note = None
    permission_rows: Records = []
    if isinstance(permission_hit, CascadeHit):
        permission_rows = permission_hit.records
    else:
        note = f"Permission sets not accessible: {permission_hit.reason}"

    permission_sets = tuple(
        PermissionSetInfo(
            id=row["Id"],
            name=row["Name"],
            label=row.get("Label") or row["Name"],
            user_license=license_name(row.get("UserLicenseId")),
        )
        for row in permission_rows
        # Profile-owned and other system permission sets report IsCustom = false
        if row.get("IsCustom") is not False and row.get("Id") and row.get("Name")
    )

    distribution = {
        name: LicenseUsage(total=total, used=used) for name, total, used in licenses.values()
    }
    index = SecurityIndex(
        profiles=profiles,
        permission_sets=permission_sets,
        total_users=sum(used for _, _, used in licenses.values()),
        license_distribution=distribution,
        note=note,
    )
    logger.info(
        "Security index fetched profiles=%d permission_sets=%d (of %d rows) licenses=%d",
        len(profiles),
        len(permission_sets),
        len(permission_rows),
        len(distribution),
    )
    return index
