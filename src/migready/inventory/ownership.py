"""Ownership fetcher — active users and queues."""

from __future__ import annotations

import asyncio
import logging

from migready.inventory.cascade import query_or_empty
from migready.inventory.models import NamedItem, OwnershipIndex, UserSummary
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

USER_LIMIT = 10000


async def fetch_ownership(client: SalesforceClient) -> OwnershipIndex:
    users, queues, licenses = await asyncio.gather(
        query_or_empty(
            client,
            f"SELECT Id, ProfileId, UserLicenseId, UserRoleId FROM User "
            f"WHERE IsActive = true LIMIT {USER_LIMIT}",
            label="User",
        ),
        query_or_empty(client, "SELECT Id, Name FROM Group WHERE Type = 'Queue'", label="Queue"),
        query_or_empty(client, "SELECT Id, Name FROM UserLicense", label="UserLicense"),
    )
    license_names = {lic.get("Id"): lic.get("Name") for lic in licenses}

    index = OwnershipIndex(
        users=tuple(
            UserSummary(
                id=user.get("Id", ""),
                name=f"User-{str(user.get('Id', ''))[:8]}",
                license=license_names.get(user.get("UserLicenseId")) or "Unknown",
                active=True,
                role=user.get("UserRoleId") or None,
            )
            for user in users
        ),
        queues=tuple(NamedItem(id=q.get("Id", ""), name=q.get("Name", "")) for q in queues),
    )
    logger.info("Ownership index fetched users=%d queues=%d", len(index.users), len(index.queues))
    return index
