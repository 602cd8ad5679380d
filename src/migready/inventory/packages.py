"""Installed package fetcher."""

from __future__ import annotations

import logging

from migready.inventory.cascade import query_or_empty
from migready.inventory.models import Package
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)


async def fetch_packages(client: SalesforceClient) -> list[Package]:
    """Managed packages; rows without a namespace are skipped."""
    rows = await query_or_empty(
        client,
        "SELECT NamespacePrefix, Name FROM InstalledSubscriberPackage",
        label="InstalledSubscriberPackage",
    )
    packages = [
        Package(namespace=row["NamespacePrefix"], name=row.get("Name") or row["NamespacePrefix"])
        for row in rows
        if row.get("NamespacePrefix")
    ]
    logger.info("Installed packages fetched count=%d", len(packages))
    return packages
