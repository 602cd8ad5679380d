"""Reporting fetcher — reports and email templates."""

from __future__ import annotations

import asyncio
import logging

from migready.inventory.cascade import query_or_empty
from migready.inventory.models import NamedItem, ReportingIndex
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)


async def fetch_reporting(client: SalesforceClient) -> ReportingIndex:
    # Dashboards and report types are not enumerated
    reports, templates = await asyncio.gather(
        query_or_empty(client, "SELECT Id, Name FROM Report", label="Report"),
        query_or_empty(client, "SELECT Id, Name FROM EmailTemplate", label="EmailTemplate"),
    )
    index = ReportingIndex(
        reports=tuple(NamedItem(id=r.get("Id", ""), name=r.get("Name", "")) for r in reports),
        email_templates=tuple(
            NamedItem(id=t.get("Id", ""), name=t.get("Name", "")) for t in templates
        ),
    )
    logger.info(
        "Reporting index fetched reports=%d email_templates=%d",
        len(index.reports),
        len(index.email_templates),
    )
    return index
