"""Code fetcher — Apex classes, triggers and test coverage."""

from __future__ import annotations

import asyncio
import logging

from migready.errors import AuthenticationError, TransportError
from migready.inventory.cascade import query_or_empty
from migready.inventory.models import ApexUnit, CodeIndex, CoverageSummary, UnitCoverage
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

_COVERAGE_AGGREGATE_QUERY = (
    "SELECT ApexClassOrTriggerId, ApexClassOrTrigger.Name, NumLinesCovered, "
    "NumLinesUncovered FROM ApexCodeCoverageAggregate"
)

NO_COVERAGE_NOTE = "No coverage data available. Tests may not have been run."


async def fetch_code(client: SalesforceClient) -> CodeIndex:
    classes, triggers, coverage = await asyncio.gather(
        query_or_empty(
            client, "SELECT Id, Name, ApiVersion FROM ApexClass", tooling=True, label="ApexClass"
        ),
        query_or_empty(
            client,
            "SELECT Id, Name, ApiVersion FROM ApexTrigger",
            tooling=True,
            label="ApexTrigger",
        ),
        fetch_coverage(client),
    )
    index = CodeIndex(
        apex_classes=tuple(_unit(row, client.api_version) for row in classes),
        apex_triggers=tuple(_unit(row, client.api_version) for row in triggers),
        coverage=coverage,
    )
    logger.info(
        "Code index fetched classes=%d triggers=%d coverage_units=%d org_wide=%s",
        len(index.apex_classes),
        len(index.apex_triggers),
        len(coverage.units),
        coverage.org_wide_percent,
    )
    return index


def _unit(row: dict, default_version: str) -> ApexUnit:
    return ApexUnit(
        id=row.get("Id", ""),
        name=row.get("Name", ""),
        api_version=str(row.get("ApiVersion") or default_version),
    )


async def fetch_coverage(client: SalesforceClient) -> CoverageSummary:
    """Org-wide percentage plus per-unit line coverage.

    An empty aggregate yields a note instead of zero coverage.
    """
    org_wide: float | None = None
    try:
        page = await client.query(
            "SELECT PercentCovered FROM ApexOrgWideCoverage", use_tooling_api=True
        )
    except AuthenticationError:
        raise
    except TransportError as exc:
        logger.debug("ApexOrgWideCoverage unavailable: %s", exc)
    else:
        if page.records:
            value = page.records[0].get("PercentCovered")
            org_wide = float(value) if isinstance(value, (int, float)) else None

    try:
        page = await client.query(_COVERAGE_AGGREGATE_QUERY, use_tooling_api=True)
    except AuthenticationError:
        raise
    except TransportError as exc:
        logger.warning("ApexCodeCoverageAggregate unavailable: %s", exc)
        return CoverageSummary(
            org_wide_percent=org_wide, note=f"Coverage not accessible: {exc}"
        )

    units = tuple(
        UnitCoverage(
            id=row.get("ApexClassOrTriggerId") or "",
            name=(row.get("ApexClassOrTrigger") or {}).get("Name") or "Unknown",
            lines_covered=int(row.get("NumLinesCovered") or 0),
            lines_uncovered=int(row.get("NumLinesUncovered") or 0),
        )
        for row in page.records
    )
    if not units:
        return CoverageSummary(org_wide_percent=org_wide, note=NO_COVERAGE_NOTE)
    return CoverageSummary(org_wide_percent=org_wide, units=units)
