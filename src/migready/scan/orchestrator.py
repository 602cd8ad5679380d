"""Scan orchestrator — runs the category fetchers and assembles the result.

The org profile is fetched first so that rejected credentials abort the
scan before any fan-out. The remaining fetchers run concurrently; one
fetcher's failure never cancels the others. If any of them failed with an
authentication error the whole scan is discarded, otherwise failed
categories are replaced by their empty defaults and recorded as degraded.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from typing import Any

from migready.analysis.dependencies import build_dependency_graph
from migready.analysis.findings import FindingsEngine
from migready.analysis.health import HealthEngine
from migready.analysis.models import HealthComputation
from migready.config import MigReadyConfig
from migready.errors import AuthenticationExpired, CategoryUnavailable, ScanFailed, is_auth_error
from migready.inventory.automation import fetch_automation
from migready.inventory.cascade import CascadeOptions
from migready.inventory.code import fetch_code
from migready.inventory.integrations import fetch_integrations
from migready.inventory.models import (
    AutomationIndex,
    CodeIndex,
    CountOnly,
    CoverageSummary,
    FlowSummary,
    IntegrationIndex,
    InventorySnapshot,
    OwnershipIndex,
    ReportingIndex,
    SecurityIndex,
)
from migready.inventory.org import fetch_org_profile
from migready.inventory.ownership import fetch_ownership
from migready.inventory.packages import fetch_packages
from migready.inventory.reporting import fetch_reporting
from migready.inventory.schema import fetch_objects
from migready.inventory.security import fetch_security
from migready.scan.models import ScanResult, ScanSummary
from migready.transport.client import Credentials, SalesforceClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Credentials], SalesforceClient]


def _unavailable_automation(note: str) -> AutomationIndex:
    return AutomationIndex(
        flow_summary=FlowSummary(note=note),
        validation_rules=CountOnly(note=note),
        workflow_rules=CountOnly(note=note),
        approval_processes=CountOnly(note=note),
    )


# Value substituted for a category whose fetcher failed, given the failure note
_DEFAULTS: dict[str, Callable[[str], Any]] = {
    "objects": lambda note: (),
    "automation": _unavailable_automation,
    "code": lambda note: CodeIndex(coverage=CoverageSummary(note=note)),
    "reporting": lambda note: ReportingIndex(),
    "ownership": lambda note: OwnershipIndex(),
    "packages": lambda note: (),
    "security": lambda note: SecurityIndex(note=note),
    "integrations": lambda note: IntegrationIndex(),
}


class ScanOrchestrator:
    """Runs one scan pass per :meth:`run` call."""

    def __init__(
        self,
        options: CascadeOptions | None = None,
        client_factory: ClientFactory | None = None,
        findings_engine: FindingsEngine | None = None,
        health_engine: HealthEngine | None = None,
        http_timeout: float = 30.0,
    ) -> None:
        self._options = options or CascadeOptions()
        self._client_factory = client_factory or (
            lambda credentials: SalesforceClient(credentials, timeout=http_timeout)
        )
        self._findings = findings_engine or FindingsEngine()
        self._health = health_engine or HealthEngine()

    @classmethod
    def from_config(cls, config: MigReadyConfig) -> ScanOrchestrator:
        return cls(
            options=CascadeOptions(
                timeout=config.cascade_timeout,
                max_pages=config.max_pages,
                concurrency=config.describe_concurrency,
            ),
            health_engine=HealthEngine(limits_timeout=config.limits_timeout),
            http_timeout=config.http_timeout,
        )

    async def run(self, credentials: Credentials) -> ScanResult:
        """Scan one org.

        Raises :class:`AuthenticationExpired` when the credentials are
        rejected and :class:`ScanFailed` on any unexpected error.
        """
        trace_id = uuid.uuid4().hex[:12]
        started = time.time()
        logger.info("Scan %s started instance=%s", trace_id, credentials.instance_url)

        client = self._client_factory(credentials)
        try:
            return await self._run(client, trace_id, started)
        except (AuthenticationExpired, ScanFailed):
            raise
        except Exception as exc:
            logger.exception("Scan %s failed", trace_id)
            raise ScanFailed(trace_id, exc) from exc
        finally:
            await client.aclose()

    async def _run(self, client: SalesforceClient, trace_id: str, started: float) -> ScanResult:
        try:
            profile = await fetch_org_profile(client)
        except Exception as exc:
            if is_auth_error(exc):
                logger.warning("Scan %s aborted: credentials rejected by profile fetch", trace_id)
                raise AuthenticationExpired(trace_id) from exc
            raise

        options = self._options
        fetchers = {
            "objects": fetch_objects(client, options),
            "automation": fetch_automation(client, options),
            "code": fetch_code(client),
            "reporting": fetch_reporting(client),
            "ownership": fetch_ownership(client),
            "packages": fetch_packages(client),
            "security": fetch_security(client),
            "integrations": fetch_integrations(client),
        }
        outcomes = await asyncio.gather(*fetchers.values(), return_exceptions=True)
        results = dict(zip(fetchers, outcomes))

        # Partial data under a rejected token is misleading; discard it all
        for category, outcome in results.items():
            if isinstance(outcome, BaseException) and is_auth_error(outcome):
                logger.warning(
                    "Scan %s aborted: credentials rejected while fetching %s",
                    trace_id,
                    category,
                )
                raise AuthenticationExpired(trace_id) from outcome

        degraded: list[str] = []
        notes: dict[str, str] = {}
        values: dict[str, Any] = {}
        for category, outcome in results.items():
            if isinstance(outcome, BaseException):
                cause = CategoryUnavailable(category, f"{type(outcome).__name__}: {outcome}")
                logger.error("Scan %s: %s, using defaults", trace_id, cause)
                degraded.append(category)
                notes[category] = str(cause)
                values[category] = _DEFAULTS[category](str(cause))
            else:
                values[category] = outcome

        snapshot = InventorySnapshot(
            profile=profile,
            objects=tuple(values["objects"]),
            automation=values["automation"],
            code=values["code"],
            reporting=values["reporting"],
            ownership=values["ownership"],
            packages=tuple(values["packages"]),
            security=values["security"],
            integrations=values["integrations"],
            degraded=tuple(degraded),
            notes=notes,
        )

        findings = self._findings.detect(snapshot)
        graph = build_dependency_graph(snapshot.objects)
        summary = ScanSummary.build(snapshot, findings)
        health = await self._compute_health(snapshot, client, trace_id)

        duration = time.time() - started
        logger.info(
            "Scan %s completed objects=%d records=%d flows=%d triggers=%d "
            "validation_rules=%d findings=%s degraded=%s duration=%.1fs",
            trace_id,
            summary.objects,
            summary.records_approx,
            summary.flows,
            summary.triggers,
            summary.validation_rules,
            summary.findings_by_severity,
            ",".join(degraded) or "none",
            duration,
        )
        return ScanResult(
            snapshot=snapshot,
            findings=tuple(findings),
            dependency_graph=graph,
            summary=summary,
            health=health,
            trace_id=trace_id,
            started_at=started,
            duration=duration,
        )

    async def _compute_health(
        self, snapshot: InventorySnapshot, client: SalesforceClient, trace_id: str
    ) -> HealthComputation | None:
        # Best effort: a failure here only omits the health section
        try:
            return await self._health.compute(snapshot, client)
        except Exception:
            logger.exception("Scan %s: health computation failed, omitting", trace_id)
            return None
