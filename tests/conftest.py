"""Shared test fixtures."""

from __future__ import annotations

import dataclasses

import pytest

from migready.analysis.dependencies import build_dependency_graph
from migready.analysis.findings import detect
from migready.analysis.health import compute_health
from migready.errors import TransportError
from migready.inventory.models import (
    AutomationIndex,
    InventorySnapshot,
    ObjectDescriptor,
    OrgProfile,
    StorageBucket,
    StorageUsage,
    Trigger,
)
from migready.scan.models import ScanResult, ScanSummary
from migready.transport.client import QueryPage


class FakeClient:
    """In-memory stand-in for :class:`SalesforceClient`.

    ``queries`` maps a SOQL string, or a ``(soql, tooling)`` pair, to a list
    of records, an ``int`` total for ``COUNT()`` queries, a ``QueryPage``,
    an exception to raise, or an async callable producing one of those.
    Unknown queries and paths fail like an unsupported sObject would.
    """

    def __init__(
        self,
        queries: dict | None = None,
        gets: dict | None = None,
        pages: dict | None = None,
        api_version: str = "v60.0",
        instance_url: str = "https://acme.my.salesforce.com",
    ) -> None:
        self.queries = queries or {}
        self.gets = gets or {}
        self.pages = pages or {}
        self.api_version = api_version
        self.instance_url = instance_url
        self.calls: list[tuple] = []
        self.closed = False

    def data_path(self, suffix: str) -> str:
        return f"/services/data/{self.api_version}/{suffix.lstrip('/')}"

    async def _resolve(self, value):
        if callable(value):
            value = await value()
        if isinstance(value, BaseException):
            raise value
        return value

    async def query(self, soql: str, use_tooling_api: bool = False) -> QueryPage:
        self.calls.append(("query", soql, use_tooling_api))
        for key in ((soql, use_tooling_api), soql):
            if key in self.queries:
                value = await self._resolve(self.queries[key])
                if isinstance(value, QueryPage):
                    return value
                if isinstance(value, int):
                    return QueryPage(records=[], total_size=value)
                return QueryPage(records=list(value), total_size=len(value))
        raise TransportError(
            "sObject type is not supported", status_code=400, error_code="INVALID_TYPE"
        )

    async def query_more(self, next_page_token: str, use_tooling_api: bool = False) -> QueryPage:
        self.calls.append(("query_more", next_page_token, use_tooling_api))
        return self.pages[next_page_token]

    async def get(self, path: str, params=None):
        self.calls.append(("get", path))
        if path in self.gets:
            return await self._resolve(self.gets[path])
        raise TransportError("The requested resource does not exist", status_code=404)

    async def limits(self):
        return await self.get(self.data_path("limits"))

    async def aclose(self) -> None:
        self.closed = True

    def queried(self, fragment: str) -> bool:
        return any(call[0] == "query" and fragment in call[1] for call in self.calls)


@pytest.fixture
def make_client():
    return FakeClient


@pytest.fixture
def profile() -> OrgProfile:
    return OrgProfile(
        instance_url="https://acme.my.salesforce.com",
        api_version="v60.0",
        org_id="00D000000000001",
        edition="Enterprise Edition",
        storage=StorageUsage(
            data=StorageBucket(used_mb=450, max_mb=1000, remaining_mb=550, used_pct=45.0),
            file=StorageBucket(used_mb=900, max_mb=1000, remaining_mb=100, used_pct=90.0),
        ),
    )


@pytest.fixture
def empty_snapshot(profile: OrgProfile) -> InventorySnapshot:
    return InventorySnapshot(profile=profile)


@pytest.fixture
def scan_result(empty_snapshot: InventorySnapshot) -> ScanResult:
    """A completed scan of an org with one large, trigger-guarded object."""
    snapshot = dataclasses.replace(
        empty_snapshot,
        objects=(ObjectDescriptor(name="Invoice__c", label="Invoice", record_count=250000),),
        automation=AutomationIndex(
            triggers=(
                Trigger(id="01q1", name="InvoiceTrigger", object="Invoice__c", status="Active"),
            )
        ),
    )
    findings = detect(snapshot)
    return ScanResult(
        snapshot=snapshot,
        findings=tuple(findings),
        dependency_graph=build_dependency_graph(snapshot.objects),
        summary=ScanSummary.build(snapshot, findings),
        health=compute_health(snapshot),
        trace_id="a1b2c3d4e5f6",
        duration=1.5,
    )
