"""Tests for the scan orchestrator."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from migready.config import MigReadyConfig
from migready.errors import AuthenticationError, AuthenticationExpired, ScanFailed, TransportError
from migready.inventory.models import (
    AutomationIndex,
    CodeIndex,
    IntegrationIndex,
    ObjectDescriptor,
    OwnershipIndex,
    ReportingIndex,
    SecurityIndex,
    Trigger,
)
from migready.scan.orchestrator import ScanOrchestrator
from migready.transport.client import Credentials

MODULE = "migready.scan.orchestrator"
EMPTY = {
    "fetch_objects": list,
    "fetch_automation": AutomationIndex,
    "fetch_code": CodeIndex,
    "fetch_reporting": ReportingIndex,
    "fetch_ownership": OwnershipIndex,
    "fetch_packages": list,
    "fetch_security": SecurityIndex,
    "fetch_integrations": IntegrationIndex,
}
CREDENTIALS = Credentials(instance_url="https://acme.my.salesforce.com", access_token="00D!token")


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def fetchers(profile):
    """Patch every category fetcher with an AsyncMock returning an empty category."""
    mocks = {"fetch_org_profile": AsyncMock(return_value=profile)}
    mocks.update({name: AsyncMock(return_value=factory()) for name, factory in EMPTY.items()})
    patchers = [patch(f"{MODULE}.{name}", new=mock) for name, mock in mocks.items()]
    for patcher in patchers:
        patcher.start()
    yield mocks
    for patcher in patchers:
        patcher.stop()


def _orchestrator(client, **kwargs):
    return ScanOrchestrator(client_factory=lambda credentials: client, **kwargs)


class TestScan:
    def test_successful_scan(self, client, fetchers):
        fetchers["fetch_objects"].return_value = [
            ObjectDescriptor(name="Invoice__c", label="Invoice", record_count=250000)
        ]
        fetchers["fetch_automation"].return_value = AutomationIndex(
            triggers=(Trigger(id="1", name="InvoiceTrigger", object="Invoice__c", status="Active"),)
        )
        result = run_async(_orchestrator(client).run(CREDENTIALS))

        assert result.trace_id
        assert result.snapshot.degraded == ()
        assert result.summary.objects == 1
        assert result.summary.records_approx == 250000
        assert result.summary.findings_by_severity == {"HIGH": 1, "MEDIUM": 1, "LOW": 0}
        assert result.has_high_findings
        assert result.dependency_graph.order == ("Invoice__c",)
        assert result.health is not None
        assert client.closed

    def test_profile_auth_error_aborts_before_fan_out(self, client, fetchers):
        fetchers["fetch_org_profile"].side_effect = AuthenticationError()
        with pytest.raises(AuthenticationExpired) as excinfo:
            run_async(_orchestrator(client).run(CREDENTIALS))
        assert excinfo.value.trace_id
        for name in EMPTY:
            fetchers[name].assert_not_called()
        assert client.closed

    def test_any_fetcher_auth_error_discards_scan(self, client, fetchers):
        fetchers["fetch_security"].side_effect = AuthenticationError()
        with pytest.raises(AuthenticationExpired):
            run_async(_orchestrator(client).run(CREDENTIALS))
        # Siblings were not cancelled
        fetchers["fetch_objects"].assert_awaited_once()
        fetchers["fetch_integrations"].assert_awaited_once()

    def test_failed_category_is_degraded(self, client, fetchers):
        fetchers["fetch_code"].side_effect = TransportError("boom", status_code=500)
        fetchers["fetch_packages"].side_effect = RuntimeError("bad row")
        result = run_async(_orchestrator(client).run(CREDENTIALS))
        assert result.snapshot.degraded == ("code", "packages")
        assert result.snapshot.code.apex_classes == ()
        assert result.snapshot.code.coverage.units == ()
        assert "code unavailable: TransportError: boom" in result.snapshot.code.coverage.note
        assert result.snapshot.packages == ()
        assert result.snapshot.notes["packages"] == "packages unavailable: RuntimeError: bad row"

    def test_failed_automation_is_marked_unavailable_with_notes(self, client, fetchers):
        fetchers["fetch_automation"].side_effect = TransportError("boom", status_code=500)
        result = run_async(_orchestrator(client).run(CREDENTIALS))

        automation = result.snapshot.automation
        assert result.snapshot.degraded == ("automation",)
        for summary in (
            automation.flow_summary,
            automation.validation_rules,
            automation.workflow_rules,
            automation.approval_processes,
        ):
            assert not summary.available
            assert summary.note == "automation unavailable: TransportError: boom [HTTP 500]"
        assert result.snapshot.notes["automation"] == automation.flow_summary.note

    def test_failed_security_carries_note(self, client, fetchers):
        fetchers["fetch_security"].side_effect = KeyError("Name")
        result = run_async(_orchestrator(client).run(CREDENTIALS))
        assert result.snapshot.security.note.startswith("security unavailable: KeyError")
        assert result.snapshot.security.permission_sets == ()

    def test_health_failure_omits_health(self, client, fetchers):
        health = MagicMock()
        health.compute = AsyncMock(side_effect=RuntimeError("limits exploded"))
        result = run_async(_orchestrator(client, health_engine=health).run(CREDENTIALS))
        assert result.health is None
        assert result.summary is not None

    def test_unexpected_error_becomes_scan_failed(self, client, fetchers):
        engine = MagicMock()
        engine.detect.side_effect = ValueError("detector bug")
        with pytest.raises(ScanFailed) as excinfo:
            run_async(_orchestrator(client, findings_engine=engine).run(CREDENTIALS))
        assert isinstance(excinfo.value.cause, ValueError)
        assert excinfo.value.trace_id in str(excinfo.value)
        assert client.closed

    def test_profile_transport_error_is_scan_failed(self, client, fetchers):
        fetchers["fetch_org_profile"].side_effect = TransportError("down", status_code=503)
        with pytest.raises(ScanFailed):
            run_async(_orchestrator(client).run(CREDENTIALS))


def test_from_config_uses_tuning():
    config = MigReadyConfig(cascade_timeout=3.0, max_pages=7, describe_concurrency=2)
    orchestrator = ScanOrchestrator.from_config(config)
    assert orchestrator._options.timeout == 3.0
    assert orchestrator._options.max_pages == 7
    assert orchestrator._options.concurrency == 2
