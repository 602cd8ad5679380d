"""Tests for the health engine."""

from __future__ import annotations

import asyncio
import dataclasses

from migready.analysis.health import (
    CATEGORY_WEIGHTS,
    HealthEngine,
    _round,
    category_score,
    compute_health,
    limits_kpis,
    overall_score,
)
from migready.analysis.models import HealthCategory, Kpi, KpiStatus
from migready.inventory.models import (
    AutomationIndex,
    CountOnly,
    Detailed,
    ObjectDescriptor,
    OwnershipIndex,
    Trigger,
    UserSummary,
    ValidationRule,
)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


def _kpi(status):
    return Kpi(key="k", label="K", value=None, status=status)


def _kpis(category):
    return {k.key: k for k in category.kpis}


class TestScoring:
    def test_round_half_up(self):
        assert _round(2.5) == 3
        assert _round(0.5) == 1
        assert _round(66.666) == 67
        assert _round(12.49) == 12

    def test_category_score(self):
        kpis = [_kpi(KpiStatus.HEALTHY), _kpi(KpiStatus.MONITOR), _kpi(KpiStatus.RISK)]
        assert category_score(kpis) == 44

    def test_na_reduces_denominator(self):
        assert category_score([_kpi(KpiStatus.HEALTHY), _kpi(KpiStatus.NA)]) == 100

    def test_all_na_category_is_null(self):
        assert category_score([_kpi(KpiStatus.NA), _kpi(KpiStatus.NA)]) is None

    def test_overall_renormalizes_weights(self):
        categories = [
            HealthCategory(key="governance", label="Governance", score=100),
            HealthCategory(key="data", label="Data", score=50),
            HealthCategory(key="limits", label="Limits", score=None),
        ]
        # (100 * 25 + 50 * 20) / 45
        assert overall_score(categories) == 78

    def test_overall_null_when_every_category_null(self):
        categories = [
            HealthCategory(key=key, label=key, score=None) for key in CATEGORY_WEIGHTS
        ]
        assert overall_score(categories) is None

    def test_weights_sum_to_hundred(self):
        assert sum(CATEGORY_WEIGHTS.values()) == 100


class TestKpis:
    def test_storage_bands(self, empty_snapshot):
        data = _kpis(compute_health(empty_snapshot).category("data"))
        assert data["dataStorage"].status == KpiStatus.HEALTHY
        assert data["dataStorage"].value == "45.0%"
        assert data["fileStorage"].status == KpiStatus.MONITOR

    def test_count_only_rules_make_per_object_kpis_na(self, empty_snapshot):
        snapshot = dataclasses.replace(
            empty_snapshot,
            automation=AutomationIndex(
                validation_rules=CountOnly(total=40, active=22, available=True)
            ),
        )
        health = compute_health(snapshot)
        assert _kpis(health.category("automation"))["validationRulesPerObject"].status == KpiStatus.NA
        assert _kpis(health.category("data"))["objectsWithoutVR"].status == KpiStatus.NA

    def test_detailed_rules_feed_per_object_kpis(self, empty_snapshot):
        snapshot = dataclasses.replace(
            empty_snapshot,
            objects=(
                ObjectDescriptor(name="Invoice__c", label="Invoice"),
                ObjectDescriptor(name="Quote__c", label="Quote"),
            ),
            automation=AutomationIndex(
                validation_rules=Detailed(
                    items=(ValidationRule(id="1", full_name="Invoice__c.R1", active=True),)
                )
            ),
        )
        health = compute_health(snapshot)
        per_object = _kpis(health.category("automation"))["validationRulesPerObject"]
        assert per_object.value == 1
        assert per_object.status == KpiStatus.HEALTHY
        without = _kpis(health.category("data"))["objectsWithoutVR"]
        assert without.value == "50.0%"
        assert without.status == KpiStatus.MONITOR

    def test_trigger_concentration(self, empty_snapshot):
        triggers = tuple(
            Trigger(id=str(i), name=f"T{i}", object="Account", status="Active") for i in range(3)
        )
        snapshot = dataclasses.replace(empty_snapshot, automation=AutomationIndex(triggers=triggers))
        governance = _kpis(compute_health(snapshot).category("governance"))
        assert governance["singleTriggerPerObject"].status == KpiStatus.RISK
        assert governance["singleTriggerPerObject"].value == 1

    def test_users_without_role(self, empty_snapshot):
        users = tuple(
            UserSummary(id=str(i), name=f"User-{i}", role="00E1" if i < 9 else None)
            for i in range(10)
        )
        snapshot = dataclasses.replace(empty_snapshot, ownership=OwnershipIndex(users=users))
        security = _kpis(compute_health(snapshot).category("security"))
        assert security["usersWithoutRole"].value == "10.0%"
        assert security["usersWithoutRole"].status == KpiStatus.MONITOR

    def test_limits_usage(self):
        kpis = {
            k.key: k
            for k in limits_kpis(
                {
                    "DailyApiRequests": {"Max": 1000, "Remaining": 40},
                    "DailyAsyncApexExecutions": {"Max": 1000, "Remaining": 900},
                }
            )
        }
        assert kpis["apiCalls24h"].value == "96.0%"
        assert kpis["apiCalls24h"].status == KpiStatus.RISK
        assert kpis["asyncApexQueue"].status == KpiStatus.HEALTHY
        assert kpis["concurrentBatchJobs"].status == KpiStatus.NA

    def test_limits_entry_without_usage_is_na(self):
        kpis = {k.key: k for k in limits_kpis({"DailyApiRequests": {"Max": 15000}})}
        assert kpis["apiCalls24h"].status == KpiStatus.NA

    def test_non_numeric_limits_are_na(self):
        kpis = {
            k.key: k
            for k in limits_kpis(
                {
                    "DailyApiRequests": {"Max": 15000, "Used": "12"},
                    "DailyAsyncApexExecutions": {"Max": None, "Remaining": 10},
                    "ConcurrentAsyncGetReportInstances": {"Used": "3"},
                }
            )
        }
        assert kpis["apiCalls24h"].status == KpiStatus.NA
        assert kpis["asyncApexQueue"].status == KpiStatus.NA
        assert kpis["concurrentBatchJobs"].status == KpiStatus.NA

    def test_used_preferred_over_remaining(self):
        kpis = {
            k.key: k
            for k in limits_kpis({"DailyApiRequests": {"Max": 1000, "Used": 500, "Remaining": 0}})
        }
        assert kpis["apiCalls24h"].value == "50.0%"


class TestHealthEngine:
    def test_limits_unavailable_turns_category_null(self, empty_snapshot, make_client):
        health = run_async(HealthEngine().compute(empty_snapshot, make_client()))
        limits = health.category("limits")
        assert limits.score is None
        assert all(k.status == KpiStatus.NA for k in limits.kpis)
        assert health.overall_score is not None

    def test_limits_fetched_from_client(self, empty_snapshot, make_client):
        client = make_client(
            gets={"/services/data/v60.0/limits": {"DailyApiRequests": {"Max": 1000, "Remaining": 100}}}
        )
        health = run_async(HealthEngine().compute(empty_snapshot, client))
        # Only the API-call KPI is scored, at MONITOR
        assert health.category("limits").score == 33

    def test_malformed_limits_payload_only_nulls_limits(self, empty_snapshot, make_client):
        client = make_client(
            gets={"/services/data/v60.0/limits": {"DailyApiRequests": {"Max": 15000, "Used": "12"}}}
        )
        health = run_async(HealthEngine().compute(empty_snapshot, client))
        assert health.category("limits").score is None
        assert health.overall_score is not None

    def test_limits_timeout(self, empty_snapshot, make_client):
        async def slow():
            await asyncio.sleep(5)
            return {"DailyApiRequests": {"Max": 1000, "Remaining": 100}}

        client = make_client(gets={"/services/data/v60.0/limits": slow})
        health = run_async(HealthEngine(limits_timeout=0.01).compute(empty_snapshot, client))
        assert health.category("limits").score is None

    def test_without_client_uses_profile_limits(self, empty_snapshot):
        profile = dataclasses.replace(
            empty_snapshot.profile,
            limits={"DailyApiRequests": {"Max": 1000, "Remaining": 900}},
        )
        snapshot = dataclasses.replace(empty_snapshot, profile=profile)
        health = run_async(HealthEngine().compute(snapshot))
        assert health.category("limits").score == 100

    def test_methodology(self, empty_snapshot):
        health = compute_health(empty_snapshot)
        assert health.methodology.weights == CATEGORY_WEIGHTS
        assert health.methodology.status_points == {
            "HEALTHY": 3,
            "MONITOR": 1,
            "RISK": 0,
            "NA": 1,
        }
        assert [c.key for c in health.categories] == list(CATEGORY_WEIGHTS)
