"""Health engine — weighted readiness score from fixed-threshold KPIs.

Each KPI is classified HEALTHY, MONITOR, RISK or NA. A category score is
the share of attainable points its non-NA KPIs earned, on a 0-100 scale;
a category whose KPIs are all NA has no score. The overall score is the
weighted average of the categories that produced one, with the weights
renormalized over those categories only.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter
from collections.abc import Mapping
from typing import Any

from migready.analysis.models import (
    HealthCategory,
    HealthComputation,
    Kpi,
    KpiStatus,
    Methodology,
)
from migready.errors import TransportError
from migready.inventory.models import Detailed, InventorySnapshot
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

CATEGORY_WEIGHTS = {
    "governance": 25,
    "automation": 25,
    "data": 20,
    "security": 15,
    "limits": 15,
}

STATUS_POINTS = {
    KpiStatus.HEALTHY: 3,
    KpiStatus.MONITOR: 1,
    KpiStatus.RISK: 0,
    KpiStatus.NA: 1,
}

HIGH_VOLUME_THRESHOLD = 100_000
DEFAULT_API_VERSION = "v60.0"

_NOT_AVAILABLE = "Not available via current scan"
_NEEDS_RETRIEVE = "Requires metadata retrieve"
_NOT_COMPUTED = "Not computed in current scan"

METHODOLOGY_NOTES = (
    "Each KPI is assigned a status of Healthy, Monitor, Risk, or N/A based on a fixed threshold.",
    "Category scores are normalized to a 0-100 scale using status-to-points mapping "
    "(Healthy=3, Monitor=1, Risk=0, N/A=1).",
    "Overall score is the weighted average of category scores using "
    + ", ".join(f"{key.title()} {weight}%" for key, weight in CATEGORY_WEIGHTS.items())
    + ".",
    "N/A does not penalize the score but reduces the denominator for that category.",
    "Metrics are computed from inventory gathered via the REST and Tooling APIs during the scan.",
)


def _round(value: float) -> int:
    """Round half up, matching how scores are presented."""
    return int(math.floor(value + 0.5))


def _pct(value: float) -> str:
    return f"{value:.1f}%"


def _na(key: str, label: str, detail: str = _NOT_AVAILABLE) -> Kpi:
    return Kpi(key=key, label=label, value=None, status=KpiStatus.NA, detail=detail)


def _band(value: float, risk_above: float, monitor_from: float) -> KpiStatus:
    """RISK above ``risk_above``, MONITOR from ``monitor_from``, else HEALTHY."""
    if value > risk_above:
        return KpiStatus.RISK
    if value >= monitor_from:
        return KpiStatus.MONITOR
    return KpiStatus.HEALTHY


def category_score(kpis: list[Kpi] | tuple[Kpi, ...]) -> int | None:
    scored = [k for k in kpis if k.status != KpiStatus.NA]
    if not scored:
        return None
    points = sum(STATUS_POINTS[k.status] for k in scored)
    return _round(100 * points / (len(scored) * STATUS_POINTS[KpiStatus.HEALTHY]))


def overall_score(categories: list[HealthCategory]) -> int | None:
    scored = [c for c in categories if c.score is not None]
    total_weight = sum(CATEGORY_WEIGHTS.get(c.key, 0) for c in scored)
    if not scored or total_weight == 0:
        return None
    weighted = sum(c.score * CATEGORY_WEIGHTS.get(c.key, 0) for c in scored)
    return _round(weighted / total_weight)


def _major_version(version: Any) -> int | None:
    text = str(version or "").lstrip("vV").split(".", 1)[0]
    return int(text) if text.isdigit() else None


def _trigger_counts(snapshot: InventorySnapshot) -> Counter:
    return Counter(t.object for t in snapshot.automation.triggers if t.object)


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


def governance_kpis(snapshot: InventorySnapshot) -> list[Kpi]:
    kpis = []
    per_object = _trigger_counts(snapshot)
    max_triggers = max(per_object.values(), default=0)
    multi = sum(1 for count in per_object.values() if count > 1)
    kpis.append(
        Kpi(
            key="singleTriggerPerObject",
            label="Single Trigger per Object",
            value=multi,
            status=_trigger_status(max_triggers),
            detail=f"{multi} objects have multiple triggers",
        )
    )

    classes = len(snapshot.code.apex_classes)
    kpis.append(
        Kpi(
            key="totalApexClasses",
            label="Total Apex Classes",
            value=classes,
            status=_band(classes, 1500, 500),
        )
    )

    coverage = snapshot.code.coverage
    org_wide = coverage.org_wide_percent if coverage else None
    if org_wide is None:
        kpis.append(_na("codeCoverage", "Code Coverage"))
    else:
        if org_wide >= 75:
            status = KpiStatus.HEALTHY
        elif org_wide >= 60:
            status = KpiStatus.MONITOR
        else:
            status = KpiStatus.RISK
        kpis.append(
            Kpi(key="codeCoverage", label="Code Coverage", value=f"{org_wide:g}%", status=status)
        )

    current = _major_version(snapshot.profile.api_version or DEFAULT_API_VERSION) or 0
    versions = {c.api_version for c in snapshot.code.apex_classes}
    versions |= {f.api_version for f in snapshot.automation.flows}
    majors = [m for m in (_major_version(v) for v in versions) if m is not None]
    max_lag = max([current - m for m in majors] + [0])
    kpis.append(
        Kpi(
            key="apiVersionConsistency",
            label="API Version Consistency",
            value=f"{max_lag} versions behind" if max_lag > 0 else "Current",
            status=KpiStatus.RISK
            if max_lag > 5
            else KpiStatus.MONITOR
            if max_lag > 2
            else KpiStatus.HEALTHY,
        )
    )

    profiles = snapshot.security.total_profiles
    ratio = snapshot.security.total_permission_sets / profiles if profiles else 0.0
    kpis.append(
        Kpi(
            key="profilesPermSetsRatio",
            label="Profiles vs Permission Sets Ratio",
            value=f"1:{ratio:.1f}" if ratio > 0 else "N/A",
            status=KpiStatus.RISK
            if ratio > 5
            else KpiStatus.MONITOR
            if ratio > 3
            else KpiStatus.HEALTHY,
        )
    )
    return kpis


def _trigger_status(max_per_object: int) -> KpiStatus:
    if max_per_object > 2:
        return KpiStatus.RISK
    if max_per_object == 2:
        return KpiStatus.MONITOR
    return KpiStatus.HEALTHY


def automation_kpis(snapshot: InventorySnapshot) -> list[Kpi]:
    automation = snapshot.automation
    kpis = []

    summary = automation.flow_summary
    total = summary.total if summary.available and summary.total is not None else len(automation.flows)
    active = (
        summary.active
        if summary.available and summary.active is not None
        else sum(1 for f in automation.flows if f.active)
    )
    ratio = 100 * active / total if total else 0.0
    if ratio >= 20:
        status = KpiStatus.HEALTHY
    elif ratio > 0:
        status = KpiStatus.MONITOR
    else:
        status = KpiStatus.RISK
    kpis.append(
        Kpi(key="activeFlowsRatio", label="Active Flows Ratio", value=_pct(ratio), status=status)
    )

    legacy = sum(1 for f in automation.flows if f.process_type in ("ProcessBuilder", "Workflow"))
    kpis.append(
        Kpi(
            key="processBuilders",
            label="Process Builders Present",
            value=legacy,
            status=KpiStatus.HEALTHY if legacy == 0 else KpiStatus.MONITOR,
        )
    )

    max_triggers = max(_trigger_counts(snapshot).values(), default=0)
    kpis.append(
        Kpi(
            key="triggersPerObject",
            label="Triggers per Object",
            value=max_triggers,
            status=_trigger_status(max_triggers),
        )
    )

    rules = automation.validation_rules
    if isinstance(rules, Detailed):
        per_object = Counter(rule.object_name or "Unknown" for rule in rules.items)
        max_rules = max(per_object.values(), default=0)
        kpis.append(
            Kpi(
                key="validationRulesPerObject",
                label="Validation Rules per Object",
                value=max_rules,
                status=KpiStatus.RISK
                if max_rules > 50
                else KpiStatus.MONITOR
                if max_rules > 20
                else KpiStatus.HEALTHY,
            )
        )
    else:
        kpis.append(
            _na(
                "validationRulesPerObject",
                "Validation Rules per Object",
                "Only aggregate validation rule counts available",
            )
        )

    workflow_active = automation.workflow_rules.active or 0
    kpis.append(
        Kpi(
            key="workflowRulesActive",
            label="Workflow Rules Active",
            value=workflow_active,
            status=KpiStatus.HEALTHY if workflow_active == 0 else KpiStatus.MONITOR,
        )
    )
    return kpis


def data_kpis(snapshot: InventorySnapshot) -> list[Kpi]:
    kpis = []
    storage = snapshot.profile.storage
    for key, label, bucket in (
        ("dataStorage", "Used Data Storage", storage.data if storage else None),
        ("fileStorage", "Used File Storage", storage.file if storage else None),
    ):
        if bucket is None:
            kpis.append(_na(key, label))
        else:
            kpis.append(
                Kpi(
                    key=key,
                    label=label,
                    value=_pct(bucket.used_pct),
                    status=_band(bucket.used_pct, 95, 85),
                )
            )

    objects = snapshot.objects
    high_volume = sum(1 for obj in objects if (obj.record_count or 0) >= HIGH_VOLUME_THRESHOLD)
    kpis.append(
        Kpi(
            key="highVolumeObjects",
            label="High-Volume Objects (≥100k)",
            value=high_volume,
            status=KpiStatus.RISK
            if high_volume > 10
            else KpiStatus.MONITOR
            if high_volume > 5
            else KpiStatus.HEALTHY,
        )
    )

    rules = snapshot.automation.validation_rules
    if isinstance(rules, Detailed):
        with_rules = {rule.object_name for rule in rules.items if rule.object_name}
        without = sum(1 for obj in objects if obj.name not in with_rules)
        pct = 100 * without / len(objects) if objects else 0.0
        kpis.append(
            Kpi(
                key="objectsWithoutVR",
                label="Objects without Validation Rules",
                value=_pct(pct),
                status=_band(pct, 80, 50),
            )
        )
    else:
        kpis.append(
            _na(
                "objectsWithoutVR",
                "Objects without Validation Rules",
                "Only aggregate validation rule counts available",
            )
        )

    users = snapshot.ownership.users
    if users:
        pct = 100 * sum(1 for u in users if not u.active) / len(users)
        kpis.append(
            Kpi(
                key="inactiveUsers",
                label="Inactive Users Share",
                value=_pct(pct),
                status=_band(pct, 20, 10),
            )
        )
    else:
        kpis.append(_na("inactiveUsers", "Inactive Users Share"))
    return kpis


def security_kpis(snapshot: InventorySnapshot) -> list[Kpi]:
    queues = len(snapshot.ownership.queues)
    users = snapshot.ownership.users
    kpis = [
        _na("profilesModifyAll", "Profiles with ModifyAll/ViewAllData", _NEEDS_RETRIEVE),
        _na("guestUsers", "Guest/Community Users with High Access"),
        Kpi(
            key="inactiveQueues",
            label="Inactive Queues",
            value=queues,
            status=KpiStatus.HEALTHY if queues == 0 else KpiStatus.MONITOR,
        ),
        _na("sharingRules", "Sharing Rules Present", _NEEDS_RETRIEVE),
    ]
    if users:
        pct = 100 * sum(1 for u in users if not u.role) / len(users)
        kpis.append(
            Kpi(
                key="usersWithoutRole",
                label="Users without Role",
                value=_pct(pct),
                status=_band(pct, 15, 5),
            )
        )
    else:
        kpis.append(_na("usersWithoutRole", "Users without Role"))
    return kpis


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _limit_used(entry: Any) -> float | None:
    """Consumed amount of one limits entry, or None when it cannot be told."""
    if not isinstance(entry, Mapping):
        return None
    used = entry.get("Used")
    if _is_number(used):
        return used
    maximum, remaining = entry.get("Max"), entry.get("Remaining")
    if _is_number(maximum) and _is_number(remaining):
        return maximum - remaining
    return None


def limits_kpis(limits: Mapping[str, Any] | None) -> list[Kpi]:
    limits = limits if isinstance(limits, Mapping) else {}
    kpis = []
    for key, label, entry_name in (
        ("apiCalls24h", "API Calls 24h Usage", "DailyApiRequests"),
        ("asyncApexQueue", "Async Apex Queue Usage", "DailyAsyncApexExecutions"),
    ):
        entry = limits.get(entry_name)
        used = _limit_used(entry)
        maximum = entry.get("Max") if used is not None else None
        if not _is_number(maximum):
            kpis.append(_na(key, label))
            continue
        pct = 100 * used / (maximum or 1)
        kpis.append(Kpi(key=key, label=label, value=_pct(pct), status=_band(pct, 95, 80)))

    used = _limit_used(limits.get("ConcurrentAsyncGetReportInstances"))
    if used is not None:
        kpis.append(
            Kpi(
                key="concurrentBatchJobs",
                label="Concurrent Batch Jobs Queued",
                value=used,
                status=KpiStatus.MONITOR if used >= 5 else KpiStatus.HEALTHY,
            )
        )
    else:
        kpis.append(_na("concurrentBatchJobs", "Concurrent Batch Jobs Queued"))

    kpis.append(_na("dataSkewObjects", "Data Skew Objects (owner >10%)", _NOT_COMPUTED))
    kpis.append(_na("integrationUsers", "Integration User Count", _NOT_COMPUTED))
    return kpis


_CATEGORY_LABELS = {
    "governance": "Governance",
    "automation": "Automation",
    "data": "Data",
    "security": "Security",
    "limits": "Limits",
}


def compute_health(
    snapshot: InventorySnapshot, limits: Mapping[str, Any] | None = None
) -> HealthComputation:
    """Score a snapshot. ``limits`` is the current API-limit payload, if any."""
    kpis_by_category = {
        "governance": governance_kpis(snapshot),
        "automation": automation_kpis(snapshot),
        "data": data_kpis(snapshot),
        "security": security_kpis(snapshot),
        "limits": limits_kpis(limits),
    }
    categories = [
        HealthCategory(
            key=key,
            label=_CATEGORY_LABELS[key],
            score=category_score(kpis),
            kpis=tuple(kpis),
        )
        for key, kpis in kpis_by_category.items()
    ]
    return HealthComputation(
        overall_score=overall_score(categories),
        categories=tuple(categories),
        methodology=Methodology(
            weights=dict(CATEGORY_WEIGHTS),
            status_points={status.value: points for status, points in STATUS_POINTS.items()},
            notes=METHODOLOGY_NOTES,
        ),
    )


class HealthEngine:
    """Computes health, refreshing API-limit usage when a client is available."""

    def __init__(self, limits_timeout: float = 5.0) -> None:
        self._limits_timeout = limits_timeout

    async def compute(
        self, snapshot: InventorySnapshot, client: SalesforceClient | None = None
    ) -> HealthComputation:
        if client is not None:
            limits = await self._fetch_limits(client)
        else:
            limits = snapshot.profile.limits or None
        health = compute_health(snapshot, limits)
        logger.info(
            "Health computed overall=%s %s",
            health.overall_score,
            " ".join(f"{c.key}={c.score}" for c in health.categories),
        )
        return health

    async def _fetch_limits(self, client: SalesforceClient) -> Mapping[str, Any] | None:
        # Any failure here only turns the limits KPIs into NA
        try:
            return await asyncio.wait_for(client.limits(), timeout=self._limits_timeout)
        except asyncio.TimeoutError:
            logger.debug("Limits fetch timed out after %ss", self._limits_timeout)
        except TransportError as exc:
            logger.debug("Failed to fetch limits: %s", exc)
        return None
