"""Findings engine — a fixed battery of detectors over one inventory snapshot.

Every detector is a pure function of the snapshot. Severity is assigned by
fixed rules, so running the engine twice yields the same findings.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable

from migready.analysis.models import Finding, Severity
from migready.inventory.models import (
    Detailed,
    Flow,
    InventorySnapshot,
    ObjectDescriptor,
    Trigger,
    ValidationRule,
    active_count,
)

logger = logging.getLogger(__name__)

LARGE_OBJECT_THRESHOLD = 100_000
DENSE_TRIGGER_COUNT = 3
COMPLEX_AUTOMATION_COUNT = 5
AUTOMATION_DENSITY_THRESHOLD = 5.0
COVERAGE_TARGET = 75.0
COVERAGE_CRITICAL = 50.0

AUTOMATION_CATEGORY = "Data Migration - Automation"


class _Context:
    """Per-snapshot lookups shared by the detectors."""

    def __init__(self, snapshot: InventorySnapshot) -> None:
        self.snapshot = snapshot
        self.objects = snapshot.object_map()

        self.triggers: dict[str, list[Trigger]] = defaultdict(list)
        for trigger in snapshot.automation.triggers:
            if trigger.object:
                self.triggers[trigger.object].append(trigger)

        # Count-only summaries carry no per-object attribution
        self.rules: dict[str, list[ValidationRule]] = defaultdict(list)
        rules = snapshot.automation.validation_rules
        if isinstance(rules, Detailed):
            for rule in rules.items:
                if rule.object_name:
                    self.rules[rule.object_name].append(rule)

        self.flows: dict[str, list[Flow]] = defaultdict(list)
        for flow in snapshot.automation.flows:
            if flow.active and flow.is_record_triggered and flow.object:
                self.flows[flow.object].append(flow)

    def label(self, name: str) -> str:
        obj = self.objects.get(name)
        return obj.label if obj else name

    def record_count(self, name: str) -> int:
        obj = self.objects.get(name)
        return (obj.record_count or 0) if obj else 0

    def active_triggers(self, name: str) -> list[Trigger]:
        return [t for t in self.triggers.get(name, []) if t.active]

    def active_rules(self, name: str) -> list[ValidationRule]:
        return [r for r in self.rules.get(name, []) if r.active]


def _required_without_default(obj: ObjectDescriptor | None, skip_boolean: bool = False):
    if obj is None:
        return []
    return [
        f
        for f in obj.fields
        if f.required
        and not f.nillable
        and not f.external_id
        and not (skip_boolean and f.type == "boolean")
    ]


# ---------------------------------------------------------------------------
# Per-object schema detectors
# ---------------------------------------------------------------------------


def detect_autonumber(ctx: _Context) -> list[Finding]:
    findings = []
    for obj in ctx.snapshot.objects:
        if not obj.autonumber_fields:
            continue
        findings.append(
            Finding(
                id=f"AUTONUMBER_{obj.name}",
                severity=Severity.HIGH,
                category="Data Migration",
                title=f"Auto-number field detected in {obj.label}",
                description=(
                    f"{obj.label} contains {len(obj.autonumber_fields)} auto-number "
                    "field(s) that may require special handling during migration."
                ),
                objects=(obj.name,),
                impact=(
                    "Auto-number fields cannot be migrated directly. New records will "
                    "receive new auto-numbers in the target org."
                ),
                remediation=(
                    "Identify all auto-number fields in the object",
                    "Plan for renumbering strategy if sequential numbers are required",
                    "Consider using external ID fields for record matching",
                    "Document the auto-number format and starting number",
                ),
            )
        )
    return findings


def detect_large_objects(ctx: _Context) -> list[Finding]:
    findings = []
    for obj in ctx.snapshot.objects:
        if not obj.record_count or obj.record_count <= LARGE_OBJECT_THRESHOLD:
            continue
        findings.append(
            Finding(
                id=f"LARGE_OBJECT_{obj.name}",
                severity=Severity.MEDIUM,
                category="Data Volume",
                title=f"Large object detected: {obj.label}",
                description=(
                    f"{obj.label} contains {obj.record_count:,} records, which may "
                    "require special handling during migration."
                ),
                objects=(obj.name,),
                impact=(
                    "Large data volumes may require batch processing, extended migration "
                    "windows, or data archiving strategies."
                ),
                remediation=(
                    "Assess data retention requirements",
                    "Consider data archiving before migration",
                    "Plan for extended migration windows",
                    "Use bulk API or Data Loader for large volumes",
                ),
            )
        )
    return findings


def detect_required_fields(ctx: _Context) -> list[Finding]:
    findings = []
    for obj in ctx.snapshot.objects:
        fields = _required_without_default(obj, skip_boolean=True)
        if not fields or not obj.has_records:
            continue
        findings.append(
            Finding(
                id=f"REQUIRED_FIELDS_{obj.name}",
                severity=Severity.HIGH,
                category="Data Migration",
                title=f"Required fields without defaults in {obj.label}",
                description=(
                    f"{obj.label} has {len(fields)} required field(s) without default "
                    f"values: {', '.join(f.name for f in fields)}. These fields must have "
                    "values in source data or migration will fail."
                ),
                objects=(obj.name,),
                impact=(
                    "Records cannot be created without values for required fields. "
                    "Missing data in source will cause migration failures."
                ),
                remediation=(
                    "Identify all required fields without defaults",
                    "Ensure source data contains values for all required fields",
                    "Create data quality checks to identify records with missing required fields",
                    "Consider adding default values in target org if appropriate",
                    "Plan for data transformation to populate required fields",
                ),
            )
        )
    return findings


def detect_master_detail(ctx: _Context) -> list[Finding]:
    findings = []
    for obj in ctx.snapshot.objects:
        masters = [lookup for lookup in obj.lookups if lookup.is_master_detail]
        if not masters or not obj.has_records:
            continue
        findings.append(
            Finding(
                id=f"MASTER_DETAIL_{obj.name}",
                severity=Severity.MEDIUM,
                category="Data Migration",
                title=f"Master-detail relationships on {obj.label}",
                description=(
                    f"{obj.label} has {len(masters)} master-detail relationship(s): "
                    + ", ".join(f"{m.field} → {m.target}" for m in masters)
                    + ". Parent records must be loaded before child records."
                ),
                objects=(obj.name, *(m.target for m in masters)),
                impact=(
                    "Master-detail relationships require parent records to exist before "
                    "child records can be created. Incorrect load order will cause "
                    "migration failures."
                ),
                remediation=(
                    "Identify all parent objects in master-detail relationships",
                    "Load parent objects before child objects in data migration sequence",
                    "Use external IDs to maintain relationships during migration",
                    "Verify parent-child relationships after data load",
                ),
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Per-object automation detectors
# ---------------------------------------------------------------------------


def detect_triggers(ctx: _Context) -> list[Finding]:
    findings = []
    for name in ctx.triggers:
        active = ctx.active_triggers(name)
        if not active:
            continue
        label = ctx.label(name)
        findings.append(
            Finding(
                id=f"TRIGGER_BLOCKER_{name}",
                severity=Severity.HIGH if ctx.record_count(name) > 0 else Severity.MEDIUM,
                category=AUTOMATION_CATEGORY,
                title=f"Active triggers detected on {label}",
                description=(
                    f"{label} has {len(active)} active trigger(s) that will execute during "
                    f"data migration: {', '.join(t.name for t in active)}."
                ),
                objects=(name,),
                impact=(
                    "Triggers will fire during data loads, potentially causing performance "
                    "issues, validation errors, or unintended side effects. This can "
                    "significantly slow down or block bulk data migration."
                ),
                remediation=(
                    "Review all triggers on this object before data migration",
                    "Disable triggers during initial data load (recommended)",
                    "Test trigger behavior with sample data loads",
                    "Consider using Bulk API with trigger bypass if available",
                    "Plan for trigger re-enablement after data migration",
                    "Document trigger dependencies and downstream impacts",
                ),
            )
        )
        if len(active) >= DENSE_TRIGGER_COUNT:
            findings.append(
                Finding(
                    id=f"TRIGGER_DENSE_{name}",
                    severity=Severity.MEDIUM,
                    category=AUTOMATION_CATEGORY,
                    title=f"Multiple triggers on {label}",
                    description=(
                        f"{label} has {len(active)} active triggers, which may cause "
                        "performance degradation during data migration."
                    ),
                    objects=(name,),
                    impact=(
                        "Multiple triggers firing on each record can significantly slow "
                        "down data loads and increase the risk of governor limit errors."
                    ),
                    remediation=(
                        "Review trigger execution order and dependencies",
                        "Consider consolidating trigger logic where possible",
                        "Disable non-critical triggers during bulk data loads",
                        "Use bulk API with smaller batch sizes",
                        "Monitor governor limits during test loads",
                    ),
                )
            )
    return findings


def detect_validation_rules(ctx: _Context) -> list[Finding]:
    findings = []
    for name in ctx.rules:
        active = ctx.active_rules(name)
        if not active:
            continue
        records = ctx.record_count(name)
        required = _required_without_default(ctx.objects.get(name))
        if not required and records <= 0:
            continue
        label = ctx.label(name)
        description = (
            f"{label} has {len(active)} active validation rule(s) that will validate "
            "data during migration."
        )
        if required:
            description += (
                f" Additionally, {len(required)} required field(s) without defaults may "
                "block record creation."
            )
        findings.append(
            Finding(
                id=f"VALIDATION_BLOCKER_{name}",
                severity=Severity.HIGH if records > 0 else Severity.MEDIUM,
                category=AUTOMATION_CATEGORY,
                title=f"Active validation rules on {label}",
                description=description,
                objects=(name,),
                impact=(
                    "Validation rules will execute during data loads and may reject records "
                    "that don't meet criteria. Required fields without defaults can prevent "
                    "record creation entirely."
                ),
                remediation=(
                    "Review all validation rules on this object",
                    "Disable validation rules during initial data load (recommended)",
                    "Ensure all required fields have values or defaults in source data",
                    "Test validation rules with sample data before full migration",
                    "Create data quality reports to identify records that will fail validation",
                    "Plan for validation rule re-enablement after data migration",
                ),
            )
        )
    return findings


def detect_record_triggered_flows(ctx: _Context) -> list[Finding]:
    findings = []
    for name, flows in ctx.flows.items():
        label = ctx.label(name)
        findings.append(
            Finding(
                id=f"FLOW_BLOCKER_{name}",
                severity=Severity.MEDIUM if ctx.record_count(name) > 0 else Severity.LOW,
                category=AUTOMATION_CATEGORY,
                title=f"Record-triggered flows on {label}",
                description=(
                    f"{label} has {len(flows)} active record-triggered flow(s) that will "
                    "execute during data migration: "
                    + ", ".join(f.master_label or f.developer_name for f in flows)
                    + "."
                ),
                objects=(name,),
                impact=(
                    "Record-triggered flows will execute during data loads, potentially "
                    "causing performance issues, governor limit errors, or unintended "
                    "automation side effects."
                ),
                remediation=(
                    "Review all record-triggered flows on this object",
                    "Consider deactivating flows during bulk data loads",
                    "Test flow behavior with sample data loads",
                    "Monitor flow execution and governor limits",
                    "Plan for flow re-activation after data migration",
                ),
            )
        )
    return findings


def detect_complex_automation(ctx: _Context) -> list[Finding]:
    findings = []
    names = list(dict.fromkeys([*ctx.triggers, *ctx.rules, *ctx.flows]))
    for name in names:
        triggers = len(ctx.active_triggers(name))
        rules = len(ctx.active_rules(name))
        flows = len(ctx.flows.get(name, []))
        total = triggers + rules + flows
        if total < COMPLEX_AUTOMATION_COUNT:
            continue
        label = ctx.label(name)
        findings.append(
            Finding(
                id=f"AUTOMATION_COMPLEX_{name}",
                severity=Severity.MEDIUM,
                category=AUTOMATION_CATEGORY,
                title=f"Complex automation on {label}",
                description=(
                    f"{label} has {total} active automation components ({triggers} "
                    f"triggers, {flows} flows, {rules} validation rules) that will all "
                    "execute during data migration."
                ),
                objects=(name,),
                impact=(
                    "Multiple automation components firing on each record can cause "
                    "significant performance degradation, governor limit errors, and "
                    "unpredictable behavior during data loads."
                ),
                remediation=(
                    "Document all automation components and their execution order",
                    "Disable all automation during initial bulk data load",
                    "Test automation behavior with sample data after migration",
                    "Re-enable automation components incrementally and test",
                    "Consider automation optimization to reduce complexity",
                ),
            )
        )
    return findings


# ---------------------------------------------------------------------------
# Org-wide detectors
# ---------------------------------------------------------------------------


def detect_automation_density(ctx: _Context) -> list[Finding]:
    automation = ctx.snapshot.automation
    objects = ctx.snapshot.objects
    if not objects:
        return []
    # Validation rules contribute their active count whichever shape they have
    count = (
        len(automation.flows)
        + len(automation.triggers)
        + active_count(automation.validation_rules)
    )
    density = count / len(objects)
    if density <= AUTOMATION_DENSITY_THRESHOLD:
        return []
    return [
        Finding(
            id="AUTOMATION_DENSE",
            severity=Severity.MEDIUM,
            category="Automation Complexity",
            title="High automation density detected",
            description=(
                f"Org has {count} automation components across {len(objects)} objects "
                f"({density:.1f} per object)."
            ),
            objects=tuple(obj.name for obj in objects),
            impact=(
                "High automation density may increase migration complexity and testing "
                "requirements."
            ),
            remediation=(
                "Document all automation components",
                "Create test scenarios for each automation",
                "Plan for automation testing in target org",
                "Consider automation optimization opportunities",
            ),
        )
    ]


def detect_coverage(ctx: _Context) -> list[Finding]:
    """Coverage detectors; skipped entirely when no unit coverage exists."""
    coverage = ctx.snapshot.code.coverage
    if coverage is None or not coverage.units:
        return []

    findings = []
    org_wide = coverage.org_wide_percent
    if org_wide is not None and org_wide < COVERAGE_TARGET:
        findings.append(
            Finding(
                id="LOW_ORG_COVERAGE",
                severity=Severity.HIGH if org_wide < COVERAGE_CRITICAL else Severity.MEDIUM,
                category="Code Quality",
                title=f"Low org-wide code coverage: {org_wide:g}%",
                description=(
                    f"Org-wide Apex code coverage is {org_wide:g}%, which is below the "
                    "recommended 75% threshold. This may impact production deployment "
                    "requirements."
                ),
                impact=(
                    "Production deployments require 75% code coverage. Low coverage may "
                    "block deployments or require additional test development."
                ),
                remediation=(
                    "Review and improve test class coverage",
                    "Identify classes with low or no coverage",
                    "Develop comprehensive test classes for uncovered code",
                    "Aim for at least 75% org-wide coverage before production deployment",
                    "Consider using test data factories to improve test coverage",
                ),
            )
        )

    # Units with no lines recorded count as uncovered
    percents = [(unit.name, unit.percent or 0.0) for unit in coverage.units]
    critical = [name for name, pct in percents if pct < COVERAGE_CRITICAL]
    moderate = sum(1 for _, pct in percents if COVERAGE_CRITICAL <= pct < COVERAGE_TARGET)

    if critical:
        findings.append(
            Finding(
                id="CRITICAL_COVERAGE_GAP",
                severity=Severity.HIGH,
                category="Code Quality",
                title=f"{len(critical)} Apex classes/triggers below 50% coverage",
                description=(
                    f"{len(critical)} Apex classes or triggers have code coverage below "
                    "50%, which is critical for production deployment."
                ),
                objects=tuple(critical[:10]),
                impact=(
                    "Classes with very low coverage (<50%) may fail deployment requirements "
                    "and require immediate attention before migration."
                ),
                remediation=(
                    "Prioritize test development for classes below 50% coverage",
                    "Review each class to understand why coverage is low",
                    "Develop targeted test classes for critical business logic",
                    "Consider refactoring untestable code",
                    "Use code coverage reports to identify specific uncovered lines",
                ),
            )
        )
    if moderate:
        findings.append(
            Finding(
                id="MODERATE_COVERAGE_GAP",
                severity=Severity.MEDIUM,
                category="Code Quality",
                title=f"{moderate} Apex classes/triggers between 50-75% coverage",
                description=(
                    f"{moderate} Apex classes or triggers have code coverage between 50% "
                    "and 75%, which is below the recommended threshold."
                ),
                impact=(
                    "Classes below 75% coverage may need additional test development to "
                    "meet production deployment requirements."
                ),
                remediation=(
                    "Review coverage gaps in classes between 50-75%",
                    "Add test cases for uncovered code paths",
                    "Focus on edge cases and error handling",
                    "Ensure all critical business logic is tested",
                ),
            )
        )
    return findings


Detector = Callable[[_Context], list[Finding]]

DETECTORS: tuple[Detector, ...] = (
    detect_autonumber,
    detect_large_objects,
    detect_triggers,
    detect_validation_rules,
    detect_record_triggered_flows,
    detect_complex_automation,
    detect_required_fields,
    detect_master_detail,
    detect_automation_density,
    detect_coverage,
)


class FindingsEngine:
    """Runs every detector against a snapshot."""

    def __init__(self, detectors: tuple[Detector, ...] = DETECTORS) -> None:
        self._detectors = detectors

    def detect(self, snapshot: InventorySnapshot) -> list[Finding]:
        ctx = _Context(snapshot)
        findings: list[Finding] = []
        for detector in self._detectors:
            findings.extend(detector(ctx))

        logger.info(
            "Findings scan completed findings=%d high=%d",
            len(findings),
            sum(1 for f in findings if f.severity == Severity.HIGH),
        )
        return findings


def detect(snapshot: InventorySnapshot) -> list[Finding]:
    return FindingsEngine().detect(snapshot)
