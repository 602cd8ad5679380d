"""Scan result models."""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass, field

from migready.analysis.dependencies import DependencyGraph
from migready.analysis.models import Finding, HealthComputation, Severity
from migready.inventory.models import InventorySnapshot, total_count


@dataclass(frozen=True)
class ScanSummary:
    """Headline counters for one scan."""

    objects: int = 0
    records_approx: int = 0
    flows: int = 0
    triggers: int = 0
    validation_rules: int = 0
    findings_by_severity: dict[str, int] = field(default_factory=dict)
    data_storage_pct: float | None = None
    file_storage_pct: float | None = None

    def structural_hash(self) -> str:
        """SHA-256 over the structural counters; equal hashes mean no change."""
        payload = json.dumps(
            {
                "objects": self.objects,
                "recordsApprox": self.records_approx,
                "flows": self.flows,
                "triggers": self.triggers,
                "vrs": self.validation_rules,
            },
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode()).hexdigest()

    @classmethod
    def build(cls, snapshot: InventorySnapshot, findings: list[Finding]) -> ScanSummary:
        by_severity = {s.value: 0 for s in Severity}
        for finding in findings:
            by_severity[finding.severity.value] += 1
        storage = snapshot.profile.storage
        return cls(
            objects=len(snapshot.objects),
            records_approx=sum(obj.record_count or 0 for obj in snapshot.objects),
            flows=len(snapshot.automation.flows),
            triggers=len(snapshot.automation.triggers),
            validation_rules=total_count(snapshot.automation.validation_rules),
            findings_by_severity=by_severity,
            data_storage_pct=storage.data.used_pct if storage and storage.data else None,
            file_storage_pct=storage.file.used_pct if storage and storage.file else None,
        )


@dataclass(frozen=True)
class ScanResult:
    """Aggregate result of one scan pass."""

    snapshot: InventorySnapshot
    findings: tuple[Finding, ...]
    dependency_graph: DependencyGraph
    summary: ScanSummary
    health: HealthComputation | None = None
    trace_id: str = ""
    started_at: float = field(default_factory=time.time)
    duration: float = 0.0

    @property
    def has_high_findings(self) -> bool:
        return any(f.severity == Severity.HIGH for f in self.findings)
