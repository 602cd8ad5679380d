"""Analysis data models — findings and health scores."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class Severity(enum.Enum):
    """Finding severity level."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


@dataclass(frozen=True)
class Finding:
    """A single rule-derived migration risk.

    Findings are derived from one scan and never stored on their own.
    Several detectors may report on the same object.
    """

    id: str
    severity: Severity
    category: str
    title: str
    description: str
    objects: tuple[str, ...] = ()
    impact: str = ""
    remediation: tuple[str, ...] = ()


class KpiStatus(enum.Enum):
    HEALTHY = "HEALTHY"
    MONITOR = "MONITOR"
    RISK = "RISK"
    NA = "NA"


@dataclass(frozen=True)
class Kpi:
    key: str
    label: str
    value: float | int | str | None
    status: KpiStatus
    detail: str | None = None


@dataclass(frozen=True)
class HealthCategory:
    """One weighted category. ``score`` is None when every KPI is NA."""

    key: str
    label: str
    score: int | None
    kpis: tuple[Kpi, ...] = ()


@dataclass(frozen=True)
class Methodology:
    weights: dict[str, int] = field(default_factory=dict)
    status_points: dict[str, int] = field(default_factory=dict)
    notes: tuple[str, ...] = ()


@dataclass(frozen=True)
class HealthComputation:
    overall_score: int | None
    categories: tuple[HealthCategory, ...] = ()
    methodology: Methodology = field(default_factory=Methodology)

    def category(self, key: str) -> HealthCategory | None:
        for cat in self.categories:
            if cat.key == key:
                return cat
        return None
