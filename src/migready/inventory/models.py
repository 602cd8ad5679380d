"""Inventory data models — immutable dataclasses produced by the category fetchers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Generic, TypeVar

ACTIVE = "Active"

T = TypeVar("T")


def frozen_mapping(value: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Read-only copy of *value*, with nested dicts made read-only too."""
    return MappingProxyType(
        {
            key: frozen_mapping(item) if isinstance(item, Mapping) else item
            for key, item in (value or {}).items()
        }
    )


# ---------------------------------------------------------------------------
# Detail list vs. count-only summary
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Detailed(Generic[T]):
    """A collection whose per-item detail was retrieved."""

    items: tuple[T, ...] = ()
    note: str | None = None

    is_detailed = True
    available = True

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def active(self) -> int:
        return sum(1 for item in self.items if getattr(item, "active", False))


@dataclass(frozen=True)
class CountOnly:
    """A collection for which only aggregate counts are known.

    ``None`` counts mean the value could not be determined.
    """

    total: int | None = None
    active: int | None = None
    available: bool = False
    note: str | None = None

    is_detailed = False

    @property
    def items(self) -> tuple[()]:
        return ()


def total_count(collection: Detailed[Any] | CountOnly) -> int:
    """Total size of either arm, unknown counted as zero."""
    return collection.total or 0


def active_count(collection: Detailed[Any] | CountOnly) -> int:
    """Active members of either arm, unknown counted as zero."""
    return collection.active or 0


# ---------------------------------------------------------------------------
# Org profile
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StorageBucket:
    used_mb: float
    max_mb: float
    remaining_mb: float
    used_pct: float


@dataclass(frozen=True)
class StorageUsage:
    """Data/file storage derived from the org limits endpoint."""

    data: StorageBucket | None = None
    file: StorageBucket | None = None
    note: str | None = None


@dataclass(frozen=True)
class OrgProfile:
    instance_url: str
    api_version: str
    org_id: str = ""
    edition: str = "Unknown"
    organization_name: str = ""
    is_sandbox: bool = False
    instance_name: str = ""
    storage: StorageUsage | None = None
    limits: Mapping[str, Any] = field(default_factory=dict)
    user_licenses: tuple[dict[str, Any], ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "limits", frozen_mapping(self.limits))


# ---------------------------------------------------------------------------
# Object schema
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    type: str
    label: str
    required: bool = False
    unique: bool = False
    nillable: bool = True
    external_id: bool = False
    length: int | None = None


@dataclass(frozen=True)
class RecordType:
    id: str
    name: str
    developer_name: str
    active: bool = False


@dataclass(frozen=True)
class Picklist:
    field: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True)
class Lookup:
    field: str
    target: str
    is_master_detail: bool = False


@dataclass(frozen=True)
class AutonumberField:
    field: str
    display_format: str = ""


@dataclass(frozen=True)
class ObjectDescriptor:
    """One metadata object. ``record_count=None`` means unknown, not zero."""

    name: str
    label: str
    is_custom: bool = False
    record_count: int | None = None
    fields: tuple[FieldDescriptor, ...] = ()
    record_types: tuple[RecordType, ...] = ()
    picklists: tuple[Picklist, ...] = ()
    lookups: tuple[Lookup, ...] = ()
    autonumber_fields: tuple[AutonumberField, ...] = ()

    @property
    def has_records(self) -> bool:
        return bool(self.record_count)

    @classmethod
    def minimal(cls, name: str) -> ObjectDescriptor:
        """Placeholder for an object whose describe call failed."""
        return cls(name=name, label=name)


# ---------------------------------------------------------------------------
# Automation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Flow:
    id: str
    developer_name: str
    master_label: str
    status: str = "Inactive"
    api_version: str = ""
    process_type: str | None = None
    trigger_type: str | None = None
    object: str | None = None

    @property
    def active(self) -> bool:
        return self.status == ACTIVE

    @property
    def is_record_triggered(self) -> bool:
        return self.process_type == "RecordTriggeredFlow" or bool(self.trigger_type)


@dataclass(frozen=True)
class Trigger:
    id: str
    name: str
    object: str
    status: str = "Inactive"
    api_version: str = ""

    @property
    def active(self) -> bool:
        return self.status == ACTIVE


@dataclass(frozen=True)
class ValidationRule:
    id: str
    full_name: str
    active: bool = False
    error_condition_formula: str | None = None
    error_display_field: str | None = None
    error_message: str | None = None

    @property
    def object_name(self) -> str:
        return self.full_name.split(".", 1)[0]


@dataclass(frozen=True)
class WorkflowRule:
    id: str
    full_name: str
    active: bool = False


@dataclass(frozen=True)
class ApprovalProcess:
    id: str
    full_name: str
    active: bool = False


@dataclass(frozen=True)
class FlowSummary:
    """Org-wide flow counts, resolved independently of the flow detail list."""

    total: int | None = None
    active: int | None = None
    available: bool = False
    method: str = "none"
    note: str | None = None


@dataclass(frozen=True)
class AutomationIndex:
    flows: tuple[Flow, ...] = ()
    flow_summary: FlowSummary = field(default_factory=FlowSummary)
    triggers: tuple[Trigger, ...] = ()
    validation_rules: Detailed[ValidationRule] | CountOnly = field(default_factory=CountOnly)
    workflow_rules: Detailed[WorkflowRule] | CountOnly = field(default_factory=CountOnly)
    approval_processes: Detailed[ApprovalProcess] | CountOnly = field(default_factory=CountOnly)


# ---------------------------------------------------------------------------
# Code
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApexUnit:
    id: str
    name: str
    api_version: str = ""


@dataclass(frozen=True)
class UnitCoverage:
    """Line coverage for one Apex class or trigger."""

    id: str
    name: str
    lines_covered: int = 0
    lines_uncovered: int = 0

    @property
    def percent(self) -> float | None:
        total = self.lines_covered + self.lines_uncovered
        if total == 0:
            return None
        return round(100.0 * self.lines_covered / total, 1)


@dataclass(frozen=True)
class CoverageSummary:
    """Org-wide and per-unit coverage.

    A ``note`` with no units means tests were never run, which is not the
    same as zero coverage.
    """

    org_wide_percent: float | None = None
    units: tuple[UnitCoverage, ...] = ()
    note: str | None = None


@dataclass(frozen=True)
class CodeIndex:
    apex_classes: tuple[ApexUnit, ...] = ()
    apex_triggers: tuple[ApexUnit, ...] = ()
    coverage: CoverageSummary | None = None


# ---------------------------------------------------------------------------
# Reporting, ownership, packages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NamedItem:
    id: str
    name: str


@dataclass(frozen=True)
class ReportingIndex:
    reports: tuple[NamedItem, ...] = ()
    dashboards: tuple[NamedItem, ...] = ()
    email_templates: tuple[NamedItem, ...] = ()
    report_types: tuple[NamedItem, ...] = ()


@dataclass(frozen=True)
class UserSummary:
    id: str
    name: str
    license: str = "Unknown"
    active: bool = True
    role: str | None = None


@dataclass(frozen=True)
class OwnershipIndex:
    users: tuple[UserSummary, ...] = ()
    queues: tuple[NamedItem, ...] = ()


@dataclass(frozen=True)
class Package:
    namespace: str
    name: str


# ---------------------------------------------------------------------------
# Security
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProfileInfo:
    id: str
    name: str
    user_license: str = "Unknown"
    user_count: int = 0


@dataclass(frozen=True)
class PermissionSetInfo:
    id: str
    name: str
    label: str
    user_license: str = "Unknown"
    assignment_count: int = 0


@dataclass(frozen=True)
class LicenseUsage:
    total: int
    used: int

    @property
    def available(self) -> int:
        return self.total - self.used


@dataclass(frozen=True)
class SecurityIndex:
    profiles: tuple[ProfileInfo, ...] = ()
    permission_sets: tuple[PermissionSetInfo, ...] = ()
    total_users: int = 0
    license_distribution: Mapping[str, LicenseUsage] = field(default_factory=dict)
    note: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "license_distribution", MappingProxyType(dict(self.license_distribution))
        )

    @property
    def total_profiles(self) -> int:
        return len(self.profiles)

    @property
    def total_permission_sets(self) -> int:
        return len(self.permission_sets)


# ---------------------------------------------------------------------------
# Integrations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConnectedApp:
    id: str
    name: str
    created_date: str | None = None


@dataclass(frozen=True)
class NamedCredential:
    id: str
    full_name: str
    endpoint: str | None = None


@dataclass(frozen=True)
class RemoteSiteSetting:
    id: str
    full_name: str
    url: str | None = None


@dataclass(frozen=True)
class AuthProvider:
    id: str
    full_name: str
    provider_type: str | None = None


@dataclass(frozen=True)
class IntegrationIndex:
    connected_apps: tuple[ConnectedApp, ...] = ()
    named_credentials: tuple[NamedCredential, ...] = ()
    remote_site_settings: tuple[RemoteSiteSetting, ...] = ()
    auth_providers: tuple[AuthProvider, ...] = ()


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class InventorySnapshot:
    """Everything one scan pass retrieved. Never mutated after assembly.

    ``degraded`` lists the categories whose fetcher failed and were
    replaced by their empty defaults; ``notes`` maps each of them to the
    reason it was unavailable.
    """

    profile: OrgProfile
    objects: tuple[ObjectDescriptor, ...] = ()
    automation: AutomationIndex = field(default_factory=AutomationIndex)
    code: CodeIndex = field(default_factory=CodeIndex)
    reporting: ReportingIndex = field(default_factory=ReportingIndex)
    ownership: OwnershipIndex = field(default_factory=OwnershipIndex)
    packages: tuple[Package, ...] = ()
    security: SecurityIndex = field(default_factory=SecurityIndex)
    integrations: IntegrationIndex = field(default_factory=IntegrationIndex)
    degraded: tuple[str, ...] = ()
    notes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "notes", MappingProxyType(dict(self.notes)))

    def object_map(self) -> dict[str, ObjectDescriptor]:
        return {obj.name: obj for obj in self.objects}
