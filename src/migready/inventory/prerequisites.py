"""Pre-deployment checklist for the target org.

These are manual settings that must be enabled or reviewed before any
metadata is deployed; none of them can be detected from the source scan.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class PrerequisiteStatus(enum.Enum):
    DONE = "Done"
    PENDING = "Pending"
    NOT_STARTED = "Not Started"


@dataclass(frozen=True)
class Prerequisite:
    no: int
    name: str
    status: PrerequisiteStatus = PrerequisiteStatus.NOT_STARTED
    note: str | None = None


_ITEMS: list[tuple[str, str | None]] = [
    ("Enable State and Country/Territory Picklists", "Manual pre-deploy step"),
    ("Enable Multiple Currencies", "Manual pre-deploy step"),
    ("Enable Digital Experiences", None),
    ("Enable Person Accounts", "If using Person Accounts"),
    ("Enable Territory Management", "If using Territories"),
    ("Enable Data.com", "If using Data.com"),
    ("Enable Knowledge", "If using Knowledge"),
    ("Enable Live Agent", "If using Live Agent"),
    ("Enable Service Cloud", "If using Service Cloud"),
    ("Enable Marketing Cloud Connect", "If using Marketing Cloud"),
    ("Enable Field Service", "If using Field Service"),
    ("Enable CPQ", "If using CPQ"),
    ("Enable Billing", "If using Billing"),
    ("Enable Revenue Cloud", "If using Revenue Cloud"),
    ("Enable Industries (Vlocity)", "If using Industries"),
    ("Configure Sharing Settings", "Review and configure"),
    ("Configure Data Classification", "Review data sensitivity"),
    ("Configure Field-Level Security", "Review FLS settings"),
    ("Configure Record Type Visibility", "Review record types"),
    ("Configure Workflow Rules", "Review workflow rules"),
    ("Configure Approval Processes", "Review approval processes"),
    ("Configure Email Templates", "Review email templates"),
    ("Configure Reports and Dashboards", "Review reports"),
    ("Configure Custom Settings", "Review custom settings"),
    ("Configure Custom Metadata", "Review custom metadata"),
    ("Assign Files Connect Permission Set", "Assign before External Data Source deploy"),
]

MIGRATION_PREREQUISITES: tuple[Prerequisite, ...] = tuple(
    Prerequisite(no=i, name=name, note=note) for i, (name, note) in enumerate(_ITEMS, start=1)
)


def migration_prerequisites() -> list[Prerequisite]:
    return list(MIGRATION_PREREQUISITES)
