"""Compare two stored scans."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Any

from migready.serialization import scan_document

logger = logging.getLogger(__name__)

_ACTIVE = "Active"


@dataclass(frozen=True)
class ChangeSet:
    objects: tuple[str, ...] = ()
    flows: tuple[str, ...] = ()
    triggers: tuple[str, ...] = ()
    validation_rules: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValueChange:
    name: str
    before: Any
    after: Any


@dataclass(frozen=True)
class ScanDiff:
    from_scan_id: str = ""
    to_scan_id: str = ""
    has_changes: bool = False
    added: ChangeSet = field(default_factory=ChangeSet)
    removed: ChangeSet = field(default_factory=ChangeSet)
    changed_objects: tuple[ValueChange, ...] = ()
    changed_flows: tuple[ValueChange, ...] = ()
    changed_triggers: tuple[ValueChange, ...] = ()
    changed_findings: tuple[ValueChange, ...] = ()


def _document(scan: Any) -> dict[str, Any]:
    return scan if isinstance(scan, dict) else scan_document(scan)


def _summary_hash(doc: dict[str, Any]) -> str | None:
    return doc.get("structural_hash") or (doc.get("summary") or {}).get("hash")


def _keyed(items: list[dict[str, Any]], key: str) -> dict[str, dict[str, Any]]:
    return {item[key]: item for item in items if item.get(key)}


def _added_removed(before: dict, after: dict) -> tuple[tuple[str, ...], tuple[str, ...]]:
    added = tuple(name for name in after if name not in before)
    removed = tuple(name for name in before if name not in after)
    return added, removed


def _status_changes(before: dict, after: dict) -> tuple[ValueChange, ...]:
    changes = []
    for name, item in after.items():
        old = before.get(name)
        if old is not None and old.get("status") != item.get("status"):
            changes.append(
                ValueChange(
                    name=name,
                    before=_ACTIVE if old.get("status") == _ACTIVE else "Inactive",
                    after=_ACTIVE if item.get("status") == _ACTIVE else "Inactive",
                )
            )
    return tuple(changes)


def _rule_names(automation: dict[str, Any]) -> dict[str, dict[str, Any]]:
    # Count-only summaries have no names to compare
    rules = automation.get("validation_rules") or {}
    if rules.get("shape") != "detailed":
        return {}
    return _keyed(rules.get("items") or [], "full_name")


def diff_scans(
    from_scan: Any, to_scan: Any, from_scan_id: str = "", to_scan_id: str = ""
) -> ScanDiff:
    """Structural diff of two scans.

    Accepts :class:`~migready.scan.models.ScanResult` objects or their stored
    documents. Scans whose structural hashes match are reported unchanged
    without a detailed comparison.
    """
    before, after = _document(from_scan), _document(to_scan)

    before_hash, after_hash = _summary_hash(before), _summary_hash(after)
    if before_hash and before_hash == after_hash:
        logger.info("No changes detected (hash match)")
        return ScanDiff(from_scan_id=from_scan_id, to_scan_id=to_scan_id)

    old_snap = before.get("snapshot") or {}
    new_snap = after.get("snapshot") or {}
    old_auto = old_snap.get("automation") or {}
    new_auto = new_snap.get("automation") or {}

    old_objects = _keyed(old_snap.get("objects") or [], "name")
    new_objects = _keyed(new_snap.get("objects") or [], "name")
    old_flows = _keyed(old_auto.get("flows") or [], "developer_name")
    new_flows = _keyed(new_auto.get("flows") or [], "developer_name")
    old_triggers = _keyed(old_auto.get("triggers") or [], "name")
    new_triggers = _keyed(new_auto.get("triggers") or [], "name")
    old_rules = _rule_names(old_auto)
    new_rules = _rule_names(new_auto)

    objects_added, objects_removed = _added_removed(old_objects, new_objects)
    flows_added, flows_removed = _added_removed(old_flows, new_flows)
    triggers_added, triggers_removed = _added_removed(old_triggers, new_triggers)
    rules_added, rules_removed = _added_removed(old_rules, new_rules)

    changed_objects = tuple(
        ValueChange(
            name=name,
            before=old_objects[name].get("record_count") or 0,
            after=obj.get("record_count") or 0,
        )
        for name, obj in new_objects.items()
        if name in old_objects and old_objects[name].get("record_count") != obj.get("record_count")
    )

    old_findings = _keyed(before.get("findings") or [], "id")
    changed_findings = tuple(
        ValueChange(name=fid, before=old_findings[fid]["severity"], after=finding["severity"])
        for fid, finding in _keyed(after.get("findings") or [], "id").items()
        if fid in old_findings and old_findings[fid].get("severity") != finding.get("severity")
    )

    diff = ScanDiff(
        from_scan_id=from_scan_id,
        to_scan_id=to_scan_id,
        added=ChangeSet(objects_added, flows_added, triggers_added, rules_added),
        removed=ChangeSet(objects_removed, flows_removed, triggers_removed, rules_removed),
        changed_objects=changed_objects,
        changed_flows=_status_changes(old_flows, new_flows),
        changed_triggers=_status_changes(old_triggers, new_triggers),
        changed_findings=changed_findings,
    )
    has_changes = any(
        (
            *(getattr(diff.added, f) for f in ("objects", "flows", "triggers", "validation_rules")),
            *(getattr(diff.removed, f) for f in ("objects", "flows", "triggers", "validation_rules")),
            diff.changed_objects,
            diff.changed_flows,
            diff.changed_triggers,
            diff.changed_findings,
        )
    )
    diff = dataclasses.replace(diff, has_changes=has_changes)
    logger.info("Scan diff completed has_changes=%s", has_changes)
    return diff
