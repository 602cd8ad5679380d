"""Automation fetcher — flows, triggers, validation/workflow rules, approvals.

Flow, validation rule and workflow rule metadata is exposed inconsistently
across orgs, so each is fetched through its own query cascade. Validation
and workflow rules always get a count-only summary first; the detail list
replaces it only when a detail strategy returns rows.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from migready.errors import AuthenticationError, TransportError
from migready.inventory.cascade import (
    CascadeHit,
    CascadeOptions,
    Records,
    Strategy,
    count_only,
    fetch_all_pages,
    query_or_empty,
    run_cascade,
)
from migready.inventory.models import (
    AutomationIndex,
    CountOnly,
    Detailed,
    Flow,
    FlowSummary,
    Trigger,
    ValidationRule,
)
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

_FLOW_STATUSES = {"Active", "Draft", "Obsolete", "InvalidDraft"}

_FDV_QUERY = (
    "SELECT DeveloperName, MasterLabel, NamespacePrefix, ActiveVersion.Status, "
    "ActiveVersion.ProcessType, ActiveVersion.TriggerType, "
    "ActiveVersion.TableEnumOrId, ActiveVersion.ApiVersion, LatestVersionId "
    "FROM FlowDefinitionView"
)
_FD_QUERY = (
    "SELECT DeveloperName, LatestVersionId, MasterLabel, NamespacePrefix "
    "FROM FlowDefinition"
)
_FLOW_VERSION_QUERY = (
    "SELECT Id, ApiVersion, Status, ProcessType, TriggerType, TableEnumOrId, "
    "VersionNumber, Definition.DeveloperName FROM Flow"
)
_TRIGGER_QUERY = "SELECT Id, Name, TableEnumOrId, Status, ApiVersion FROM ApexTrigger"

_VR_RICH = (
    "SELECT Id, FullName, Active, ErrorConditionFormula, ErrorDisplayField, "
    "ErrorMessage FROM ValidationRule"
)
_VR_BASIC = "SELECT Id, FullName, Active FROM ValidationRule"


def _entity_relationship_query(relationship: str, fields: str = "Id, FullName") -> str:
    return (
        f"SELECT QualifiedApiName, (SELECT {fields} FROM {relationship}) "
        "FROM EntityDefinition WHERE IsCustomizable = true LIMIT 200"
    )


async def fetch_automation(
    client: SalesforceClient, options: CascadeOptions | None = None
) -> AutomationIndex:
    """Fetch every automation collection concurrently."""
    options = options or CascadeOptions()
    flows, flow_summary, triggers, validation_rules, workflow_rules, approvals = (
        await asyncio.gather(
            fetch_flows(client, options),
            count_flows(client),
            fetch_triggers(client),
            fetch_validation_rules(client, options),
            fetch_workflow_rules(client, options),
            fetch_approval_processes(client, options),
        )
    )

    logger.info(
        "Automation index fetched flows=%d flow_summary=%s/%s (%s) triggers=%d "
        "validation_rules=%s workflow_rules=%s approval_processes=%s",
        len(flows),
        flow_summary.active,
        flow_summary.total,
        flow_summary.method,
        len(triggers),
        validation_rules.total,
        workflow_rules.total,
        approvals.total,
    )
    return AutomationIndex(
        flows=tuple(flows),
        flow_summary=flow_summary,
        triggers=tuple(triggers),
        validation_rules=validation_rules,
        workflow_rules=workflow_rules,
        approval_processes=approvals,
    )


# ---------------------------------------------------------------------------
# Flows
# ---------------------------------------------------------------------------


def _flow_status(raw: Any) -> str:
    return raw if raw in _FLOW_STATUSES else "Inactive"


async def fetch_flows(
    client: SalesforceClient, options: CascadeOptions | None = None
) -> list[Flow]:
    options = options or CascadeOptions()
    api_version = client.api_version

    async def via_view(c: SalesforceClient) -> Records:
        rows = await fetch_all_pages(c, _FDV_QUERY, tooling=True, max_pages=options.max_pages)
        return flows_from_view(rows, api_version)

    async def via_definitions(c: SalesforceClient) -> Records:
        definitions = await fetch_all_pages(
            c, _FD_QUERY, tooling=True, max_pages=options.max_pages
        )
        versions = await query_or_empty(c, _FLOW_VERSION_QUERY, tooling=True, label="Flow")
        return flows_from_definitions(definitions, versions, api_version)

    async def via_versions(c: SalesforceClient) -> Records:
        versions = await fetch_all_pages(
            c, _FLOW_VERSION_QUERY, tooling=True, max_pages=options.max_pages
        )
        return flows_from_definitions([], versions, api_version)

    hit = await run_cascade(
        client,
        [
            Strategy(name="FlowDefinitionView", loader=via_view),
            Strategy(name="FlowDefinition + Flow", loader=via_definitions),
            Strategy(name="Flow", loader=via_versions),
        ],
        label="flows",
    )
    return list(hit.records) if isinstance(hit, CascadeHit) else []


def flows_from_view(rows: Records, api_version: str) -> list[Flow]:
    flows: dict[str, Flow] = {}
    for row in rows:
        name = row.get("DeveloperName")
        if not name:
            continue
        active_version = row.get("ActiveVersion") or {}
        flows[name] = Flow(
            id=row.get("LatestVersionId") or "",
            developer_name=name,
            master_label=row.get("MasterLabel") or name,
            status=_flow_status(active_version.get("Status")),
            api_version=str(active_version.get("ApiVersion") or api_version),
            process_type=active_version.get("ProcessType") or None,
            trigger_type=active_version.get("TriggerType") or None,
            object=active_version.get("TableEnumOrId") or None,
        )
    return list(flows.values())


def flows_from_definitions(
    definitions: Records, versions: Records, api_version: str
) -> list[Flow]:
    """Join flow definitions with their latest version rows."""
    versions_by_id = {v.get("Id"): v for v in versions if v.get("Id")}
    flows: dict[str, Flow] = {}
    matched: set[str] = set()

    for definition in definitions:
        name = definition.get("DeveloperName")
        if not name:
            continue
        latest_id = definition.get("LatestVersionId") or ""
        version = versions_by_id.get(latest_id, {})
        if version:
            matched.add(latest_id)
        flows[name] = Flow(
            id=version.get("Id") or latest_id,
            developer_name=name,
            master_label=definition.get("MasterLabel") or name,
            status=_flow_status(version.get("Status")),
            api_version=str(version.get("ApiVersion") or api_version),
            process_type=version.get("ProcessType") or None,
            trigger_type=version.get("TriggerType") or None,
            object=version.get("TableEnumOrId") or None,
        )

    for version_id, version in versions_by_id.items():
        if version_id in matched:
            continue
        name = (version.get("Definition") or {}).get("DeveloperName") or version_id
        existing = flows.get(name)
        # Keep the active version when several versions share a definition
        if existing is not None and (existing.active or version.get("Status") != "Active"):
            continue
        flows[name] = Flow(
            id=version_id,
            developer_name=name,
            master_label=name,
            status=_flow_status(version.get("Status")),
            api_version=str(version.get("ApiVersion") or api_version),
            process_type=version.get("ProcessType") or None,
            trigger_type=version.get("TriggerType") or None,
            object=version.get("TableEnumOrId") or None,
        )
    return list(flows.values())


async def count_flows(client: SalesforceClient) -> FlowSummary:
    """Org-wide flow counts: FlowDefinitionView, then FlowDefinition, then Flow."""

    async def via_view(c: SalesforceClient) -> Records:
        total = (await c.query("SELECT COUNT() FROM FlowDefinitionView", True)).total_size
        try:
            active = (
                await c.query(
                    "SELECT COUNT() FROM FlowDefinitionView "
                    "WHERE ActiveVersion.Status = 'Active'",
                    True,
                )
            ).total_size
        except AuthenticationError:
            raise
        except TransportError:
            rows = (
                await c.query(
                    "SELECT DeveloperName, ActiveVersionId, ActiveVersion.Status "
                    "FROM FlowDefinitionView",
                    True,
                )
            ).records
            active = sum(
                1
                for r in rows
                if r.get("ActiveVersionId")
                and (r.get("ActiveVersion") or {}).get("Status") == "Active"
            )
        return [FlowSummary(total=total, active=active, available=True, method="FlowDefinitionView")]

    async def via_definition(c: SalesforceClient) -> Records:
        total = (await c.query("SELECT COUNT() FROM FlowDefinition", True)).total_size
        try:
            active = (
                await c.query(
                    "SELECT COUNT() FROM FlowDefinition WHERE ActiveVersionId != null", True
                )
            ).total_size
        except AuthenticationError:
            raise
        except TransportError:
            rows = (
                await c.query("SELECT DeveloperName, ActiveVersionId FROM FlowDefinition", True)
            ).records
            active = sum(1 for r in rows if r.get("ActiveVersionId"))
        return [
            FlowSummary(
                total=total,
                active=active,
                available=True,
                method="FlowDefinition",
                note="FlowDefinitionView unavailable, used FlowDefinition.",
            )
        ]

    async def via_versions(c: SalesforceClient) -> Records:
        rows = (
            await c.query("SELECT Id, Status, Definition.DeveloperName FROM Flow", True)
        ).records
        names: set[str] = set()
        active = 0
        for row in rows:
            name = (row.get("Definition") or {}).get("DeveloperName")
            if name:
                names.add(name)
                if row.get("Status") == "Active":
                    active += 1
        return [
            FlowSummary(
                total=len(names) or len(rows),
                active=active,
                available=True,
                method="Flow",
                note="FlowDefinitionView/FlowDefinition unavailable, used Flow. "
                "May be less accurate.",
            )
        ]

    hit = await run_cascade(
        client,
        [
            Strategy(name="FlowDefinitionView counts", loader=via_view),
            Strategy(name="FlowDefinition counts", loader=via_definition),
            Strategy(name="Flow versions", loader=via_versions),
        ],
        label="flow counts",
    )
    if isinstance(hit, CascadeHit):
        return hit.records[0]
    return FlowSummary(available=False, method="none", note=hit.reason)


# ---------------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------------


async def fetch_triggers(client: SalesforceClient) -> list[Trigger]:
    try:
        page = await client.query(_TRIGGER_QUERY, use_tooling_api=True)
    except AuthenticationError:
        raise
    except TransportError as exc:
        logger.error("ApexTrigger query failed: %s", exc)
        return []
    return [
        Trigger(
            id=row.get("Id", ""),
            name=row.get("Name", ""),
            object=row.get("TableEnumOrId") or "",
            status="Active" if row.get("Status") == "Active" else "Inactive",
            api_version=str(row.get("ApiVersion") or client.api_version),
        )
        for row in page.records
    ]


# ---------------------------------------------------------------------------
# Validation rules
# ---------------------------------------------------------------------------


async def fetch_validation_rules(
    client: SalesforceClient, options: CascadeOptions | None = None
) -> Detailed[ValidationRule] | CountOnly:
    """Count-only summary, upgraded to the detail list when one is retrievable.

    Validation rules are not looked up through per-object describe calls;
    when no query strategy returns rows the count summary stands.
    """
    options = options or CascadeOptions()
    counts = await count_only(
        client,
        "SELECT COUNT() FROM ValidationRule",
        "SELECT COUNT() FROM ValidationRule WHERE Active = true",
        label="ValidationRule",
    )

    async def via_entities(c: SalesforceClient) -> Records:
        query = _entity_relationship_query(
            "ValidationRules",
            "Id, FullName, Active, ErrorConditionFormula, ErrorDisplayField, ErrorMessage",
        )
        page = await c.query(query, use_tooling_api=True)
        rows: Records = []
        for entity, child in _relationship_rows(page.records, "ValidationRules"):
            rows.append(
                {
                    **child,
                    "Id": child.get("Id") or f"{entity}_{child.get('FullName', 'unknown')}",
                    "FullName": f"{entity}.{child.get('FullName') or child.get('Id') or 'unknown'}",
                }
            )
        return rows

    timeout = options.timeout
    hit = await run_cascade(
        client,
        [
            Strategy(name="Tooling - all fields", soql=_VR_RICH, tooling=True, timeout=timeout),
            Strategy(name="Tooling - basic fields", soql=_VR_BASIC, tooling=True, timeout=timeout),
            Strategy(name="REST - all fields", soql=_VR_RICH, timeout=timeout),
            Strategy(name="REST - basic fields", soql=_VR_BASIC, timeout=timeout),
            Strategy(name="EntityDefinition.ValidationRules", loader=via_entities, timeout=timeout),
        ],
        label="validation rules",
    )
    if isinstance(hit, CascadeHit) and hit.records:
        return Detailed(items=tuple(validation_rule_from_row(row) for row in hit.records))

    if not counts.available and not isinstance(hit, CascadeHit):
        return CountOnly(
            total=None,
            active=None,
            available=False,
            note=f"{counts.note}; detail: {hit.reason}",
        )
    return counts


def validation_rule_from_row(row: dict[str, Any]) -> ValidationRule:
    return ValidationRule(
        id=row.get("Id") or "",
        full_name=row.get("FullName") or "",
        active=row.get("Active") is True,
        error_condition_formula=row.get("ErrorConditionFormula") or None,
        error_display_field=row.get("ErrorDisplayField") or None,
        error_message=row.get("ErrorMessage") or None,
    )


# ---------------------------------------------------------------------------
# Workflow rules and approval processes
# ---------------------------------------------------------------------------


async def fetch_workflow_rules(
    client: SalesforceClient, options: CascadeOptions | None = None
) -> CountOnly:
    counts = await count_only(
        client,
        "SELECT COUNT() FROM WorkflowRule",
        "SELECT COUNT() FROM WorkflowRule WHERE Active = true",
        label="WorkflowRule",
    )
    if counts.available:
        return counts

    logger.debug("WorkflowRule counts unavailable, listing via EntityDefinition")
    listed = await list_via_entity_definition(client, "WorkflowRules", options)
    if isinstance(listed, CascadeHit):
        return CountOnly(
            total=len(listed.records),
            active=None,
            available=True,
            note="Active status unavailable via metadata listing",
        )
    return CountOnly(available=False, note=f"{counts.note}; listing: {listed.reason}")


async def fetch_approval_processes(
    client: SalesforceClient, options: CascadeOptions | None = None
) -> CountOnly:
    listed = await list_via_entity_definition(client, "ApprovalProcesses", options)
    if isinstance(listed, CascadeHit):
        return CountOnly(
            total=len(listed.records),
            active=None,
            available=True,
            note="Active status unavailable via metadata listing",
        )
    return CountOnly(available=False, note=f"ApprovalProcess not accessible: {listed.reason}")


async def list_via_entity_definition(
    client: SalesforceClient, relationship: str, options: CascadeOptions | None = None
):
    """List metadata full names through an EntityDefinition child relationship."""
    options = options or CascadeOptions()

    async def load(c: SalesforceClient) -> Records:
        page = await c.query(_entity_relationship_query(relationship), use_tooling_api=True)
        return [
            {"fullName": child.get("FullName") or f"{entity}.{child.get('Id')}"}
            for entity, child in _relationship_rows(page.records, relationship)
        ]

    return await run_cascade(
        client,
        [Strategy(name=f"EntityDefinition.{relationship}", loader=load, timeout=options.timeout)],
        label=relationship,
        require_records=False,
    )


def _relationship_rows(entities: Records, relationship: str):
    """Yield (entity name, child row) pairs from a parent-child subquery."""
    for entity in entities:
        related = entity.get(relationship)
        if not related:
            continue
        children = related.get("records") if isinstance(related, dict) else related
        for child in children or []:
            if isinstance(child, dict):
                yield entity.get("QualifiedApiName", ""), child
