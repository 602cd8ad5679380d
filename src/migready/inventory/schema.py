"""Object schema fetcher — discovery, describe and record counts."""

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
    run_cascade,
)
from migready.inventory.models import (
    AutonumberField,
    FieldDescriptor,
    Lookup,
    ObjectDescriptor,
    Picklist,
    RecordType,
)
from migready.transport.client import SalesforceClient

logger = logging.getLogger(__name__)

FOCUS_OBJECTS = (
    "Account",
    "Contact",
    "Case",
    "Opportunity",
    "Lead",
    "Contract",
    "Order",
    "Product2",
)

# Reference targets that every object has; not meaningful as dependencies
_IGNORED_LOOKUP_TARGETS = {"User", "RecordType"}


async def fetch_objects(
    client: SalesforceClient,
    options: CascadeOptions | None = None,
    focus: list[str] | None = None,
) -> list[ObjectDescriptor]:
    """Describe and count every discovered (or explicitly focused) object."""
    options = options or CascadeOptions()
    names = list(focus) if focus else await discover_objects(client, options)
    logger.info("Scanning %d objects (first: %s)", len(names), ", ".join(names[:10]))

    semaphore = asyncio.Semaphore(max(1, options.concurrency))

    async def bounded(name: str) -> ObjectDescriptor:
        async with semaphore:
            return await describe_object(client, name)

    objects = await asyncio.gather(*(bounded(name) for name in names))
    total_lookups = sum(len(obj.lookups) for obj in objects)
    logger.info("Object scan completed objects=%d lookups=%d", len(objects), total_lookups)
    return list(objects)


async def discover_objects(
    client: SalesforceClient, options: CascadeOptions | None = None
) -> list[str]:
    """Object names to scan: focus standard objects plus every custom object."""
    options = options or CascadeOptions()

    async def from_sobjects(c: SalesforceClient) -> Records:
        payload = await c.get(c.data_path("sobjects/"))
        return list(payload.get("sobjects") or []) if isinstance(payload, dict) else []

    hit = await run_cascade(
        client,
        [
            Strategy(name="REST sobjects", loader=from_sobjects),
            Strategy(
                name="Tooling EntityDefinition",
                soql=(
                    "SELECT QualifiedApiName FROM EntityDefinition "
                    "WHERE IsCustomizable = true"
                ),
                tooling=True,
                paginate=True,
            ),
        ],
        label="object discovery",
        max_pages=options.max_pages,
    )
    if not isinstance(hit, CascadeHit):
        logger.warning("Object discovery failed, using focus objects: %s", hit.reason)
        return list(FOCUS_OBJECTS)

    discovered: list[str] = []
    for row in hit.records:
        if "QualifiedApiName" in row:
            discovered.append(row["QualifiedApiName"])
        elif row.get("custom") is True or row.get("name") in FOCUS_OBJECTS:
            discovered.append(row["name"])

    names = list(dict.fromkeys([*FOCUS_OBJECTS, *discovered]))
    logger.info("Discovered %d objects via %s", len(names), hit.strategy)
    return names


async def describe_object(client: SalesforceClient, name: str) -> ObjectDescriptor:
    """Describe one object and count its records concurrently."""
    describe_result, count = await asyncio.gather(
        client.get(client.data_path(f"sobjects/{name}/describe/")),
        count_records(client, name),
        return_exceptions=True,
    )
    for outcome in (describe_result, count):
        if isinstance(outcome, AuthenticationError):
            raise outcome
    if isinstance(describe_result, BaseException):
        logger.warning("Failed to describe %s: %s", name, describe_result)
        return ObjectDescriptor.minimal(name)
    if isinstance(count, BaseException):
        count = None
    return descriptor_from_describe(name, describe_result, count)


async def count_records(client: SalesforceClient, name: str) -> int | None:
    """Approximate record count; ``None`` when it cannot be determined."""
    # Platform events do not support COUNT()
    if name.endswith("__e"):
        return None
    try:
        page = await client.query(f"SELECT COUNT() FROM {name}")
    except AuthenticationError:
        raise
    except TransportError as exc:
        logger.debug("COUNT() failed for %s: %s", name, exc)
        return None
    return page.total_size


def descriptor_from_describe(
    name: str, describe: dict[str, Any], record_count: int | None
) -> ObjectDescriptor:
    """Normalize a describe payload into an :class:`ObjectDescriptor`."""
    fields: list[FieldDescriptor] = []
    picklists: list[Picklist] = []
    lookups: list[Lookup] = []
    autonumbers: list[AutonumberField] = []

    for raw in describe.get("fields") or []:
        nillable = bool(raw.get("nillable"))
        fields.append(
            FieldDescriptor(
                name=raw.get("name", ""),
                type=raw.get("type", ""),
                label=raw.get("label", ""),
                required=not nillable and bool(raw.get("createable")),
                unique=bool(raw.get("unique")),
                nillable=nillable,
                external_id=bool(raw.get("externalId")),
                length=raw.get("length"),
            )
        )

        if raw.get("autoNumber"):
            autonumbers.append(
                AutonumberField(field=raw["name"], display_format=raw.get("displayFormat") or "")
            )

        if raw.get("type") == "reference":
            for target in raw.get("referenceTo") or []:
                if target in _IGNORED_LOOKUP_TARGETS:
                    continue
                lookups.append(
                    Lookup(
                        field=raw["name"],
                        target=target,
                        is_master_detail=raw.get("cascadeDelete") is True,
                    )
                )

        if raw.get("type") == "picklist":
            values = tuple(
                pv["value"] for pv in raw.get("picklistValues") or [] if pv.get("value")
            )
            if values:
                picklists.append(Picklist(field=raw["name"], values=values))

    record_types = [
        RecordType(
            id=rt.get("recordTypeId") or "",
            name=rt["name"],
            developer_name=rt.get("developerName") or rt["name"],
            active=bool(rt.get("active")),
        )
        for rt in describe.get("recordTypeInfos") or []
        if rt.get("name") and rt["name"] != "Master"
    ]

    return ObjectDescriptor(
        name=name,
        label=describe.get("label") or name,
        is_custom=bool(describe.get("custom")),
        record_count=record_count,
        fields=tuple(fields),
        record_types=tuple(record_types),
        picklists=tuple(picklists),
        lookups=tuple(lookups),
        autonumber_fields=tuple(autonumbers),
    )
