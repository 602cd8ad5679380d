"""Scan stores — save, fetch and list completed scans."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Protocol

import aiosqlite

from migready.scan.models import ScanResult
from migready.serialization import scan_document

logger = logging.getLogger(__name__)


class ScanStore(Protocol):
    """Storage interface used by the CLI and the web API."""

    async def save(self, result: ScanResult) -> str: ...

    async def get(self, scan_id: str) -> dict[str, Any] | None: ...

    async def list(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]: ...


def _listing(scan_id: str, created_at: float, doc: dict[str, Any]) -> dict[str, Any]:
    """Same columns as a row of the ``scans`` table."""
    profile = (doc.get("snapshot") or {}).get("profile") or {}
    summary = doc.get("summary") or {}
    severity = summary.get("findings_by_severity") or {}
    health = doc.get("health") or {}
    return {
        "id": scan_id,
        "instance_url": profile.get("instance_url", ""),
        "org_id": profile.get("org_id", ""),
        "trace_id": doc.get("trace_id", ""),
        "objects": summary.get("objects", 0),
        "records_approx": summary.get("records_approx", 0),
        "flows": summary.get("flows", 0),
        "triggers": summary.get("triggers", 0),
        "validation_rules": summary.get("validation_rules", 0),
        "high_findings": severity.get("HIGH", 0),
        "medium_findings": severity.get("MEDIUM", 0),
        "low_findings": severity.get("LOW", 0),
        "health_score": health.get("overall_score"),
        "structural_hash": doc.get("structural_hash", ""),
        "created_at": created_at,
    }


class InMemoryScanStore:
    """Process-local store, mainly for tests."""

    def __init__(self) -> None:
        self._scans: dict[str, tuple[float, dict[str, Any]]] = {}

    async def save(self, result: ScanResult) -> str:
        scan_id = str(uuid.uuid4())
        self._scans[scan_id] = (time.time(), scan_document(result))
        return scan_id

    async def get(self, scan_id: str) -> dict[str, Any] | None:
        entry = self._scans.get(scan_id)
        if entry is None:
            return None
        created_at, doc = entry
        return {**doc, "id": scan_id, "created_at": created_at}

    async def list(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        ordered = sorted(self._scans.items(), key=lambda item: item[1][0], reverse=True)
        return [
            _listing(scan_id, created_at, doc)
            for scan_id, (created_at, doc) in ordered[offset : offset + limit]
        ]


class SqliteScanStore:
    """Durable store backed by the application database."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def save(self, result: ScanResult) -> str:
        scan_id = str(uuid.uuid4())
        doc = scan_document(result)
        summary = result.summary
        severity = summary.findings_by_severity
        profile = result.snapshot.profile
        await self._db.execute(
            "INSERT INTO scans "
            "(id, instance_url, org_id, trace_id, started_at, duration, objects, "
            "records_approx, flows, triggers, validation_rules, high_findings, "
            "medium_findings, low_findings, health_score, structural_hash, "
            "document, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                scan_id,
                profile.instance_url,
                profile.org_id,
                result.trace_id,
                result.started_at,
                result.duration,
                summary.objects,
                summary.records_approx,
                summary.flows,
                summary.triggers,
                summary.validation_rules,
                severity.get("HIGH", 0),
                severity.get("MEDIUM", 0),
                severity.get("LOW", 0),
                result.health.overall_score if result.health else None,
                doc["structural_hash"],
                json.dumps(doc),
                time.time(),
            ),
        )
        await self._db.commit()
        logger.info("Scan saved id=%s hash=%s", scan_id, doc["structural_hash"][:12])
        return scan_id

    async def get(self, scan_id: str) -> dict[str, Any] | None:
        cursor = await self._db.execute(
            "SELECT id, document, created_at FROM scans WHERE id = ?", (scan_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            logger.warning("Scan not found id=%s", scan_id)
            return None
        return {**json.loads(row["document"]), "id": row["id"], "created_at": row["created_at"]}

    async def list(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        cursor = await self._db.execute(
            "SELECT id, instance_url, org_id, trace_id, objects, records_approx, flows, "
            "triggers, validation_rules, high_findings, medium_findings, low_findings, "
            "health_score, structural_hash, created_at "
            "FROM scans ORDER BY created_at DESC LIMIT ? OFFSET ?",
            (limit, offset),
        )
        return [dict(row) async for row in cursor]
