"""REST API for stored scans and scan diffs."""

from __future__ import annotations

from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from migready.analysis.diff import diff_scans
from migready.serialization import to_jsonable

router = APIRouter(tags=["scans"])


class ScanListing(BaseModel):
    id: str
    instance_url: str = ""
    org_id: str = ""
    trace_id: str = ""
    objects: int = 0
    records_approx: int = 0
    flows: int = 0
    triggers: int = 0
    validation_rules: int = 0
    high_findings: int = 0
    medium_findings: int = 0
    low_findings: int = 0
    health_score: int | None = None
    structural_hash: str = ""
    created_at: float


@router.get("/scans", response_model=list[ScanListing])
async def list_scans(
    request: Request,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    return await request.app.state.store.list(limit=limit, offset=offset)


@router.get("/scans/{scan_id}")
async def get_scan(scan_id: str, request: Request):
    scan = await request.app.state.store.get(scan_id)
    if not scan:
        return JSONResponse(
            status_code=404,
            content={"detail": "Scan not found"},
        )
    return scan


@router.get("/diff")
async def diff(
    request: Request,
    from_id: str = Query(..., alias="from"),
    to_id: str = Query(..., alias="to"),
):
    store = request.app.state.store
    before = await store.get(from_id)
    after = await store.get(to_id)
    missing = [scan_id for scan_id, scan in ((from_id, before), (to_id, after)) if not scan]
    if missing:
        return JSONResponse(
            status_code=404,
            content={"detail": f"Scan not found: {', '.join(missing)}"},
        )
    return to_jsonable(diff_scans(before, after, from_id, to_id))
