"""JSON-ready conversion of scan results."""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Mapping
from typing import Any

from migready.inventory.models import CountOnly, Detailed


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, enums and tuples to JSON types.

    Collections that may arrive as a detail list or as a count-only summary
    carry a ``shape`` key so readers can tell the two apart.
    """
    if isinstance(value, Detailed):
        return {
            "shape": "detailed",
            "total": value.total,
            "active": value.active,
            "available": True,
            "items": [to_jsonable(item) for item in value.items],
            "note": value.note,
        }
    if isinstance(value, CountOnly):
        return {
            "shape": "count_only",
            "total": value.total,
            "active": value.active,
            "available": value.available,
            "note": value.note,
        }
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)
        }
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def scan_document(result: Any) -> dict[str, Any]:
    """Stored form of a scan result, including its structural hash."""
    doc = to_jsonable(result)
    doc["structural_hash"] = result.summary.structural_hash()
    return doc
