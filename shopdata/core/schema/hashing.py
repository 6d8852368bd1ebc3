"""
Structural schema hashing for change detection.

Only type names, kinds, field names and rendered field types contribute.
Descriptions churn without structural meaning and are left out.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

from shopdata.core.schema.introspection import render_type_ref, schema_types

ProjectionRow = tuple[str, str, Optional[str], Optional[str]]


def schema_projection(raw: dict[str, Any]) -> list[ProjectionRow]:
    rows: list[ProjectionRow] = []
    for t in schema_types(raw):
        name = t.get("name") or ""
        kind = t.get("kind") or ""
        fields = t.get("fields") or []
        if not fields:
            rows.append((name, kind, None, None))
            continue
        for f in fields:
            rows.append((name, kind, f.get("name"), render_type_ref(f.get("type"))))
    rows.sort(key=lambda r: (r[0], r[1], r[2] or "", r[3] or ""))
    return rows


def compute_schema_hash(raw: dict[str, Any]) -> str:
    canonical = json.dumps(schema_projection(raw), separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
