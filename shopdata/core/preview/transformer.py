"""
Shared preview response shaping.

Every retrieval tier hands its rows to these functions so the response shape
is defined in exactly one place.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from shopdata.config import settings
from shopdata.core.preview.stuck import is_possibly_stuck
from shopdata.models import (
    DataSource,
    ExecutionStatus,
    PreviewColumn,
    PreviewData,
    PreviewDataset,
    PreviewExecution,
)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def format_column_label(key: str) -> str:
    """``created_at`` / ``createdAt`` -> ``Created At``."""
    spaced = _CAMEL_BOUNDARY.sub(" ", key).replace("_", " ").replace(".", " ")
    return " ".join(word[:1].upper() + word[1:] for word in spaced.split())


def extract_columns(rows: list[dict[str, Any]]) -> list[PreviewColumn]:
    if not rows or not isinstance(rows[0], dict):
        return []
    return [PreviewColumn(key=k, label=format_column_label(k)) for k in rows[0]]


def _execution(row: dict[str, Any]) -> PreviewExecution:
    return PreviewExecution(
        id=str(row["id"]),
        start_time=row.get("start_time"),
        end_time=row.get("end_time"),
        row_count=row.get("row_count"),
        execution_time_ms=row.get("execution_time_ms"),
        api_call_count=row.get("api_call_count"),
    )


def _stuck(row: dict[str, Any], check_status: bool, now: Optional[datetime]) -> bool:
    if not check_status:
        return False
    return is_possibly_stuck(
        row.get("status") or "",
        row.get("start_time"),
        now or datetime.now(UTC),
        timedelta(minutes=settings.STUCK_EXECUTION_MINUTES),
    )


def build_preview_data(
    row: dict[str, Any],
    dataset: PreviewDataset,
    *,
    limit: int,
    data_source: DataSource,
    check_status: bool = False,
    now: Optional[datetime] = None,
) -> PreviewData:
    """Shape an execution row (with `data`) into a capped preview."""
    status = str(row.get("status") or ExecutionStatus.PENDING.value)
    data = row.get("data")
    rows: list[dict[str, Any]] = []
    total = 0
    if status == ExecutionStatus.COMPLETED.value and isinstance(data, list):
        rows = data[:limit]
        total = row.get("row_count") if row.get("row_count") is not None else len(data)

    return PreviewData(
        status=status,
        execution=_execution(row),
        dataset=dataset,
        columns=extract_columns(rows),
        preview=rows,
        total_count=total,
        error=row.get("error_message"),
        data_source=data_source,
        possibly_stuck=_stuck(row, check_status, now),
    )


def build_minimal_preview_data(
    row: dict[str, Any],
    *,
    check_status: bool = False,
    now: Optional[datetime] = None,
) -> PreviewData:
    """Status, timestamps and counts only."""
    return PreviewData(
        status=str(row.get("status") or ExecutionStatus.PENDING.value),
        execution=_execution(row),
        dataset=PreviewDataset(id=row.get("dataset_id")),
        total_count=row.get("row_count") or 0,
        error=row.get("error_message"),
        data_source=DataSource.MINIMAL,
        possibly_stuck=_stuck(row, check_status, now),
    )
