"""
Execution result export.

Completed execution rows are rendered as JSON, CSV (pyarrow) or XLSX
(openpyxl). Small exports are returned inline; larger ones are written to
local storage and recorded in `dataset_exports`.
"""

from __future__ import annotations

import asyncio
import base64
import io
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

import pyarrow as pa
import pyarrow.csv as pacsv
from openpyxl import Workbook

from shopdata.config import settings
from shopdata.core import execution_store
from shopdata.core.errors import (
    ExecutionNotFoundError,
    UnsupportedExportFormatError,
    ValidationError,
)
from shopdata.models import ExecutionStatus

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    XLSX = "xlsx"

    @classmethod
    def parse(cls, value: str) -> "ExportFormat":
        try:
            return cls(str(value).lower())
        except ValueError:
            supported = ", ".join(f.value for f in cls)
            raise UnsupportedExportFormatError(
                f"Unsupported export format {value!r} (expected one of: {supported})"
            ) from None


def flatten_row(row: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Nested objects become dotted keys; lists become JSON text."""
    flat: dict[str, Any] = {}
    for key, value in row.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_row(value, f"{name}."))
        elif isinstance(value, list):
            flat[name] = json.dumps(value, default=str)
        else:
            flat[name] = value
    return flat


def _columns(rows: Iterable[dict[str, Any]]) -> list[str]:
    seen: dict[str, None] = {}
    for row in rows:
        for key in row:
            seen.setdefault(key, None)
    return list(seen)


def _arrow_type(values: list[Any]) -> pa.DataType:
    kinds = {type(v) for v in values if v is not None}
    if not kinds:
        return pa.string()
    if kinds == {bool}:
        return pa.bool_()
    if kinds == {int}:
        return pa.int64()
    if kinds <= {int, float}:
        return pa.float64()
    return pa.string()


def rows_to_table(rows: list[dict[str, Any]]) -> pa.Table:
    flat = [flatten_row(r) for r in rows]
    arrays = {}
    for column in _columns(flat):
        values = [r.get(column) for r in flat]
        arrow_type = _arrow_type(values)
        if arrow_type == pa.string():
            values = [None if v is None else str(v) for v in values]
        arrays[column] = pa.array(values, type=arrow_type)
    return pa.table(arrays)


def render_json(rows: list[dict[str, Any]]) -> bytes:
    return json.dumps(rows, default=str, indent=2).encode("utf-8")


def render_csv(rows: list[dict[str, Any]]) -> bytes:
    table = rows_to_table(rows)
    if table.num_columns == 0:
        return b""
    sink = pa.BufferOutputStream()
    pacsv.write_csv(table, sink)
    return sink.getvalue().to_pybytes()


def render_xlsx(rows: list[dict[str, Any]]) -> bytes:
    table = rows_to_table(rows)
    wb = Workbook()
    ws = wb.active
    ws.title = "data"
    ws.append(table.column_names)
    for record in table.to_pylist():
        ws.append([record[c] for c in table.column_names])
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


_RENDERERS = {
    ExportFormat.JSON: render_json,
    ExportFormat.CSV: render_csv,
    ExportFormat.XLSX: render_xlsx,
}


def _inline_content(fmt: ExportFormat, payload: bytes) -> str:
    if fmt is ExportFormat.XLSX:
        return base64.b64encode(payload).decode("ascii")
    return payload.decode("utf-8")


class ExportService:
    def __init__(
        self,
        store: Any = execution_store,
        storage_dir: Optional[Path] = None,
        inline_max_rows: Optional[int] = None,
    ) -> None:
        self._store = store
        self._storage_dir = Path(storage_dir or settings.EXPORT_STORAGE_DIR)
        self._inline_max_rows = (
            settings.EXPORT_INLINE_MAX_ROWS if inline_max_rows is None else inline_max_rows
        )

    async def export_execution(
        self, execution_id: str, user_id: str, fmt: str
    ) -> dict[str, Any]:
        """
        Render the result rows of a completed execution.

        Raises:
            UnsupportedExportFormatError: unknown format
            ExecutionNotFoundError: no such execution for this user
            ValidationError: the execution has not completed
        """
        export_format = ExportFormat.parse(fmt)
        row = await self._store.fetch_execution_data(execution_id, user_id)
        if row is None:
            raise ExecutionNotFoundError(execution_id)
        if row.get("status") != ExecutionStatus.COMPLETED.value:
            raise ValidationError(
                f"Execution {execution_id} is {row.get('status')}; "
                "only completed executions can be exported"
            )

        rows = row.get("data") or []
        payload = _RENDERERS[export_format](rows)

        if len(rows) <= self._inline_max_rows:
            return {
                "inline": True,
                "format": export_format.value,
                "rowCount": len(rows),
                "content": _inline_content(export_format, payload),
            }

        path = self._storage_dir / execution_id / f"export.{export_format.value}"
        await asyncio.to_thread(_write_file, path, payload)
        export_id = await self._store.record_export(
            execution_id=execution_id,
            user_id=user_id,
            fmt=export_format.value,
            storage_path=str(path),
            row_count=len(rows),
            size_bytes=len(payload),
        )
        logger.info(
            "📦 Exported %d rows of %s to %s (%d bytes)",
            len(rows),
            execution_id,
            path,
            len(payload),
        )
        return {
            "inline": False,
            "format": export_format.value,
            "rowCount": len(rows),
            "exportId": export_id,
            "storagePath": str(path),
            "sizeBytes": len(payload),
        }


def _write_file(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)


export_service = ExportService()
