"""
Postgres Execution Store

Reads datasets/templates and persists dataset execution rows. Every status
update is guarded by the status it is allowed to transition from, so a late
writer cannot move a row backwards.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import asyncpg

from shopdata.connectors import postgres_pool
from shopdata.core.errors import ExecutionConflictError
from shopdata.models import (
    RESET_ERROR_MESSAGE,
    Dataset,
    DependentTemplate,
    PredefinedTemplate,
)


def _pool() -> postgres_pool.PostgresConnectionPool:
    return postgres_pool.get_default_pool()


def _affected(status: str) -> int:
    # asyncpg returns e.g. "UPDATE 1"
    try:
        return int(str(status).split()[-1])
    except (ValueError, IndexError):
        return 0


def _is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


# ---------------------------------------------------------------------------
# Datasets and templates
# ---------------------------------------------------------------------------


async def fetch_dataset(dataset_id: str) -> Optional[Dataset]:
    if not _is_uuid(dataset_id):
        return None
    row = await _pool().fetch_one(
        """
        SELECT d.id::text AS id, d.user_id, d.source_id::text AS source_id, d.name,
               d.dataset_type, d.template_id::text AS template_id, d.custom_query,
               d.custom_fields, d.parameters,
               s.source_type, s.config AS source_config
        FROM user_datasets d
        JOIN sources s ON s.id = d.source_id
        WHERE d.id = $1::uuid
        """,
        dataset_id,
    )
    if row is None:
        return None
    return Dataset.model_validate(dict(row))


async def fetch_predefined_template(template_id: str) -> Optional[PredefinedTemplate]:
    row = await _pool().fetch_one(
        """
        SELECT id::text AS id, name, description, query_template, resource_type,
               field_list, result_processor
        FROM query_templates
        WHERE id = $1::uuid
        """,
        template_id,
    )
    return PredefinedTemplate.model_validate(dict(row)) if row else None


async def fetch_dependent_template(template_id: str) -> Optional[DependentTemplate]:
    row = await _pool().fetch_one(
        """
        SELECT id::text AS id, name, description, primary_query, secondary_query,
               id_path, merge_strategy, primary_resource_type
        FROM dependent_query_templates
        WHERE id = $1::uuid
        """,
        template_id,
    )
    return DependentTemplate.model_validate(dict(row)) if row else None


async def find_template_name(template_id: str) -> Optional[str]:
    """Best-effort lookup across both template tables."""
    if not _is_uuid(template_id):
        return None
    for table in ("query_templates", "dependent_query_templates"):
        name = await _pool().fetch_val(
            f"SELECT name FROM {table} WHERE id = $1::uuid", template_id
        )
        if name:
            return name
    return None


# ---------------------------------------------------------------------------
# Execution lifecycle
# ---------------------------------------------------------------------------


async def find_active_execution(dataset_id: str) -> Optional[str]:
    return await _pool().fetch_val(
        """
        SELECT id::text FROM dataset_executions
        WHERE dataset_id = $1::uuid AND status IN ('pending', 'running')
        ORDER BY start_time DESC
        LIMIT 1
        """,
        dataset_id,
    )


async def create_execution(*, dataset_id: str, user_id: str) -> str:
    """
    Insert a pending execution row.

    Raises:
        ExecutionConflictError: the dataset already has a pending/running row
    """
    try:
        return await _pool().fetch_val(
            """
            INSERT INTO dataset_executions (dataset_id, user_id, status, start_time)
            VALUES ($1::uuid, $2, 'pending', now())
            RETURNING id::text
            """,
            dataset_id,
            user_id,
        )
    except asyncpg.UniqueViolationError as e:
        existing = await find_active_execution(dataset_id)
        raise ExecutionConflictError(dataset_id, existing) from e


async def mark_running(execution_id: str) -> bool:
    status = await _pool().execute_query(
        """
        UPDATE dataset_executions SET status = 'running'
        WHERE id = $1::uuid AND status = 'pending'
        """,
        execution_id,
    )
    return _affected(status) == 1


async def mark_completed(
    execution_id: str,
    *,
    row_count: int,
    execution_time_ms: int,
    api_call_count: int,
    data: list[dict[str, Any]],
    metadata: dict[str, Any],
) -> bool:
    status = await _pool().execute_query(
        """
        UPDATE dataset_executions
        SET status = 'completed', end_time = now(), row_count = $2,
            execution_time_ms = $3, api_call_count = $4, data = $5::jsonb,
            metadata = $6::jsonb, error_message = NULL
        WHERE id = $1::uuid AND status = 'running'
        """,
        execution_id,
        row_count,
        execution_time_ms,
        api_call_count,
        data,
        metadata,
    )
    return _affected(status) == 1


async def mark_failed(
    execution_id: str,
    *,
    error_message: str,
    api_call_count: int,
    metadata: Optional[dict[str, Any]] = None,
) -> bool:
    status = await _pool().execute_query(
        """
        UPDATE dataset_executions
        SET status = 'failed', end_time = now(), error_message = $2,
            api_call_count = $3, metadata = metadata || $4::jsonb
        WHERE id = $1::uuid AND status IN ('pending', 'running')
        """,
        execution_id,
        error_message,
        api_call_count,
        metadata or {},
    )
    return _affected(status) == 1


async def reset_stuck_executions(
    *,
    dataset_id: Optional[str] = None,
    execution_id: Optional[str] = None,
    user_id: Optional[str] = None,
    older_than_minutes: int,
) -> list[str]:
    """
    Force pending/running executions to failed.

    A specific `execution_id` is reset regardless of age; otherwise only rows
    older than `older_than_minutes` (optionally of one dataset) are reset.
    `user_id` restricts a single-execution reset to the owner.
    """
    if execution_id is not None:
        rows = await _pool().fetch_all(
            """
            UPDATE dataset_executions
            SET status = 'failed', end_time = now(), error_message = $2
            WHERE id = $1::uuid AND status IN ('pending', 'running')
              AND ($3::text IS NULL OR user_id = $3)
            RETURNING id::text AS id
            """,
            execution_id,
            RESET_ERROR_MESSAGE,
            user_id,
        )
    else:
        cutoff = datetime.now(UTC) - timedelta(minutes=older_than_minutes)
        rows = await _pool().fetch_all(
            """
            UPDATE dataset_executions
            SET status = 'failed', end_time = now(), error_message = $1
            WHERE status IN ('pending', 'running')
              AND start_time < $2
              AND ($3::uuid IS NULL OR dataset_id = $3::uuid)
            RETURNING id::text AS id
            """,
            RESET_ERROR_MESSAGE,
            cutoff,
            dataset_id,
        )
    return [r["id"] for r in rows]


# ---------------------------------------------------------------------------
# Retrieval reads (one per preview tier)
# ---------------------------------------------------------------------------

_EXECUTION_COLUMNS = """
    e.id::text AS id, e.dataset_id::text AS dataset_id, e.user_id, e.status,
    e.start_time, e.end_time, e.row_count, e.execution_time_ms,
    e.api_call_count, e.error_message
"""


async def fetch_execution_with_dataset(
    execution_id: str, user_id: str
) -> Optional[dict[str, Any]]:
    """Single join read of execution + dataset + template name."""
    if not _is_uuid(execution_id):
        return None
    row = await _pool().fetch_one(
        f"""
        SELECT {_EXECUTION_COLUMNS}, e.data,
               d.name AS dataset_name, d.dataset_type,
               COALESCE(qt.name, dqt.name) AS template_name
        FROM dataset_executions e
        JOIN user_datasets d ON d.id = e.dataset_id
        LEFT JOIN query_templates qt ON qt.id = d.template_id
        LEFT JOIN dependent_query_templates dqt ON dqt.id = d.template_id
        WHERE e.id = $1::uuid AND e.user_id = $2
        """,
        execution_id,
        user_id,
    )
    return dict(row) if row else None


async def fetch_execution_row(
    execution_id: str, user_id: str
) -> Optional[dict[str, Any]]:
    if not _is_uuid(execution_id):
        return None
    row = await _pool().fetch_one(
        f"""
        SELECT {_EXECUTION_COLUMNS}, e.data
        FROM dataset_executions e
        WHERE e.id = $1::uuid AND e.user_id = $2
        """,
        execution_id,
        user_id,
    )
    return dict(row) if row else None


async def fetch_dataset_row(dataset_id: str) -> Optional[dict[str, Any]]:
    if not _is_uuid(dataset_id):
        return None
    row = await _pool().fetch_one(
        """
        SELECT id::text AS id, name, dataset_type, template_id::text AS template_id
        FROM user_datasets WHERE id = $1::uuid
        """,
        dataset_id,
    )
    return dict(row) if row else None


async def fetch_execution_status(
    execution_id: str, user_id: str
) -> Optional[dict[str, Any]]:
    """Status, timestamps and counts only; never the result payload."""
    if not _is_uuid(execution_id):
        return None
    row = await _pool().fetch_one(
        f"""
        SELECT {_EXECUTION_COLUMNS}
        FROM dataset_executions e
        WHERE e.id = $1::uuid AND e.user_id = $2
        """,
        execution_id,
        user_id,
    )
    return dict(row) if row else None


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


async def list_dataset_executions(
    dataset_id: str, user_id: str, limit: int
) -> list[dict[str, Any]]:
    """Newest first; status columns only, never the result payload."""
    if not _is_uuid(dataset_id):
        return []
    rows = await _pool().fetch_all(
        f"""
        SELECT {_EXECUTION_COLUMNS}
        FROM dataset_executions e
        WHERE e.dataset_id = $1::uuid AND e.user_id = $2
        ORDER BY e.start_time DESC
        LIMIT $3
        """,
        dataset_id,
        user_id,
        limit,
    )
    return [dict(r) for r in rows]


async def fetch_execution_details(
    execution_id: str, user_id: str
) -> Optional[dict[str, Any]]:
    if not _is_uuid(execution_id):
        return None
    row = await _pool().fetch_one(
        f"""
        SELECT {_EXECUTION_COLUMNS}, e.metadata,
               d.name AS dataset_name, d.dataset_type,
               d.template_id::text AS template_id,
               COALESCE(qt.name, dqt.name) AS template_name
        FROM dataset_executions e
        LEFT JOIN user_datasets d ON d.id = e.dataset_id
        LEFT JOIN query_templates qt ON qt.id = d.template_id
        LEFT JOIN dependent_query_templates dqt ON dqt.id = d.template_id
        WHERE e.id = $1::uuid AND e.user_id = $2
        """,
        execution_id,
        user_id,
    )
    return dict(row) if row else None


# ---------------------------------------------------------------------------
# Exports
# ---------------------------------------------------------------------------


async def fetch_execution_data(
    execution_id: str, user_id: str
) -> Optional[dict[str, Any]]:
    """Status and the full result payload of an owned execution."""
    if not _is_uuid(execution_id):
        return None
    row = await _pool().fetch_one(
        """
        SELECT id::text AS id, status, row_count, data
        FROM dataset_executions
        WHERE id = $1::uuid AND user_id = $2
        """,
        execution_id,
        user_id,
    )
    return dict(row) if row else None


async def record_export(
    *,
    execution_id: str,
    user_id: str,
    fmt: str,
    storage_path: str,
    row_count: int,
    size_bytes: int,
) -> str:
    return await _pool().fetch_val(
        """
        INSERT INTO dataset_exports
            (execution_id, user_id, format, storage_path, row_count, size_bytes)
        VALUES ($1::uuid, $2, $3, $4, $5, $6)
        RETURNING id::text
        """,
        execution_id,
        user_id,
        fmt,
        storage_path,
        row_count,
        size_bytes,
    )

