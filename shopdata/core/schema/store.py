"""
Postgres store for sources, schema cache rows and access lookups.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional
from uuid import UUID

import asyncpg

from shopdata.connectors import postgres_pool
from shopdata.models import SchemaCacheEntry, SecurityClassification


def _pool() -> postgres_pool.PostgresConnectionPool:
    return postgres_pool.get_default_pool()


def _is_uuid(value: Any) -> bool:
    try:
        UUID(str(value))
    except ValueError:
        return False
    return True


_SCHEMA_COLUMNS = """
    id::text AS id, source_id::text AS source_id, api_version, schema_version,
    schema AS raw_schema, processed_schema, metadata, is_sensitive,
    security_classification, created_at, verified_at, last_accessed_at, access_count
"""


def _entry(row: asyncpg.Record) -> SchemaCacheEntry:
    return SchemaCacheEntry.model_validate(dict(row))


async def fetch_source(source_id: str) -> Optional[dict[str, Any]]:
    if not _is_uuid(source_id):
        return None
    row = await _pool().fetch_one(
        """
        SELECT id::text AS id, user_id, name, source_type, config
        FROM sources WHERE id = $1::uuid
        """,
        source_id,
    )
    return dict(row) if row else None


async def fetch_latest_schema(
    source_id: str, api_version: str
) -> Optional[SchemaCacheEntry]:
    row = await _pool().fetch_one(
        f"""
        SELECT {_SCHEMA_COLUMNS}
        FROM source_schemas
        WHERE source_id = $1::uuid AND api_version = $2
        ORDER BY schema_version DESC
        LIMIT 1
        """,
        source_id,
        api_version,
    )
    return _entry(row) if row else None


async def touch_schema(entry_id: str, *, verified: bool = False) -> None:
    """Bump access stats; `verified` also restarts the freshness window."""
    await _pool().execute_query(
        """
        UPDATE source_schemas
        SET last_accessed_at = now(),
            access_count = access_count + 1,
            verified_at = CASE WHEN $2 THEN now() ELSE verified_at END
        WHERE id = $1::uuid
        """,
        entry_id,
        verified,
    )


async def insert_schema_version(
    *,
    source_id: str,
    api_version: str,
    schema_version: int,
    raw_schema: dict[str, Any],
    processed_schema: dict[str, Any],
    metadata: dict[str, Any],
    is_sensitive: bool,
    classification: SecurityClassification,
) -> SchemaCacheEntry:
    """
    Insert a new version row. If a concurrent writer already stored this
    version, that row is returned instead.
    """
    try:
        row = await _pool().fetch_one(
            f"""
            INSERT INTO source_schemas (
                source_id, api_version, schema_version, schema, processed_schema,
                metadata, is_sensitive, security_classification,
                last_accessed_at, access_count
            )
            VALUES ($1::uuid, $2, $3, $4::jsonb, $5::jsonb, $6::jsonb, $7, $8, now(), 1)
            RETURNING {_SCHEMA_COLUMNS}
            """,
            source_id,
            api_version,
            schema_version,
            raw_schema,
            processed_schema,
            metadata,
            is_sensitive,
            classification.value,
        )
        return _entry(row)
    except asyncpg.UniqueViolationError:
        latest = await fetch_latest_schema(source_id, api_version)
        if latest is None:
            raise
        return latest


async def user_has_any_role(user_id: str, roles: Iterable[str]) -> bool:
    return bool(
        await _pool().fetch_val(
            """
            SELECT EXISTS (
                SELECT 1 FROM user_roles WHERE user_id = $1 AND role = ANY($2::text[])
            )
            """,
            user_id,
            list(roles),
        )
    )


async def has_source_grant(source_id: str, user_id: str) -> bool:
    return bool(
        await _pool().fetch_val(
            """
            SELECT EXISTS (
                SELECT 1 FROM source_access_grants
                WHERE source_id = $1::uuid AND user_id = $2
            )
            """,
            source_id,
            user_id,
        )
    )
