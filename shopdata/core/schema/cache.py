"""
Versioned schema cache.

Per (source, api version): serve the newest row while it is fresh; otherwise
introspect, hash, and only write a new version when the structural hash
changed.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from shopdata.config import settings
from shopdata.connectors.shopify_client import (
    ShopifyConfig,
    ShopifyGraphQLClient,
    detect_latest_api_version,
)
from shopdata.core.errors import SourceNotFoundError, ValidationError
from shopdata.core.schema import store as schema_store
from shopdata.core.schema.access import check_source_access
from shopdata.core.schema.hashing import compute_schema_hash
from shopdata.core.schema.introspection import fetch_introspection
from shopdata.core.schema.processors import get_processor
from shopdata.core.schema.security import (
    redact_processed_schema,
    redact_sensitive_info,
    scan_schema,
)
from shopdata.models import SchemaCacheEntry, SchemaResult

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ShopifyConfig], ShopifyGraphQLClient]
VersionDetector = Callable[[ShopifyConfig], Awaitable[str]]


def _default_client_factory(config: ShopifyConfig) -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient(config)


def cache_ttl(source_config: dict[str, Any]) -> timedelta:
    days = source_config.get("schemaCacheTtlDays")
    try:
        days = float(days) if days is not None else settings.SCHEMA_CACHE_TTL_DAYS
    except (TypeError, ValueError):
        days = settings.SCHEMA_CACHE_TTL_DAYS
    return timedelta(days=days)


class SchemaService:
    def __init__(
        self,
        store: Any = schema_store,
        client_factory: Optional[ClientFactory] = None,
        version_detector: Optional[VersionDetector] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._store = store
        self._client_factory = client_factory or _default_client_factory
        self._version_detector = version_detector or detect_latest_api_version
        self._clock = clock

    async def get_schema(
        self,
        source_id: str,
        user_id: str,
        api_version: Optional[str] = None,
        force_update: bool = False,
    ) -> SchemaResult:
        """
        Return the processed schema of a source.

        Raises:
            SourceNotFoundError: unknown source
            SchemaAccessDeniedError: caller fails the access gate
            ValidationError: source type cannot be introspected
            ProviderError: introspection failed
        """
        source = await self._store.fetch_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        elevated = await check_source_access(self._store, user_id, source)

        source_type = (source.get("source_type") or "shopify").lower()
        config = source.get("config") or {}
        if source_type != "shopify":
            raise ValidationError(
                f"Schema introspection is only supported for Shopify sources, "
                f"not {source_type!r}"
            )

        shopify_config = ShopifyConfig.from_source_config(config, api_version=api_version)
        if not (api_version or config.get("apiVersion") or config.get("api_version")):
            detected = await self._version_detector(shopify_config)
            shopify_config = shopify_config.model_copy(update={"api_version": detected})
        version = shopify_config.api_version

        latest = await self._store.fetch_latest_schema(source_id, version)
        ttl = cache_ttl(config)

        if (
            not force_update
            and latest is not None
            and latest.api_version == version
            and self._clock() - latest.fresh_since < ttl
        ):
            await self._store.touch_schema(latest.id)
            logger.debug(
                "Schema cache hit for %s@%s (v%d)", source_id, version, latest.schema_version
            )
            return self._result(latest, from_cache=True, elevated=elevated)

        logger.info(
            "Introspecting %s@%s (force=%s, cached=%s) with config %s",
            source_id,
            version,
            force_update,
            latest.schema_version if latest else None,
            redact_sensitive_info(config),
        )
        async with self._client_factory(shopify_config) as client:
            raw = await fetch_introspection(client)
        schema_hash = compute_schema_hash(raw)

        if latest is not None and latest.schema_hash == schema_hash:
            await self._store.touch_schema(latest.id, verified=True)
            logger.info(
                "Schema for %s@%s unchanged (v%d)", source_id, version, latest.schema_version
            )
            return self._result(latest, from_cache=False, elevated=elevated)

        processed = get_processor(source_type).process_schema(raw)
        processed_dict = processed.model_dump(mode="json", by_alias=True)
        scan = scan_schema(processed_dict)
        next_version = latest.schema_version + 1 if latest else 1

        entry = await self._store.insert_schema_version(
            source_id=source_id,
            api_version=version,
            schema_version=next_version,
            raw_schema=raw,
            processed_schema=processed_dict,
            metadata={
                **processed.metadata,
                "schema_hash": schema_hash,
                "previous_version": latest.schema_version if latest else None,
                "sensitive_matches": scan.matches,
            },
            is_sensitive=scan.is_sensitive,
            classification=scan.classification,
        )
        logger.info(
            "Stored schema v%d for %s@%s (%s)",
            entry.schema_version,
            source_id,
            version,
            entry.security_classification.value,
        )
        return self._result(entry, from_cache=False, elevated=elevated)

    @staticmethod
    def _result(entry: SchemaCacheEntry, *, from_cache: bool, elevated: bool) -> SchemaResult:
        schema = entry.processed_schema
        redacted = False
        if entry.security_classification.requires_redaction and not elevated:
            schema, redacted = redact_processed_schema(schema)
        return SchemaResult(
            schema=schema,
            from_cache=from_cache,
            version=entry.schema_version,
            api_version=entry.api_version,
            classification=entry.security_classification,
            is_sensitive=entry.is_sensitive,
            contains_redacted_content=redacted,
            has_full_access=elevated,
            metadata=entry.metadata,
            raw_schema=entry.raw_schema if elevated else None,
        )


schema_service = SchemaService()
