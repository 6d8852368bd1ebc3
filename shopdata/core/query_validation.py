"""
Custom query validation.

A user-written query, or one generated from a resource type and a field list,
is prepared for cursor pagination and run once against its source with
`first: 1`. GraphQL errors and unusable documents make the query invalid;
transport and HTTP failures propagate as provider errors.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Optional, Sequence

from shopdata.connectors.shopify_client import ShopifyConfig, ShopifyGraphQLClient
from shopdata.core.errors import (
    ConnectionNotFoundError,
    GraphQLResponseError,
    QueryRewriteError,
    SourceNotFoundError,
    ValidationError,
)
from shopdata.core.pagination import GraphQLRequester, locate_connection
from shopdata.core.query_rewriter import FIRST, prepare_paginated_query
from shopdata.core.schema import store as schema_store
from shopdata.core.schema.access import check_source_access
from shopdata.models import QueryValidationResult

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ShopifyConfig], ShopifyGraphQLClient]

_GRAPHQL_NAME = re.compile(r"^[_A-Za-z][_0-9A-Za-z]*$")


def build_connection_query(resource_type: str, fields: Sequence[str]) -> str:
    """
    Paginated query selecting `fields` on the nodes of the root connection
    `resource_type`. Entries of `fields` may be nested selections.
    """
    if not _GRAPHQL_NAME.match(resource_type or ""):
        raise ValidationError(f"Invalid resource type {resource_type!r}")
    selection = [f.strip() for f in fields if f and f.strip()]
    if not selection:
        raise ValidationError("At least one field must be selected")
    node_fields = "\n        ".join(selection)
    name = resource_type[0].upper() + resource_type[1:]
    return (
        f"query Get{name}($first: Int!, $after: String) {{\n"
        f"  {resource_type}(first: $first, after: $after) {{\n"
        "    pageInfo { hasNextPage endCursor }\n"
        "    edges {\n"
        "      node {\n"
        f"        {node_fields}\n"
        "      }\n"
        "    }\n"
        "  }\n"
        "}\n"
    )


def _invalid(query: str, generated: bool, error: str) -> QueryValidationResult:
    return QueryValidationResult(valid=False, query=query, generated=generated, error=error)


async def validate_query(
    client: GraphQLRequester,
    *,
    query: Optional[str] = None,
    resource_type: Optional[str] = None,
    fields: Optional[Sequence[str]] = None,
) -> QueryValidationResult:
    """
    Run a custom query for a single row.

    Raises:
        ValidationError: neither a query nor a resource type with fields given
        ProviderError: the request itself failed (transport, HTTP, body)
    """
    text = (query or "").strip()
    generated = False
    if not text:
        if not resource_type or not fields:
            raise ValidationError(
                "Either a query or resourceType and fields must be provided"
            )
        text = build_connection_query(resource_type, fields)
        generated = True

    try:
        prepared = prepare_paginated_query(text, resource_type)
    except QueryRewriteError as e:
        return _invalid(text, generated, str(e))

    variables = {FIRST: 1} if FIRST in prepared.variables else {}
    try:
        data = await client.post(prepared.query, variables)
    except GraphQLResponseError as e:
        logger.info("Custom query rejected by Shopify: %s", e)
        first = e.errors[0] if e.errors else {}
        message = first.get("message") if isinstance(first, dict) else None
        return _invalid(prepared.query, generated, message or str(e))

    try:
        locate_connection(data, prepared.connection_path, prepared.connection_field)
    except ConnectionNotFoundError as e:
        return _invalid(prepared.query, generated, str(e))

    return QueryValidationResult(
        valid=True,
        query=prepared.query,
        generated=generated,
        connection_path=list(prepared.connection_path),
        sample_data=data,
    )


def _default_client_factory(config: ShopifyConfig) -> ShopifyGraphQLClient:
    return ShopifyGraphQLClient(config)


class QueryValidator:
    """Resolves the source and its credentials, then validates against it."""

    def __init__(
        self, store: Any = schema_store, client_factory: Optional[ClientFactory] = None
    ) -> None:
        self._store = store
        self._client_factory = client_factory or _default_client_factory

    async def validate(
        self,
        source_id: str,
        user_id: str,
        *,
        query: Optional[str] = None,
        resource_type: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
    ) -> QueryValidationResult:
        """
        Raises:
            SourceNotFoundError: unknown source
            SchemaAccessDeniedError: caller fails the access gate
            ValidationError: not a Shopify source, missing credentials or input
            ProviderError: the request itself failed
        """
        source = await self._store.fetch_source(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        await check_source_access(self._store, user_id, source)

        source_type = (source.get("source_type") or "shopify").lower()
        if source_type != "shopify":
            raise ValidationError("Only Shopify sources are supported for custom queries")

        config = ShopifyConfig.from_source_config(source.get("config") or {})
        async with self._client_factory(config) as client:
            result = await validate_query(
                client, query=query, resource_type=resource_type, fields=fields
            )
        logger.info(
            "Validated custom query for source %s: valid=%s generated=%s",
            source_id,
            result.valid,
            result.generated,
        )
        return result


query_validator = QueryValidator()
