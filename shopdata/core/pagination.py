"""
GraphQL cursor pagination executor.

Drives `first`/`after` pagination of a single connection through the client's
request primitive. Requests are strictly sequential with a fixed pause between
pages; any provider error aborts the whole run with no partial result.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from shopdata.config import settings
from shopdata.core.errors import ConnectionNotFoundError, ValidationError
from shopdata.core.query_rewriter import AFTER, FIRST, prepare_paginated_query

logger = logging.getLogger(__name__)


class GraphQLRequester(Protocol):
    async def post(
        self, query: str, variables: Optional[dict[str, Any]] = None
    ) -> dict[str, Any]: ...


def _is_connection(value: Any) -> bool:
    return isinstance(value, dict) and "edges" in value and "pageInfo" in value


def find_connection(data: Any) -> Optional[dict[str, Any]]:
    """Depth-first search for the first object exposing `edges` and `pageInfo`."""
    if _is_connection(data):
        return data
    if isinstance(data, dict):
        children = data.values()
    elif isinstance(data, list):
        children = data
    else:
        return None
    for child in children:
        found = find_connection(child)
        if found is not None:
            return found
    return None


def _follow_path(data: Any, path: tuple[str, ...]) -> Optional[dict[str, Any]]:
    current = data
    for key in path:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current if _is_connection(current) else None


def locate_connection(
    data: dict[str, Any],
    connection_path: tuple[str, ...] = (),
    connection_field: Optional[str] = None,
) -> dict[str, Any]:
    """
    Find the connection object in a response.

    Tries the path known from the query document, then a top-level key named
    `connection_field`, then a depth-first scan.
    """
    if connection_path:
        found = _follow_path(data, connection_path)
        if found is not None:
            return found
    if connection_field and _is_connection(data.get(connection_field)):
        return data[connection_field]
    found = find_connection(data)
    if found is None:
        raise ConnectionNotFoundError(
            "Could not find a connection (edges + pageInfo) in the response"
        )
    return found


async def paginate(
    client: GraphQLRequester,
    query: str,
    variables: Optional[dict[str, Any]] = None,
    max_items: Optional[int] = None,
    *,
    connection_field: Optional[str] = None,
    delay_seconds: Optional[float] = None,
) -> list[dict[str, Any]]:
    """
    Fetch every node of a connection, up to `max_items`.

    Page size is `min(SHOPIFY_MAX_PAGE_SIZE, max_items - collected)`. Errors
    from the client propagate unchanged; nothing is retried here.

    Args:
        client: Object exposing the `post(query, variables)` primitive
        query: GraphQL document; `$first`/`$after` are injected when absent
        variables: Extra variables sent with every page
        max_items: Global cap on returned nodes (default DEFAULT_MAX_ITEMS)
        connection_field: Name of the connection field (e.g. "products")
        delay_seconds: Pause between pages (default SHOPIFY_REQUEST_DELAY_SECONDS)

    Returns:
        Nodes in page order, `len(result) <= max_items`
    """
    limit = settings.DEFAULT_MAX_ITEMS if max_items is None else max_items
    if limit <= 0:
        raise ValidationError(f"max_items must be positive, got {limit}")
    delay = (
        settings.SHOPIFY_REQUEST_DELAY_SECONDS if delay_seconds is None else delay_seconds
    )

    prepared = prepare_paginated_query(query, connection_field)
    base_variables = dict(variables or {})

    items: list[dict[str, Any]] = []
    cursor: Optional[str] = None
    has_next_page = True
    page = 0

    while has_next_page and len(items) < limit:
        page += 1
        page_size = min(settings.SHOPIFY_MAX_PAGE_SIZE, limit - len(items))
        page_variables = dict(base_variables)
        if FIRST in prepared.variables:
            page_variables[FIRST] = page_size
        if AFTER in prepared.variables:
            page_variables[AFTER] = cursor

        data = await client.post(prepared.query, page_variables)
        connection = locate_connection(
            data, prepared.connection_path, connection_field
        )

        nodes = [
            edge["node"]
            for edge in connection.get("edges") or []
            if isinstance(edge, dict) and edge.get("node") is not None
        ]
        items.extend(nodes)

        page_info = connection.get("pageInfo") or {}
        has_next_page = bool(page_info.get("hasNextPage"))
        cursor = page_info.get("endCursor")
        if has_next_page and not cursor:
            logger.warning(
                "Page %d reports hasNextPage without an endCursor; stopping", page
            )
            has_next_page = False

        logger.debug(
            "Page %d: %d nodes (total %d, has_next=%s)",
            page,
            len(nodes),
            len(items),
            has_next_page,
        )

        if has_next_page and len(items) < limit and delay > 0:
            await asyncio.sleep(delay)

    logger.info(
        "Pagination of %s finished: %d items in %d pages",
        prepared.connection_field,
        min(len(items), limit),
        page,
    )
    return items[:limit]
