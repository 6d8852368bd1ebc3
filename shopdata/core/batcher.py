"""
Secondary query batching.

Runs a `nodes(ids: {{IDS}})` style template once per fixed-size batch of ids
through the same request primitive the pagination executor uses.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Iterator, Optional, Sequence

from shopdata.config import settings
from shopdata.core.errors import ValidationError
from shopdata.core.pagination import GraphQLRequester
from shopdata.models.dataset import IDS_PLACEHOLDER

logger = logging.getLogger(__name__)


def chunked(ids: Sequence[str], size: int) -> Iterator[list[str]]:
    for start in range(0, len(ids), size):
        yield list(ids[start : start + size])


def render_batch_query(template: str, batch: Sequence[str]) -> str:
    return template.replace(IDS_PLACEHOLDER, json.dumps(list(batch)))


def _nodes_from(data: dict[str, Any]) -> list[dict[str, Any]]:
    """`nodes` of the first root field, ids the provider could not resolve dropped."""
    if not data:
        return []
    first_root = next(iter(data.values()))
    if isinstance(first_root, dict):
        nodes = first_root.get("nodes")
    elif isinstance(first_root, list):
        # `nodes(ids: [...])` at the root returns the list directly.
        nodes = first_root
    else:
        nodes = None
    return [n for n in nodes or [] if n is not None]


async def run_batched(
    client: GraphQLRequester,
    query_template: str,
    ids: Sequence[str],
    batch_size: Optional[int] = None,
    *,
    delay_seconds: Optional[float] = None,
) -> list[dict[str, Any]]:
    """
    Execute the secondary template for every batch of ids, in order.

    Each batch is a single request (no pagination). Any batch error aborts the
    whole run. Batches that come back without data are skipped.
    """
    size = settings.SECONDARY_BATCH_SIZE if batch_size is None else batch_size
    if size <= 0:
        raise ValidationError(f"batch_size must be positive, got {size}")
    if IDS_PLACEHOLDER not in query_template:
        raise ValidationError(f"Secondary query must contain {IDS_PLACEHOLDER}")
    delay = (
        settings.SHOPIFY_REQUEST_DELAY_SECONDS if delay_seconds is None else delay_seconds
    )

    batches = list(chunked(list(ids), size))
    results: list[dict[str, Any]] = []

    for index, batch in enumerate(batches, 1):
        data = await client.post(render_batch_query(query_template, batch))
        if not data:
            logger.warning("Secondary batch %d/%d returned no data", index, len(batches))
        else:
            nodes = _nodes_from(data)
            results.extend(nodes)
            logger.debug(
                "Secondary batch %d/%d: %d ids -> %d nodes",
                index,
                len(batches),
                len(batch),
                len(nodes),
            )

        if index < len(batches) and delay > 0:
            await asyncio.sleep(delay)

    return results
