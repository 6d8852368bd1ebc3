"""
Primary/secondary result merging.

The join key is fixed: `primary["id"] == secondary["primaryId"]`. Secondary
templates alias their foreign key as `primaryId`.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from shopdata.models.dataset import MergeStrategy

logger = logging.getLogger(__name__)

PRIMARY_KEY = "id"
FOREIGN_KEY = "primaryId"

Row = dict[str, Any]
MergeFn = Callable[[list[Row], dict[Any, list[Row]]], list[Row]]


def _index_secondary(secondary: list[Row]) -> dict[Any, list[Row]]:
    by_primary: dict[Any, list[Row]] = defaultdict(list)
    for row in secondary:
        if FOREIGN_KEY in row:
            by_primary[row[FOREIGN_KEY]].append(row)
    return by_primary


def _merge_nested(primary: list[Row], index: dict[Any, list[Row]]) -> list[Row]:
    return [
        {**item, "secondaryData": list(index.get(item.get(PRIMARY_KEY), []))}
        for item in primary
    ]


def _merge_flat(primary: list[Row], index: dict[Any, list[Row]]) -> list[Row]:
    merged: list[Row] = []
    for item in primary:
        related = index.get(item.get(PRIMARY_KEY), [])
        if not related:
            merged.append({**item, "hasSecondaryData": False})
            continue
        for sec in related:
            merged.append({**item, **sec, "hasSecondaryData": True})
    return merged


def _merge_reference(primary: list[Row], index: dict[Any, list[Row]]) -> list[Row]:
    return primary


_STRATEGIES: dict[MergeStrategy, MergeFn] = {
    MergeStrategy.NESTED: _merge_nested,
    MergeStrategy.FLAT: _merge_flat,
    MergeStrategy.REFERENCE: _merge_reference,
}


def _warn_on_missing_keys(
    primary: list[Row], secondary: list[Row], strategy: MergeStrategy
) -> None:
    if strategy is MergeStrategy.REFERENCE or not primary or not secondary:
        return
    if not any(FOREIGN_KEY in row for row in secondary):
        logger.warning(
            "%s merge: no secondary row has %r; every join will be empty",
            strategy.value,
            FOREIGN_KEY,
        )
    if not any(PRIMARY_KEY in row for row in primary):
        logger.warning(
            "%s merge: no primary row has %r; every join will be empty",
            strategy.value,
            PRIMARY_KEY,
        )


def resolve_strategy(name: str | MergeStrategy | None) -> MergeStrategy:
    if isinstance(name, MergeStrategy):
        return name
    try:
        return MergeStrategy(str(name or "").strip().lower())
    except ValueError:
        logger.warning("Unknown merge strategy %r, using reference", name)
        return MergeStrategy.REFERENCE


def merge(
    primary: list[Row], secondary: list[Row], strategy: str | MergeStrategy | None
) -> list[Row]:
    """
    Combine primary and secondary rows.

    - nested: every primary row gains `secondaryData` (possibly empty list)
    - flat: one row per (primary, related secondary) pair; unmatched primaries
      are kept with `hasSecondaryData: False`
    - reference (and unknown names): primary unchanged
    """
    resolved = resolve_strategy(strategy)
    _warn_on_missing_keys(primary, secondary, resolved)
    return _STRATEGIES[resolved](primary, _index_secondary(secondary))
