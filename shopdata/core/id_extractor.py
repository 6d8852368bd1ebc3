"""
Entity id extraction from nested result rows.
"""

from __future__ import annotations

from typing import Any, Iterable

_MISSING = object()


def _step(value: Any, segment: str) -> Any:
    if isinstance(value, list):
        # Map over every element and flatten one level; missing keys drop out.
        out: list[Any] = []
        for element in value:
            if not isinstance(element, dict) or segment not in element:
                continue
            child = element[segment]
            if isinstance(child, list):
                out.extend(child)
            else:
                out.append(child)
        return out
    if isinstance(value, dict) and segment in value:
        return value[segment]
    return _MISSING


def extract_ids(results: Iterable[dict[str, Any]], id_path: str) -> list[str]:
    """
    Collect the distinct string ids found at `id_path` in each result row.

    `id_path` is dot-delimited (e.g. ``variants.edges.node.id``). Whenever a
    segment lands on an array, the next segment is applied to each element.
    Rows missing a segment contribute nothing. Ids are returned in first-seen
    order.
    """
    segments = [s for s in id_path.split(".") if s]
    seen: dict[str, None] = {}

    for item in results:
        current: Any = item
        for segment in segments:
            current = _step(current, segment)
            if current is _MISSING or current is None:
                break
        else:
            if isinstance(current, str):
                seen.setdefault(current, None)
            elif isinstance(current, list):
                for value in current:
                    if isinstance(value, str):
                        seen.setdefault(value, None)

    return list(seen)
