"""
Result processors for predefined templates.

A predefined template may name a processor in `result_processor`; its output
replaces the raw node list as the execution's data.
"""

from typing import Any, Callable

from shopdata.core.predefined.discounts import discount_usage_summary

ResultProcessor = Callable[[list[dict[str, Any]]], list[dict[str, Any]]]

RESULT_PROCESSORS: dict[str, ResultProcessor] = {
    "discount_usage_summary": discount_usage_summary,
}


def get_result_processor(name: str) -> ResultProcessor:
    try:
        return RESULT_PROCESSORS[name]
    except KeyError:
        raise KeyError(f"Unknown result processor: {name}") from None
