"""
Discount application decoding and the discount usage summary processor.

Shopify reports an order's discount applications as an interface with one
concrete type per origin. Each `__typename` has exactly one decoder; a
variant added to `DiscountApplication` without a decoder fails at import,
and an unknown typename from the provider raises instead of being counted
under a catch-all label.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, ClassVar, Optional, Union, get_args

from shopdata.core.errors import ShopdataError

logger = logging.getLogger(__name__)


class UnknownDiscountApplicationError(ShopdataError):
    def __init__(self, typename: Optional[str], order_id: Optional[str] = None):
        message = f"Unknown discount application type: {typename!r}"
        if order_id is not None:
            message += f" on order {order_id}"
        super().__init__(message)
        self.typename = typename
        self.order_id = order_id


@dataclass(frozen=True, slots=True)
class DiscountValue:
    amount: Optional[Decimal] = None
    currency_code: Optional[str] = None
    percentage: Optional[float] = None


@dataclass(frozen=True, slots=True)
class DiscountCodeApplication:
    kind: ClassVar[str] = "code"
    code: str
    value: DiscountValue

    @property
    def label(self) -> str:
        return self.code


@dataclass(frozen=True, slots=True)
class ManualDiscountApplication:
    kind: ClassVar[str] = "manual"
    title: str
    value: DiscountValue

    @property
    def label(self) -> str:
        return self.title


@dataclass(frozen=True, slots=True)
class ScriptDiscountApplication:
    kind: ClassVar[str] = "script"
    title: str
    value: DiscountValue

    @property
    def label(self) -> str:
        return self.title


@dataclass(frozen=True, slots=True)
class AutomaticDiscountApplication:
    kind: ClassVar[str] = "automatic"
    title: str
    value: DiscountValue

    @property
    def label(self) -> str:
        return self.title


DiscountApplication = Union[
    DiscountCodeApplication,
    ManualDiscountApplication,
    ScriptDiscountApplication,
    AutomaticDiscountApplication,
]

_DECODERS: dict[str, Callable[[dict[str, Any]], DiscountApplication]] = {}


def _decoder(typename: str):
    def register(fn: Callable[[dict[str, Any]], DiscountApplication]):
        _DECODERS[typename] = fn
        return fn

    return register


def _decode_value(node: dict[str, Any]) -> DiscountValue:
    value = node.get("value") or {}
    if "percentage" in value:
        return DiscountValue(percentage=float(value["percentage"]))
    if "amount" in value:
        try:
            amount = Decimal(str(value["amount"]))
        except InvalidOperation:
            amount = None
        return DiscountValue(amount=amount, currency_code=value.get("currencyCode"))
    return DiscountValue()


@_decoder("DiscountCodeApplication")
def _decode_code(node: dict[str, Any]) -> DiscountCodeApplication:
    return DiscountCodeApplication(code=node.get("code") or "", value=_decode_value(node))


@_decoder("ManualDiscountApplication")
def _decode_manual(node: dict[str, Any]) -> ManualDiscountApplication:
    return ManualDiscountApplication(
        title=node.get("title") or "Manual discount", value=_decode_value(node)
    )


@_decoder("ScriptDiscountApplication")
def _decode_script(node: dict[str, Any]) -> ScriptDiscountApplication:
    return ScriptDiscountApplication(
        title=node.get("title") or "Script discount", value=_decode_value(node)
    )


@_decoder("AutomaticDiscountApplication")
def _decode_automatic(node: dict[str, Any]) -> AutomaticDiscountApplication:
    return AutomaticDiscountApplication(
        title=node.get("title") or "Automatic discount", value=_decode_value(node)
    )


_undecoded = {cls.__name__ for cls in get_args(DiscountApplication)} - set(_DECODERS)
if _undecoded:
    raise RuntimeError(f"Discount variants without a decoder: {sorted(_undecoded)}")


def decode_discount_application(node: dict[str, Any]) -> DiscountApplication:
    typename = node.get("__typename")
    decoder = _DECODERS.get(typename or "")
    if decoder is None:
        raise UnknownDiscountApplicationError(typename)
    return decoder(node)


def _application_nodes(order: dict[str, Any]) -> list[dict[str, Any]]:
    apps = order.get("discountApplications") or {}
    if isinstance(apps, list):
        return [a for a in apps if isinstance(a, dict)]
    if "edges" in apps:
        return [
            e["node"]
            for e in apps.get("edges") or []
            if isinstance(e, dict) and e.get("node")
        ]
    return [n for n in apps.get("nodes") or [] if isinstance(n, dict)]


def _order_discount_total(order: dict[str, Any]) -> tuple[Decimal, Optional[str]]:
    money = (order.get("totalDiscountsSet") or {}).get("shopMoney") or {}
    try:
        return Decimal(str(money.get("amount", "0"))), money.get("currencyCode")
    except InvalidOperation:
        return Decimal("0"), money.get("currencyCode")


def discount_usage_summary(orders: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """
    One row per discount, sorted by usage.

    Fixed-amount applications contribute their own amount. Percentage
    applications split the rest of the order's total discount equally.
    """
    usage: dict[tuple[str, str], int] = defaultdict(int)
    order_ids: dict[tuple[str, str], set[str]] = defaultdict(set)
    totals: dict[tuple[str, str], Decimal] = defaultdict(Decimal)
    currency: dict[tuple[str, str], Optional[str]] = {}

    for index, order in enumerate(orders):
        order_id = str(order.get("id") or index)
        nodes = _application_nodes(order)
        if not nodes:
            continue
        try:
            apps = [decode_discount_application(node) for node in nodes]
        except UnknownDiscountApplicationError as e:
            logger.error("Order %s has an undecodable discount application: %s", order_id, e)
            raise UnknownDiscountApplicationError(e.typename, order_id=order_id) from e

        order_total, order_currency = _order_discount_total(order)
        fixed_total = sum(
            (app.value.amount for app in apps if app.value.amount is not None), Decimal("0")
        )
        # Percentage applications split what the fixed amounts do not account for.
        unpriced = [app for app in apps if app.value.amount is None]
        remainder = max(order_total - fixed_total, Decimal("0"))
        share = remainder / len(unpriced) if unpriced else Decimal("0")

        for app in apps:
            key = (app.kind, app.label)
            usage[key] += 1
            order_ids[key].add(order_id)
            if app.value.amount is not None:
                totals[key] += app.value.amount
                currency.setdefault(key, app.value.currency_code or order_currency)
            else:
                totals[key] += share
                currency.setdefault(key, order_currency)

    rows = []
    for key, count in usage.items():
        kind, label = key
        order_count = len(order_ids[key])
        total = totals[key]
        rows.append(
            {
                "discount": label,
                "discountType": kind,
                "usageCount": count,
                "orderCount": order_count,
                "totalDiscountAmount": float(round(total, 2)),
                "currencyCode": currency.get(key),
                "avgDiscountPerOrder": float(round(total / order_count, 2))
                if order_count
                else 0.0,
            }
        )

    rows.sort(key=lambda r: (-r["usageCount"], r["discount"]))
    logger.debug("Discount usage summary: %d discounts from %d orders", len(rows), len(orders))
    return rows
