"""
Derived money figures for requisitions and purchase orders.

Everything here is a pure function of the snapshot it is handed: nothing is
cached and nothing is written back. Line items and requisitions may be given
as models or as plain documents (dicts), so the same helpers serve the
services, the API and the PO document export.
"""
import math
from typing import Any, Iterable, Tuple


def _field(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def to_amount(value: Any, minimum: float = 0.0) -> float:
    """Numeric value of `value`, clamped at `minimum`. Garbage counts as `minimum`."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return minimum
    if not math.isfinite(number):
        return minimum
    return max(minimum, number)


def round_money(amount: float) -> float:
    return round(amount, 2)


def line_subtotal(item: Any) -> float:
    qty = to_amount(_field(item, "qty"))
    unit_cost = to_amount(_field(item, "unit_cost"))
    return round_money(qty * unit_cost)


def items_subtotal(items: Iterable[Any]) -> float:
    return round_money(sum(line_subtotal(item) for item in items or []))


def requisition_subtotal(requisition: Any) -> float:
    """Σ(qty × unit_cost) over the requisition's items. Never fails."""
    return items_subtotal(_field(requisition, "items", []))


def selection_total(requisitions: Iterable[Any]) -> float:
    """Running total of a prospective PO, before shipping."""
    return round_money(sum(requisition_subtotal(r) for r in requisitions))


def po_totals(items: Iterable[Any], shipping_cost: Any) -> Tuple[float, float, float]:
    """Returns (subtotal, shipping, total) for a purchase order."""
    subtotal = items_subtotal(items)
    shipping = round_money(to_amount(shipping_cost))
    return subtotal, shipping, round_money(subtotal + shipping)
