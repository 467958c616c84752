# promotions/services/shipping.py

"""
SHIPPING FEE LOOKUP

Rule (applied in order):
1) subtotal >= ORDERS["FREE_SHIPPING_THRESHOLD"]  -> 0.00
2) chosen active method                           -> its flat price
3) default method (cheapest active non-express)   -> its flat price
4) ORDERS["DEFAULT_SHIPPING_FEE"]
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings

from ledger.services.money import money
from promotions.models import ShippingMethod
from promotions.services.exceptions import UnknownShippingMethod


def _orders_setting(key: str, default: str) -> Decimal:
    orders = getattr(settings, "ORDERS", {}) or {}
    return money(orders.get(key, default))


def free_shipping_threshold() -> Decimal:
    return _orders_setting("FREE_SHIPPING_THRESHOLD", "100.00")


def default_shipping_method() -> ShippingMethod | None:
    return (
        ShippingMethod.objects.filter(is_active=True, is_express=False)
        .order_by("price", "id")
        .first()
    )


def resolve_shipping_method(shipping_method_id=None) -> ShippingMethod | None:
    if shipping_method_id in (None, ""):
        return default_shipping_method()

    try:
        pk = int(shipping_method_id)
    except (TypeError, ValueError) as exc:
        raise UnknownShippingMethod(
            f"Invalid shipping method: {shipping_method_id!r}"
        ) from exc

    method = ShippingMethod.objects.filter(pk=pk, is_active=True).first()
    if method is None:
        raise UnknownShippingMethod(f"Shipping method not available: {shipping_method_id}")
    return method


def shipping_fee_for(subtotal, *, method: ShippingMethod | None) -> Decimal:
    subtotal = money(subtotal)

    if subtotal >= free_shipping_threshold():
        return Decimal("0.00")

    if method is not None:
        return money(method.price)

    return _orders_setting("DEFAULT_SHIPPING_FEE", "5.99")
