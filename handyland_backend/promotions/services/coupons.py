# promotions/services/coupons.py

"""
COUPON EVALUATION

evaluate_coupon() is read-only: it decides the discount for a subtotal.
Usage is recorded separately (record_coupon_use) once the order is paid,
so abandoned checkouts never burn a limited coupon.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.db.models import F, Q
from django.utils import timezone

from ledger.services.money import TWOPLACES, money
from promotions.models import Coupon
from promotions.services.exceptions import CouponInvalid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CouponQuote:
    code: str
    discount: Decimal


def normalize_code(code) -> str:
    return str(code or "").strip().upper()


def _discount_for(coupon: Coupon, subtotal: Decimal) -> Decimal:
    if coupon.discount_type == Coupon.TYPE_PERCENTAGE:
        discount = (subtotal * money(coupon.discount_value) / Decimal("100")).quantize(
            TWOPLACES, rounding=ROUND_HALF_UP
        )
        if coupon.max_discount is not None:
            discount = min(discount, money(coupon.max_discount))
    else:
        discount = money(coupon.discount_value)

    return max(Decimal("0.00"), min(discount, subtotal))


def evaluate_coupon(code, subtotal, *, now=None) -> CouponQuote | None:
    """
    Returns None for a blank code.
    Raises CouponInvalid (with a reason) when a claimed code does not apply.
    """
    normalized = normalize_code(code)
    if not normalized:
        return None

    now = now or timezone.now()
    subtotal = money(subtotal)

    coupon = Coupon.objects.filter(code=normalized).first()
    if coupon is None:
        raise CouponInvalid(
            "Invalid coupon code", code=normalized, reason=CouponInvalid.REASON_NOT_FOUND
        )

    if not coupon.is_active:
        raise CouponInvalid(
            "Coupon is no longer active",
            code=normalized,
            reason=CouponInvalid.REASON_INACTIVE,
        )

    if coupon.valid_from and now < coupon.valid_from:
        raise CouponInvalid(
            "Coupon is not valid yet",
            code=normalized,
            reason=CouponInvalid.REASON_NOT_STARTED,
        )

    if coupon.valid_until and now > coupon.valid_until:
        raise CouponInvalid(
            "Coupon has expired", code=normalized, reason=CouponInvalid.REASON_EXPIRED
        )

    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponInvalid(
            "Coupon usage limit reached",
            code=normalized,
            reason=CouponInvalid.REASON_EXHAUSTED,
        )

    if subtotal < money(coupon.min_order_value):
        raise CouponInvalid(
            f"Minimum order value for this coupon is {money(coupon.min_order_value)}",
            code=normalized,
            reason=CouponInvalid.REASON_MIN_ORDER,
        )

    return CouponQuote(code=normalized, discount=_discount_for(coupon, subtotal))


def record_coupon_use(code) -> bool:
    """
    Increment used_count under the usage cap.
    False when the code is unknown or the cap was already reached.
    """
    normalized = normalize_code(code)
    if not normalized:
        return False

    updated = (
        Coupon.objects.filter(code=normalized)
        .filter(Q(usage_limit__isnull=True) | Q(used_count__lt=F("usage_limit")))
        .update(used_count=F("used_count") + 1)
    )

    if not updated:
        logger.warning(
            "Coupon use not recorded",
            extra={"coupon_code": normalized},
        )
    return updated == 1
