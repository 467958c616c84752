# orders/services/order_service.py

"""
======================================================
PATH: orders/services/order_service.py
======================================================
ORDER CREATION (INTEGRITY VALIDATOR + AGGREGATE)

The canonical total is ALWAYS computed here, never trusted from the client:

    subtotal = Σ catalog_price × quantity        (prices read at call time)
    shipping = 0 if subtotal >= FREE_SHIPPING_THRESHOLD else flat method fee
    tax      = round(subtotal × TAX_RATE)
    discount = coupon discount (<= subtotal)
    total    = subtotal + shipping + tax - discount

Order of checks (side effects only after every check passed):
1) items / address / payment method          -> OrderValidationError
2) prices, shipping, coupon                   -> CouponInvalid
3) client total vs server total (tolerance)   -> OrderIntegrityError
4) atomic block:
     stock reservation (all-or-nothing)       -> InsufficientStockError
     order number + INSERT (retry on clash)   -> IdentifierExhausted
     items + initial history entry
5) confirmation mail on commit
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction
from django.utils import timezone

from catalog.services.stock import (
    CATALOG_MODELS,
    KIND_PRODUCT,
    Reservation,
    UnknownCatalogItem,
    get_active_item,
    reserve_all,
)
from ledger.services.money import TWOPLACES, decimal_to_minor, money
from orders.models import Order, OrderItem
from orders.services.exceptions import (
    IdentifierExhausted,
    OrderIntegrityError,
    OrderValidationError,
)
from orders.services.notifications import notify_order_created
from orders.services.order_lifecycle import append_status_entry
from orders.services.sequence import max_attempts, next_order_number
from promotions.services.coupons import evaluate_coupon
from promotions.services.exceptions import UnknownShippingMethod
from promotions.services.shipping import resolve_shipping_method, shipping_fee_for

logger = logging.getLogger(__name__)

PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")

ADDRESS_FIELDS = ("full_name", "email", "phone", "street", "city", "zip_code", "country")

PAYMENT_METHODS = {value for value, _label in Order.PAYMENT_METHOD_CHOICES}


# ============================================================
# QUOTE TYPES
# ============================================================


@dataclass(frozen=True)
class QuotedLine:
    kind: str
    item_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return money(self.unit_price * self.quantity)


@dataclass(frozen=True)
class OrderQuote:
    lines: list
    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    coupon_code: str = ""
    shipping_method: object = None


# ============================================================
# SETTINGS
# ============================================================


def _orders_settings() -> dict:
    return getattr(settings, "ORDERS", {}) or {}


def tax_rate() -> Decimal:
    return Decimal(str(_orders_settings().get("TAX_RATE") or "0"))


def total_tolerance() -> Decimal:
    return money(_orders_settings().get("TOTAL_TOLERANCE", "0.01"))


# ============================================================
# INPUT NORMALIZATION
# ============================================================


def _to_int_qty(value) -> int:
    if isinstance(value, bool):
        raise ValueError
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValueError


def normalize_items(items) -> list[tuple[str, uuid.UUID, int]]:
    """
    [{"item_type", "item_id", "quantity"}, ...] -> [(kind, uuid, qty)]
    Duplicate references are aggregated; first-seen order is kept.
    """
    if not items:
        raise OrderValidationError({"items": ["Order must contain at least one item."]})

    errors: dict[str, list[str]] = {}
    aggregated: dict[tuple[str, uuid.UUID], int] = {}

    for idx, raw in enumerate(items):
        raw = raw or {}
        kind = str(raw.get("item_type") or KIND_PRODUCT).strip().lower()
        if kind not in CATALOG_MODELS:
            errors.setdefault(f"items[{idx}].item_type", []).append(
                f"Unknown item type: {kind!r}"
            )
            continue

        try:
            item_id = uuid.UUID(str(raw.get("item_id")))
        except (ValueError, TypeError, AttributeError):
            errors.setdefault(f"items[{idx}].item_id", []).append("Invalid item id.")
            continue

        try:
            qty = _to_int_qty(raw.get("quantity"))
        except ValueError:
            errors.setdefault(f"items[{idx}].quantity", []).append(
                "Quantity must be a whole number."
            )
            continue

        if qty < 1:
            errors.setdefault(f"items[{idx}].quantity", []).append(
                "Quantity must be at least 1."
            )
            continue

        key = (kind, item_id)
        aggregated[key] = aggregated.get(key, 0) + qty

    if errors:
        raise OrderValidationError(errors)

    return [(kind, item_id, qty) for (kind, item_id), qty in aggregated.items()]


def validate_shipping_address(address) -> dict:
    if not isinstance(address, dict):
        raise OrderValidationError({"shipping_address": ["Shipping address is required."]})

    cleaned = {field: str(address.get(field) or "").strip() for field in ADDRESS_FIELDS}
    errors: dict[str, list[str]] = {}

    for field in ADDRESS_FIELDS:
        if not cleaned[field]:
            errors.setdefault(f"shipping_address.{field}", []).append("This field is required.")

    if cleaned["email"]:
        try:
            validate_email(cleaned["email"])
        except DjangoValidationError:
            errors.setdefault("shipping_address.email", []).append("Enter a valid email address.")

    phone = re.sub(r"[\s\-()]", "", cleaned["phone"])
    if cleaned["phone"] and not PHONE_RE.match(phone):
        errors.setdefault("shipping_address.phone", []).append("Enter a valid phone number.")
    cleaned["phone"] = phone

    if errors:
        raise OrderValidationError(errors)

    cleaned["email"] = cleaned["email"].lower()
    return cleaned


def _normalize_payment_method(method) -> str:
    m = str(method or "").strip().lower()
    if m not in PAYMENT_METHODS:
        raise OrderValidationError(
            {"payment_method": [f"Unsupported payment method: {method!r}"]}
        )
    return m


# ============================================================
# PRICING
# ============================================================


def quote_order(*, items, coupon_code=None, shipping_method_id=None, now=None) -> OrderQuote:
    """
    Server-side price computation. No side effects.
    """
    normalized = normalize_items(items)

    lines: list[QuotedLine] = []
    errors: dict[str, list[str]] = {}

    for kind, item_id, qty in normalized:
        try:
            item = get_active_item(kind=kind, item_id=item_id)
        except UnknownCatalogItem as exc:
            errors.setdefault("items", []).append(str(exc))
            continue

        lines.append(
            QuotedLine(
                kind=kind,
                item_id=item.pk,
                name=item.name,
                quantity=qty,
                unit_price=money(item.price),
            )
        )

    if errors:
        raise OrderValidationError(errors)

    try:
        method = resolve_shipping_method(shipping_method_id)
    except UnknownShippingMethod as exc:
        raise OrderValidationError({"shipping_method_id": [str(exc)]}) from exc

    subtotal = money(sum((line.line_total for line in lines), Decimal("0.00")))
    shipping_fee = shipping_fee_for(subtotal, method=method)
    tax = (subtotal * tax_rate()).quantize(TWOPLACES, rounding=ROUND_HALF_UP)

    coupon = evaluate_coupon(coupon_code, subtotal, now=now)
    discount = coupon.discount if coupon else Decimal("0.00")

    total = money(subtotal + shipping_fee + tax - discount)
    if total <= 0:
        raise OrderValidationError(
            {"coupon_code": ["Order total must be greater than zero after discounts"]}
        )

    return OrderQuote(
        lines=lines,
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        tax=tax,
        discount=discount,
        total=total,
        coupon_code=coupon.code if coupon else "",
        shipping_method=method,
    )


def check_client_total(*, quote: OrderQuote, client_total) -> None:
    if client_total is None or client_total == "":
        return

    claimed = money(client_total)
    if abs(claimed - quote.total) <= total_tolerance():
        return

    logger.warning(
        "Order total mismatch (possible tampering)",
        extra={
            "server_total": str(quote.total),
            "client_total": str(claimed),
            "tolerance": str(total_tolerance()),
        },
    )
    raise OrderIntegrityError(
        f"Order total mismatch: expected {quote.total}, received {claimed}",
        server_total=quote.total,
        client_total=claimed,
    )


# ============================================================
# CREATE
# ============================================================


def _insert_order(*, now, **fields) -> Order:
    """INSERT with a fresh order number; a clashing number is re-allocated."""
    attempts = max_attempts()
    last_exc: Exception | None = None

    for attempt in range(1, attempts + 1):
        order_number = next_order_number(now)
        try:
            with transaction.atomic():
                return Order.objects.create(order_number=order_number, **fields)
        except IntegrityError as exc:
            if not Order.objects.filter(order_number=order_number).exists():
                raise
            last_exc = exc
            logger.warning(
                "Order number collision; re-allocating",
                extra={"order_number": order_number, "attempt": attempt},
            )

    raise IdentifierExhausted(
        f"Could not allocate a unique order number after {attempts} attempts"
    ) from last_exc


def create_order(
    *,
    actor,
    items,
    shipping_address,
    payment_method,
    coupon_code=None,
    shipping_method_id=None,
    client_total=None,
    notes: str = "",
    now=None,
) -> Order:
    now = now or timezone.now()

    address = validate_shipping_address(shipping_address)
    method = _normalize_payment_method(payment_method)
    quote = quote_order(
        items=items,
        coupon_code=coupon_code,
        shipping_method_id=shipping_method_id,
        now=now,
    )
    check_client_total(quote=quote, client_total=client_total)

    user = actor if getattr(actor, "is_authenticated", False) else None

    subtotal_minor = decimal_to_minor(quote.subtotal)
    shipping_minor = decimal_to_minor(quote.shipping_fee)
    tax_minor = decimal_to_minor(quote.tax)
    discount_minor = decimal_to_minor(quote.discount)

    with transaction.atomic():
        reserve_all(
            [
                Reservation(
                    kind=line.kind,
                    item_id=line.item_id,
                    quantity=line.quantity,
                    name=line.name,
                )
                for line in quote.lines
            ]
        )

        order = _insert_order(
            now=now,
            user=user,
            shipping_address=address,
            payment_method=method,
            subtotal_minor=subtotal_minor,
            shipping_fee_minor=shipping_minor,
            tax_minor=tax_minor,
            discount_minor=discount_minor,
            total_minor=subtotal_minor + shipping_minor + tax_minor - discount_minor,
            coupon_code=quote.coupon_code,
            shipping_method=quote.shipping_method,
            notes=(notes or "").strip(),
        )

        for line in quote.lines:
            OrderItem.objects.create(
                order=order,
                item_type=line.kind,
                item_id=line.item_id,
                name=line.name,
                quantity=line.quantity,
                unit_price_minor=decimal_to_minor(line.unit_price),
                line_total_minor=decimal_to_minor(line.line_total),
            )

        append_status_entry(
            order=order,
            status=Order.STATUS_PENDING,
            actor=user,
            note="Order created",
        )

        order_id = order.pk
        transaction.on_commit(lambda: notify_order_created(order_id))

    logger.info(
        "Order created",
        extra={
            "order_number": order.order_number,
            "user_id": getattr(user, "pk", None),
            "total_minor": order.total_minor,
            "lines": len(quote.lines),
            "coupon_code": order.coupon_code or None,
        },
    )
    return order
