# orders/services/order_lifecycle.py

"""
======================================================
PATH: orders/services/order_lifecycle.py
======================================================
ORDER STATE MACHINE

States:   pending, processing, shipped, delivered, cancelled, refunded
Initial:  pending
Terminal: cancelled, refunded, delivered (delivered may still be refunded)

Legal edges:
    pending    -> processing | cancelled
    processing -> shipped | cancelled | refunded
    shipped    -> delivered
    delivered  -> refunded

Write protocol (every caller: admin, customer cancel, webhooks, expiry):
    UPDATE orders SET status = new WHERE id = ? AND status = expected
    -> 0 rows: another writer won; StaleTransitionError carries the re-read status
    -> 1 row:  append exactly one OrderStatusEntry in the same transaction
"""

from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from catalog.services.stock import Reservation, release_all
from orders.models import Order, OrderStatusEntry
from orders.services.exceptions import OrderValidationError, StaleTransitionError
from orders.services.notifications import notify_status_changed

logger = logging.getLogger(__name__)

# ============================================================
# STATE DEFINITIONS
# ============================================================

VALID_STATES = {value for value, _label in Order.STATUS_CHOICES}

ALLOWED_TRANSITIONS = {
    Order.STATUS_PENDING: {Order.STATUS_PROCESSING, Order.STATUS_CANCELLED},
    Order.STATUS_PROCESSING: {
        Order.STATUS_SHIPPED,
        Order.STATUS_CANCELLED,
        Order.STATUS_REFUNDED,
    },
    Order.STATUS_SHIPPED: {Order.STATUS_DELIVERED},
    Order.STATUS_DELIVERED: {Order.STATUS_REFUNDED},
}

# Fields a transition may set alongside status.
TRANSITION_FIELDS = {
    "payment_status",
    "payment_id",
    "checkout_session_id",
    "paid_at",
    "tracking_number",
}


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition(*, from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())


def allowed_next_states(status: str) -> list[str]:
    return sorted(ALLOWED_TRANSITIONS.get(status, set()))


# ============================================================
# HISTORY
# ============================================================


def append_status_entry(*, order: Order, status: str, actor=None, note: str = "") -> OrderStatusEntry:
    last = (
        OrderStatusEntry.objects.filter(order=order)
        .aggregate(last=Max("sequence"))
        .get("last")
        or 0
    )
    return OrderStatusEntry.objects.create(
        order=order,
        sequence=last + 1,
        status=status,
        note=(note or "").strip(),
        actor=actor if getattr(actor, "is_authenticated", False) else None,
    )


def _release_order_stock(order: Order) -> None:
    reservations = [
        Reservation(
            kind=item.item_type,
            item_id=item.item_id,
            quantity=item.quantity,
            name=item.name,
        )
        for item in order.items.all()
    ]
    release_all(reservations)


# ============================================================
# TRANSITION
# ============================================================


def transition_order(
    order: Order,
    new_status: str,
    *,
    actor=None,
    note: str | None = None,
    expected_status: str | None = None,
    extra_fields: dict | None = None,
) -> Order:
    """
    Move `order` to `new_status` if the edge is legal from `expected_status`
    (defaults to the in-memory order.status).

    Returns the refreshed order. Raises StaleTransitionError when the edge is
    illegal or another writer changed the status first.
    """
    if new_status not in VALID_STATES:
        raise OrderValidationError({"status": [f"Unknown order status: {new_status!r}"]})

    extra_fields = dict(extra_fields or {})
    unexpected = set(extra_fields) - TRANSITION_FIELDS
    if unexpected:
        raise OrderValidationError(
            {"non_field_errors": [f"Fields not settable on transition: {sorted(unexpected)}"]}
        )

    current = expected_status or order.status

    if not can_transition(from_status=current, to_status=new_status):
        raise StaleTransitionError(
            f"Order {order.order_number} cannot transition from '{current}' to '{new_status}'",
            current_status=current,
            requested_status=new_status,
        )

    with transaction.atomic():
        updated = Order.objects.filter(pk=order.pk, status=current).update(
            status=new_status,
            updated_at=timezone.now(),
            **extra_fields,
        )

        if updated != 1:
            actual = (
                Order.objects.filter(pk=order.pk).values_list("status", flat=True).first()
            )
            logger.info(
                "Order transition lost race",
                extra={
                    "order_number": order.order_number,
                    "expected_status": current,
                    "actual_status": actual,
                    "requested_status": new_status,
                },
            )
            raise StaleTransitionError(
                f"Order {order.order_number} is '{actual}', not '{current}'",
                current_status=actual,
                requested_status=new_status,
            )

        append_status_entry(
            order=order,
            status=new_status,
            actor=actor,
            note=note or f"Status changed from {current} to {new_status}",
        )

        if new_status == Order.STATUS_CANCELLED:
            _release_order_stock(order)

        order_id = order.pk
        transaction.on_commit(
            lambda: notify_status_changed(order_id, old_status=current, new_status=new_status)
        )

    logger.info(
        "Order status changed",
        extra={
            "order_number": order.order_number,
            "from_status": current,
            "to_status": new_status,
            "actor_id": getattr(actor, "pk", None),
        },
    )

    order.refresh_from_db()
    return order
