# payments/services/checkout.py

"""
CHECKOUT START

Creates the provider session for a pending order and stores the session
reference on it. The provider call happens outside any transaction; the
write afterwards is conditional on the order still being pending.
"""

from __future__ import annotations

import logging

from django.utils import timezone

from orders.models import Order
from orders.services.exceptions import StaleTransitionError
from payments.services.provider import create_checkout_session

logger = logging.getLogger(__name__)


def start_checkout(*, order: Order) -> dict:
    if order.status != Order.STATUS_PENDING:
        raise StaleTransitionError(
            f"Order {order.order_number} is '{order.status}'; only pending orders can be paid",
            current_status=order.status,
            requested_status=Order.STATUS_PROCESSING,
        )

    session = create_checkout_session(order)

    updated = Order.objects.filter(pk=order.pk, status=Order.STATUS_PENDING).update(
        payment_id=session["id"],
        checkout_session_id=session["id"],
        updated_at=timezone.now(),
    )
    if updated != 1:
        actual = Order.objects.filter(pk=order.pk).values_list("status", flat=True).first()
        logger.warning(
            "Order left pending while its checkout session was created",
            extra={"order_number": order.order_number, "current_status": actual},
        )
        raise StaleTransitionError(
            f"Order {order.order_number} is '{actual}'; only pending orders can be paid",
            current_status=actual,
            requested_status=Order.STATUS_PROCESSING,
        )

    return {"session_id": session["id"], "url": session["url"]}
