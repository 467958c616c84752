# payments/services/refunds.py

"""
REFUND REQUEST

Asks the provider to refund a paid order. Nothing is written here: the
ledger refund entry and the move to `refunded` happen when the provider's
charge.refunded event is reconciled.
"""

from __future__ import annotations

import logging

from ledger.services.ledger_service import purchase_for, refund_for
from orders.models import Order
from orders.services.order_lifecycle import can_transition
from payments.services.exceptions import RefundNotAllowed
from payments.services.provider import create_refund

logger = logging.getLogger(__name__)

REFUND_REASONS = ("requested_by_customer", "duplicate", "fraudulent")


def request_refund(*, order: Order, reason: str = "requested_by_customer") -> dict:
    if not can_transition(from_status=order.status, to_status=Order.STATUS_REFUNDED):
        raise RefundNotAllowed(f"Order {order.order_number} is '{order.status}' and cannot be refunded")

    purchase = purchase_for(order)
    if purchase is None:
        raise RefundNotAllowed(f"Order {order.order_number} has no recorded payment")

    if refund_for(order) is not None:
        raise RefundNotAllowed(f"Order {order.order_number} is already refunded")

    payment_ref = purchase.external_ref or order.payment_id
    if not payment_ref:
        raise RefundNotAllowed(f"Order {order.order_number} has no payment reference")

    refund = create_refund(
        payment_intent_id=payment_ref,
        reason=reason,
        metadata={"order_id": str(order.pk), "order_number": order.order_number},
    )

    logger.info(
        "Refund pending provider confirmation",
        extra={"order_number": order.order_number, "refund_id": refund["id"]},
    )
    return {"refund_id": refund["id"], "status": refund["status"]}
