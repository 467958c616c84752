# orders/services/notifications.py

"""
ORDER NOTIFICATIONS (FIRE-AND-FORGET)

Called from transaction.on_commit hooks only, so a rolled-back order never
mails anyone. Delivery failures are logged and never propagate into the
request or webhook that triggered them.
"""

from __future__ import annotations

import logging

from django.conf import settings
from django.core.mail import send_mail

from orders.models import Order

logger = logging.getLogger(__name__)


def _deliver(*, order: Order, subject: str, body: str, event: str) -> bool:
    recipient = order.customer_email
    if not recipient:
        logger.info(
            "Order notification skipped (no recipient)",
            extra={"order_number": order.order_number, "event": event},
        )
        return False

    try:
        send_mail(
            subject,
            body,
            getattr(settings, "DEFAULT_FROM_EMAIL", None),
            [recipient],
            fail_silently=False,
        )
    except Exception as exc:
        logger.warning(
            "Order notification failed",
            extra={"order_number": order.order_number, "event": event, "error": str(exc)},
        )
        return False

    logger.info(
        "Order notification sent",
        extra={"order_number": order.order_number, "event": event},
    )
    return True


def notify_order_created(order_id) -> bool:
    order = Order.objects.select_related("user").filter(pk=order_id).first()
    if order is None:
        return False

    lines = [f"- {item.name} x {item.quantity}: {item.line_total}" for item in order.items.all()]
    body = "\n".join(
        [
            f"Thank you for your order {order.order_number}.",
            "",
            *lines,
            "",
            f"Subtotal: {order.subtotal}",
            f"Shipping: {order.shipping_fee}",
            f"Discount: {order.discount}",
            f"Total: {order.total}",
        ]
    )
    return _deliver(
        order=order,
        subject=f"Order confirmation {order.order_number}",
        body=body,
        event="order_created",
    )


def notify_status_changed(order_id, *, old_status: str, new_status: str) -> bool:
    order = Order.objects.select_related("user").filter(pk=order_id).first()
    if order is None:
        return False

    body = f"Your order {order.order_number} is now {new_status} (was {old_status})."
    if new_status == Order.STATUS_SHIPPED and order.tracking_number:
        body += f"\nTracking number: {order.tracking_number}"

    return _deliver(
        order=order,
        subject=f"Order {order.order_number}: {new_status}",
        body=body,
        event=f"status_{new_status}",
    )
