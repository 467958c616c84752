# orders/services/expiry.py

"""
PENDING ORDER EXPIRY

Checkouts that never complete keep stock reserved. Orders still `pending`
after PENDING_TTL_MINUTES are cancelled through the normal conditional
transition (which releases their stock). An order that got paid while the
sweep was running wins the race and is skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from orders.models import Order
from orders.services.exceptions import StaleTransitionError
from orders.services.order_lifecycle import transition_order

logger = logging.getLogger(__name__)


@dataclass
class ExpiryReport:
    cutoff: object
    expired: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


def pending_ttl_minutes() -> int:
    orders = getattr(settings, "ORDERS", {}) or {}
    return int(orders.get("PENDING_TTL_MINUTES", 60))


def stale_pending_orders(*, minutes: int | None = None, now=None):
    now = now or timezone.now()
    ttl = pending_ttl_minutes() if minutes is None else int(minutes)
    cutoff = now - timedelta(minutes=ttl)
    qs = Order.objects.filter(status=Order.STATUS_PENDING, created_at__lt=cutoff)
    return cutoff, qs.order_by("created_at")


def expire_stale_pending_orders(
    *, minutes: int | None = None, now=None, dry_run: bool = False
) -> ExpiryReport:
    cutoff, qs = stale_pending_orders(minutes=minutes, now=now)
    report = ExpiryReport(cutoff=cutoff)

    for order in qs.iterator():
        if dry_run:
            report.expired.append(order.order_number)
            continue

        try:
            transition_order(
                order,
                Order.STATUS_CANCELLED,
                expected_status=Order.STATUS_PENDING,
                note="Expired: payment not completed in time",
                extra_fields={"payment_status": Order.PAYMENT_FAILED},
            )
        except StaleTransitionError as exc:
            report.skipped.append(order.order_number)
            logger.info(
                "Pending order expiry skipped",
                extra={"order_number": order.order_number, "current_status": exc.current_status},
            )
            continue

        report.expired.append(order.order_number)

    logger.info(
        "Pending order expiry sweep finished",
        extra={
            "cutoff": cutoff.isoformat(),
            "expired": len(report.expired),
            "skipped": len(report.skipped),
            "dry_run": dry_run,
        },
    )
    return report
