# orders/tests/test_expiry.py

from __future__ import annotations

from datetime import timedelta
from io import StringIO

from django.core.management import call_command
from django.test import TestCase
from django.utils import timezone

from orders.models import Order
from orders.services.expiry import expire_stale_pending_orders
from orders.services.order_lifecycle import transition_order
from orders.tests.helpers import line, make_product, make_user, place_order


class PendingOrderExpiryTests(TestCase):
    def setUp(self):
        self.user = make_user()
        self.phone = make_product(stock=5)

        self.stale = place_order(self.user, [line(self.phone, 2)])
        self.fresh = place_order(self.user, [line(self.phone, 1)])

        Order.objects.filter(pk=self.stale.pk).update(
            created_at=timezone.now() - timedelta(hours=3)
        )

    def test_stale_pending_order_is_cancelled(self):
        report = expire_stale_pending_orders(minutes=60)

        self.assertEqual(report.expired, [self.stale.order_number])

        self.stale.refresh_from_db()
        self.fresh.refresh_from_db()
        self.assertEqual(self.stale.status, Order.STATUS_CANCELLED)
        self.assertEqual(self.stale.payment_status, Order.PAYMENT_FAILED)
        self.assertEqual(self.fresh.status, Order.STATUS_PENDING)

        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 4)

    def test_paid_orders_are_left_alone(self):
        transition_order(self.stale, Order.STATUS_PROCESSING)

        report = expire_stale_pending_orders(minutes=60)

        self.assertEqual(report.expired, [])
        self.stale.refresh_from_db()
        self.assertEqual(self.stale.status, Order.STATUS_PROCESSING)

    def test_dry_run_changes_nothing(self):
        report = expire_stale_pending_orders(minutes=60, dry_run=True)

        self.assertEqual(report.expired, [self.stale.order_number])
        self.stale.refresh_from_db()
        self.assertEqual(self.stale.status, Order.STATUS_PENDING)

    def test_management_command(self):
        out = StringIO()
        call_command("expire_pending_orders", "--minutes", "60", stdout=out)

        self.assertIn(self.stale.order_number, out.getvalue())
        self.assertIn("Total: 1", out.getvalue())

        self.stale.refresh_from_db()
        self.assertEqual(self.stale.status, Order.STATUS_CANCELLED)
