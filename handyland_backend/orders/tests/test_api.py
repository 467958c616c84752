# orders/tests/test_api.py

from __future__ import annotations

from decimal import Decimal

from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from ledger.models import Transaction
from orders.models import Order
from orders.services.order_lifecycle import transition_order
from orders.tests.helpers import (
    FEE_APPLIES,
    line,
    make_accessory,
    make_product,
    make_user,
    place_order,
    shipping_address,
)


def _payload(items, **extra):
    data = {
        "items": items,
        "shipping_address": shipping_address(),
        "payment_method": "stripe",
    }
    data.update(extra)
    return data


@override_settings(ORDERS=FEE_APPLIES)
class CustomerOrderApiTests(TestCase):
    """
    GUARANTEES:
    - Authenticated users only
    - Client prices and totals never set the order total
    - Customers only see their own orders
    """

    def setUp(self):
        self.client = APIClient()
        self.user = make_user()
        self.other = make_user("other")
        self.phone = make_product(price="50.00", stock=5)
        self.charger = make_accessory(price="20.00", stock=5)
        self.client.force_authenticate(user=self.user)

        self.list_url = reverse("orders:order-list")

    def test_requires_authentication(self):
        self.client.force_authenticate(user=None)
        response = self.client.get(self.list_url)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_order(self):
        items = [
            {**line(self.phone, 2), "price": "0.01"},
            line(self.charger, 1, item_type="accessory"),
        ]
        response = self.client.post(self.list_url, _payload(items), format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(Decimal(response.data["total"]), Decimal("125.99"))
        self.assertEqual(Decimal(response.data["shipping_fee"]), Decimal("5.99"))
        self.assertRegex(response.data["order_number"], r"^HL-\d{8}-\d{4,}$")
        self.assertEqual(response.data["status"], "pending")
        self.assertEqual(len(response.data["items"]), 2)
        self.assertEqual(len(response.data["status_history"]), 1)

        order = Order.objects.get(pk=response.data["id"])
        self.assertEqual(order.user, self.user)

    def test_tampered_total_rejected(self):
        response = self.client.post(
            self.list_url,
            _payload([line(self.phone, 2)], total="10.00"),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "total_mismatch")
        self.assertEqual(Order.objects.count(), 0)

    def test_insufficient_stock_conflict(self):
        response = self.client.post(
            self.list_url, _payload([line(self.phone, 6)]), format="json"
        )

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["item"]["name"], self.phone.name)
        self.assertEqual(response.data["item"]["available"], 5)

    def test_invalid_coupon_rejected(self):
        response = self.client.post(
            self.list_url,
            _payload([line(self.phone, 1)], coupon_code="NOPE"),
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["reason"], "not_found")

    def test_empty_items_rejected(self):
        response = self.client.post(self.list_url, _payload([]), format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_only_own_orders(self):
        mine = place_order(self.user, [line(self.phone, 1)])
        place_order(self.other, [line(self.phone, 1)])

        response = self.client.get(self.list_url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        ids = [row["id"] for row in response.data["results"]]
        self.assertEqual(ids, [str(mine.id)])

    def test_detail_of_other_users_order_is_hidden(self):
        theirs = place_order(self.other, [line(self.phone, 1)])

        response = self.client.get(reverse("orders:order-detail", args=[theirs.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_cancel_pending_order(self):
        order = place_order(self.user, [line(self.phone, 2)])
        url = reverse("orders:order-cancel", args=[order.id])

        response = self.client.post(url)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["status"], "cancelled")

        self.phone.refresh_from_db()
        self.assertEqual(self.phone.stock, 5)

        again = self.client.post(url)
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data["current_status"], "cancelled")

    def test_cannot_cancel_after_payment(self):
        order = place_order(self.user, [line(self.phone, 1)])
        transition_order(order, Order.STATUS_PROCESSING)

        response = self.client.post(reverse("orders:order-cancel", args=[order.id]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)


class AdminOrderApiTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.customer = make_user()
        self.staff = make_user("staff", is_staff=True)
        self.phone = make_product(stock=10)

        self.order = place_order(self.customer, [line(self.phone, 1)])
        self.client.force_authenticate(user=self.staff)

    def test_customers_cannot_use_admin_endpoints(self):
        self.client.force_authenticate(user=self.customer)

        response = self.client.get(reverse("orders:admin-order-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_admin_list_and_filter(self):
        other = place_order(self.customer, [line(self.phone, 1)])
        transition_order(other, Order.STATUS_PROCESSING)

        url = reverse("orders:admin-order-list")
        response = self.client.get(url)
        self.assertEqual(response.data["count"], 2)

        response = self.client.get(url, {"status": "processing"})
        self.assertEqual(response.data["count"], 1)
        self.assertEqual(response.data["results"][0]["order_number"], other.order_number)

    def test_status_update_with_tracking(self):
        transition_order(self.order, Order.STATUS_PROCESSING)
        url = reverse("orders:admin-order-status", args=[self.order.id])

        response = self.client.patch(
            url,
            {"status": "shipped", "tracking_number": "DHL-42", "note": "Handed to DHL"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["status"], "shipped")
        self.assertEqual(response.data["tracking_number"], "DHL-42")
        self.assertEqual(response.data["status_history"][-1]["note"], "Handed to DHL")
        self.assertEqual(response.data["status_history"][-1]["actor"], "staff@example.com")

    def test_illegal_status_update_conflict(self):
        transition_order(self.order, Order.STATUS_CANCELLED)
        url = reverse("orders:admin-order-status", args=[self.order.id])

        response = self.client.patch(url, {"status": "shipped"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["current_status"], "cancelled")

    def test_refunded_cannot_be_set_by_hand(self):
        transition_order(self.order, Order.STATUS_PROCESSING)
        url = reverse("orders:admin-order-status", args=[self.order.id])

        response = self.client.patch(url, {"status": "refunded"}, format="json")

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["current_status"], "processing")
        self.assertIn("/api/payments/refund/", response.data["detail"])

        self.order.refresh_from_db()
        self.assertEqual(self.order.status, Order.STATUS_PROCESSING)
        self.assertFalse(
            Transaction.objects.filter(order=self.order, type=Transaction.TYPE_REFUND).exists()
        )

    def test_stats(self):
        response = self.client.get(reverse("orders:admin-order-stats"))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["total_orders"], 1)
        self.assertEqual(response.data["by_status"]["pending"], 1)
        self.assertEqual(response.data["gross_revenue"], "0.00")
